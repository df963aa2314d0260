"""CLI entry points for the webhook package."""

import sys
import argparse
from typing import List, Optional

from .serve import create_serve_parser, run_serve
from .verify_pod import create_verify_parser, run_verify


def create_main_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="cosignwebhook",
        description="Kubernetes admission webhook enforcing cosign image signatures",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  serve             Run the admission webhook server
  verify            Check whether the pods in manifests would be admitted

Examples:
  # Run in cluster with certificates from a mounted secret
  cosignwebhook serve --tlsCertFile /etc/certs/tls.crt --tlsKeyFile /etc/certs/tls.key

  # Debug logging
  cosignwebhook serve --logLevel debug

  # Check a manifest against the current cluster
  cosignwebhook verify -f deployment.yaml
""",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    create_serve_parser(subparsers)
    create_verify_parser(subparsers)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_main_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    command_handlers = {
        "serve": run_serve,
        "verify": run_verify,
    }

    handler = command_handlers.get(args.command)
    if handler:
        try:
            return handler(args)
        except KeyboardInterrupt:
            print("\n\nOperation cancelled by user", file=sys.stderr)
            return 130
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 1


__all__ = ["main", "create_main_parser"]
