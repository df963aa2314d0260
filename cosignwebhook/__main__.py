"""
Main entry point for the webhook package.

Usage:
    python -m cosignwebhook serve [OPTIONS]
    python -m cosignwebhook verify -f MANIFEST [OPTIONS]
"""

import sys


def main() -> int:
    """Main entry point."""
    from .cli import main as cli_main
    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
