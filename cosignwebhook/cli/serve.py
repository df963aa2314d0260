"""CLI for running the admission webhook server."""

import argparse
import signal
import ssl
import threading
from typing import Any

from ..config import WebhookConfig, build_handler
from ..core.kubernetes import KubernetesConfig
from ..core.orchestrator import KeyLookupPolicy
from ..utils.logging import LogLevel, get_logger, setup_logging
from ..utils.subprocess import check_prerequisites
from ..webhook.server import WebhookServer, create_app, create_monitor_app, create_tls_context

logger = get_logger(__name__)


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Arguments shared by commands that talk to the cluster."""
    parser.add_argument(
        "--logLevel", "--log-level",
        dest="log_level",
        default="info",
        help="Log level of app, e.g. info, debug, warn, error, fatal (default: info)",
    )
    parser.add_argument(
        "--kubeconfig",
        help="Path to a kubeconfig file (default: in-cluster config)",
    )
    parser.add_argument(
        "--context",
        help="Kubeconfig context to use",
    )
    parser.add_argument(
        "--key-lookup-policy",
        choices=[p.value for p in KeyLookupPolicy],
        default=KeyLookupPolicy.FAIL_OPEN.value,
        help="What to do when a public key secret can't be read (default: fail-open)",
    )
    parser.add_argument(
        "--cosign-binary",
        default="cosign",
        help="cosign executable (default: cosign)",
    )
    parser.add_argument(
        "--k8s-timeout",
        type=float,
        default=10,
        help="Timeout in seconds for Kubernetes API calls (default: 10)",
    )
    parser.add_argument(
        "--verify-timeout",
        type=float,
        default=30,
        help="Timeout in seconds for a single signature verification (default: 30)",
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        default=25,
        help="Time budget in seconds for a whole admission request (default: 25)",
    )


def config_from_args(args: argparse.Namespace) -> WebhookConfig:
    """Build a WebhookConfig from parsed arguments."""
    config = WebhookConfig(
        key_lookup_policy=KeyLookupPolicy(args.key_lookup_policy),
        cosign_binary=args.cosign_binary,
        k8s_timeout=args.k8s_timeout,
        verify_timeout=args.verify_timeout,
        request_timeout=args.request_timeout,
        kubernetes=KubernetesConfig(kubeconfig=args.kubeconfig, context=args.context),
    )
    for name in ("tls_cert_file", "tls_key_file", "host", "port", "metrics_port"):
        if hasattr(args, name):
            setattr(config, name, getattr(args, name))
    return config


def create_serve_parser(subparsers: Any) -> argparse.ArgumentParser:
    """Create the serve subparser."""
    parser = subparsers.add_parser(
        "serve",
        help="Run the admission webhook server",
        description="""
Run the validating admission webhook.

Serves /validate over TLS and /healthz and /metrics over plain HTTP on a
separate port. Containers opt into verification with the COSIGNPUBKEY
environment variable (a PEM public key or a secretKeyRef).

Containers without COSIGNPUBKEY, including containers with no env at all,
fall back to the key "COSIGNPUBKEY" of the secret "cosignwebhook" in the
pod's namespace. Creating that secret turns on verification for every
pod in the namespace.
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--tlsCertFile", "--tls-cert-file",
        dest="tls_cert_file",
        default="/etc/certs/tls.crt",
        help="File containing the x509 Certificate for HTTPS (default: /etc/certs/tls.crt)",
    )
    parser.add_argument(
        "--tlsKeyFile", "--tls-key-file",
        dest="tls_key_file",
        default="/etc/certs/tls.key",
        help="File containing the x509 private key to --tlsCertFile (default: /etc/certs/tls.key)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Address to listen on (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Webhook port (default: 8080)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=8081,
        help="Health and metrics port (default: 8081)",
    )
    parser.add_argument(
        "--no-events",
        action="store_true",
        help="Don't emit PodVerified/NoVerification events",
    )
    add_common_arguments(parser)

    return parser


def run_serve(args: argparse.Namespace) -> int:
    """
    Run the webhook until SIGINT or SIGTERM.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code
    """
    setup_logging(LogLevel.from_string(args.log_level))

    config = config_from_args(args)
    config.emit_events = not args.no_events

    missing = check_prerequisites([config.cosign_binary])
    if missing:
        logger.error(f"Missing required tools: {', '.join(missing)}")
        return 1

    try:
        tls_context = create_tls_context(config.tls_cert_file, config.tls_key_file)
    except (OSError, ssl.SSLError) as e:
        logger.error(f"Failed to load key pair: {e}")
        return 1

    handler = build_handler(config)
    server = WebhookServer(
        create_app(handler),
        create_monitor_app(handler.observability),
        host=config.host,
        port=config.port,
        metrics_port=config.metrics_port,
        tls_context=tls_context,
    )

    stop = threading.Event()

    def _on_signal(signum, _frame):
        logger.info(f"Got {signal.Signals(signum).name}, shutting down webhook server gracefully...")
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    handler.observability.start()
    try:
        server.start()
    except OSError as e:
        logger.error(f"Failed to listen and serve webhook server: {e}")
        handler.observability.shutdown()
        return 1

    stop.wait()

    server.shutdown()
    handler.observability.shutdown()
    logger.info("Webhook server stopped")
    return 0
