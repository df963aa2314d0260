"""HTTP servers for the webhook.

Two Flask apps: the TLS admission endpoint (/validate) and a plain HTTP
monitoring endpoint (/healthz, /metrics).
"""

import ssl
import threading
from typing import List, Optional

from flask import Flask, Response, jsonify, request
from werkzeug.serving import BaseWSGIServer, make_server

from ..core.observability import Observability
from ..utils.logging import get_logger
from .handler import AdmissionHandler

logger = get_logger(__name__)


def create_app(handler: AdmissionHandler) -> Flask:
    """Create the admission webhook app."""
    app = Flask("cosignwebhook")

    @app.route("/validate", methods=["POST"])
    def validate():
        response = handler.handle(request.get_data())
        if response.is_review:
            return jsonify(response.body), response.status
        return Response(response.body, status=response.status, mimetype="text/plain")

    @app.route("/metrics")
    def metrics_placeholder():
        return Response(status=200)

    @app.errorhandler(404)
    def no_validate(_error):
        logger.error(f"No validate URI: {request.path}")
        return Response("no validate", status=400, mimetype="text/plain")

    return app


def create_monitor_app(observability: Observability) -> Flask:
    """Create the health and metrics app."""
    app = Flask("cosignwebhook-monitor")

    @app.route("/healthz")
    def healthz():
        return Response("ok", status=200, mimetype="text/plain")

    @app.route("/metrics")
    def metrics():
        payload, content_type = observability.render_metrics()
        return Response(payload, status=200, content_type=content_type)

    return app


def create_tls_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Server TLS context with TLS 1.2 as minimum version."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(cert_file, key_file)
    return context


class WebhookServer:
    """Runs the webhook and monitoring servers on background threads."""

    def __init__(
        self,
        webhook_app: Flask,
        monitor_app: Flask,
        host: str = "0.0.0.0",
        port: int = 8080,
        metrics_port: int = 8081,
        tls_context: Optional[ssl.SSLContext] = None,
    ):
        self.webhook_app = webhook_app
        self.monitor_app = monitor_app
        self.host = host
        self.port = port
        self.metrics_port = metrics_port
        self.tls_context = tls_context
        self._servers: List[BaseWSGIServer] = []
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        """Bind both servers and serve them on daemon threads."""
        webhook = make_server(
            self.host, self.port, self.webhook_app,
            threaded=True, ssl_context=self.tls_context,
        )
        monitor = make_server(self.host, self.metrics_port, self.monitor_app, threaded=True)
        self._servers = [webhook, monitor]

        for name, server in (("webhook", webhook), ("monitor", monitor)):
            thread = threading.Thread(target=server.serve_forever, name=f"{name}-server", daemon=True)
            thread.start()
            self._threads.append(thread)

        logger.info(f"Webhook server running port={self.port} metricsPort={self.metrics_port}")

    def shutdown(self, timeout: float = 10) -> None:
        """Stop accepting requests and wait for the serving threads."""
        for server in self._servers:
            server.shutdown()
        for thread in self._threads:
            thread.join(timeout)
        for server in self._servers:
            server.server_close()
        self._servers = []
        self._threads = []
