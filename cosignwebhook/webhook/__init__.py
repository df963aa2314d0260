"""Admission webhook HTTP layer."""

from .handler import AdmissionHandler, HandlerResponse
from .server import WebhookServer, create_app, create_monitor_app, create_tls_context

__all__ = [
    "AdmissionHandler",
    "HandlerResponse",
    "WebhookServer",
    "create_app",
    "create_monitor_app",
    "create_tls_context",
]
