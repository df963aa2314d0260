"""Webhook configuration and component wiring."""

import os
from dataclasses import dataclass, field
from typing import Optional

from kubernetes import client

from .core.credentials import RegistryCredentialBuilder
from .core.keys import PublicKeyResolver
from .core.kubernetes import KubernetesConfig, KubernetesSecretStore
from .core.observability import EventRecorder, Observability
from .core.orchestrator import KeyLookupPolicy, PodVerificationOrchestrator
from .core.verification import ContainerVerifier, CosignCLI
from .webhook.handler import AdmissionHandler


@dataclass
class WebhookConfig:
    """Runtime configuration of the webhook."""
    tls_cert_file: str = "/etc/certs/tls.crt"
    tls_key_file: str = "/etc/certs/tls.key"
    host: str = "0.0.0.0"
    port: int = 8080
    metrics_port: int = 8081
    k8s_timeout: float = 10
    verify_timeout: float = 30
    request_timeout: float = 25
    key_lookup_policy: KeyLookupPolicy = KeyLookupPolicy.FAIL_OPEN
    cosign_binary: str = "cosign"
    emit_events: bool = True
    hostname: str = field(default_factory=lambda: os.environ.get("HOSTNAME", ""))
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)


def build_handler(
    config: WebhookConfig,
    api_client: Optional[client.ApiClient] = None,
) -> AdmissionHandler:
    """
    Wire all components for one process.

    The API client, metrics registry and event recorder built here are
    shared by every request the handler serves.
    """
    api_client = api_client or config.kubernetes.load_api_client()
    core_api = client.CoreV1Api(api_client)
    store = KubernetesSecretStore(core_api, timeout=config.k8s_timeout)

    events = None
    if config.emit_events:
        events = EventRecorder(core_api, host=config.hostname, timeout=config.k8s_timeout)
    observability = Observability(events=events)

    orchestrator = PodVerificationOrchestrator(
        resolver=PublicKeyResolver(store),
        verifier=ContainerVerifier(
            CosignCLI(binary=config.cosign_binary, timeout=config.verify_timeout),
            observability,
        ),
        key_lookup_policy=config.key_lookup_policy,
    )

    return AdmissionHandler(
        credentials=RegistryCredentialBuilder(store),
        orchestrator=orchestrator,
        observability=observability,
        request_timeout=config.request_timeout,
    )
