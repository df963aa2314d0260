"""Core functionality for the webhook package."""

from .credentials import RegistryAuthContext, RegistryCredentialBuilder
from .keys import PublicKeyResolver
from .kubernetes import KubernetesConfig, KubernetesSecretStore
from .observability import EventRecorder, Observability
from .orchestrator import KeyLookupPolicy, PodVerificationOrchestrator
from .verification import ContainerVerifier, CosignCLI, KeyAlgorithm, load_verifier

__all__ = [
    "RegistryAuthContext",
    "RegistryCredentialBuilder",
    "PublicKeyResolver",
    "KubernetesConfig",
    "KubernetesSecretStore",
    "EventRecorder",
    "Observability",
    "KeyLookupPolicy",
    "PodVerificationOrchestrator",
    "ContainerVerifier",
    "CosignCLI",
    "KeyAlgorithm",
    "load_verifier",
]
