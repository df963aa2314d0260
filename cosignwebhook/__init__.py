"""
Cosign Webhook

Kubernetes validating admission webhook that only admits pods whose
container images are signed with the operator's cosign public key.
Provides:
- Public key resolution from container env vars and secrets
- Registry credentials from image pull secrets
- Key-based cosign signature verification
- Per-pod allow/deny decisions with Kubernetes events and metrics
"""

__version__ = "1.0.0"

from .core.orchestrator import KeyLookupPolicy, PodVerificationOrchestrator
from .core.verification import ContainerVerifier, CosignCLI
from .core.keys import PublicKeyResolver
from .core.credentials import RegistryCredentialBuilder
from .webhook.handler import AdmissionHandler

__all__ = [
    "KeyLookupPolicy",
    "PodVerificationOrchestrator",
    "ContainerVerifier",
    "CosignCLI",
    "PublicKeyResolver",
    "RegistryCredentialBuilder",
    "AdmissionHandler",
]
