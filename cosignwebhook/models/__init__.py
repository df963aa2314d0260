"""Data models for the webhook package."""

from .admission import (
    AdmissionDecision,
    ContainerKind,
    ContainerOutcome,
    ContainerSpec,
    EnvVar,
    KeyLookupResult,
    KeyLookupStatus,
    Notification,
    OrchestrationResult,
    PodVerificationRequest,
    SecretKeyRef,
    VerificationStatus,
)

__all__ = [
    "AdmissionDecision",
    "ContainerKind",
    "ContainerOutcome",
    "ContainerSpec",
    "EnvVar",
    "KeyLookupResult",
    "KeyLookupStatus",
    "Notification",
    "OrchestrationResult",
    "PodVerificationRequest",
    "SecretKeyRef",
    "VerificationStatus",
]
