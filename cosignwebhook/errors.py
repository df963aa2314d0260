"""Exceptions raised while handling admission requests."""

from enum import Enum


class FailureReason(Enum):
    """Why a container was denied."""
    IMAGE_REFERENCE_INVALID = "ImageReferenceInvalid"
    PUBLIC_KEY_MALFORMED = "PublicKeyMalformed"
    UNSUPPORTED_KEY_ALGORITHM = "UnsupportedKeyAlgorithm"
    SIGNATURE_REPOSITORY_INVALID = "SignatureRepositoryInvalid"
    SIGNATURE_VERIFICATION_FAILED = "SignatureVerificationFailed"
    KEY_LOOKUP_FAILED = "KeyLookupFailed"


class WebhookError(Exception):
    """Base class for all webhook errors."""


class AdmissionRequestError(WebhookError):
    """The AdmissionReview envelope or the Pod inside it could not be decoded."""


class KeychainInitError(WebhookError):
    """Registry credentials for the Pod could not be assembled."""


class SecretLookupError(WebhookError):
    """The cluster API failed while reading a secret (other than not found)."""


class DeadlineExceeded(WebhookError):
    """The request-scoped deadline ran out before a call could start."""


class VerificationError(WebhookError):
    """A single container failed signature verification."""

    def __init__(self, reason: FailureReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.message}"
