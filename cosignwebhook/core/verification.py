"""Cosign signature verification module.

Verifies container image signatures against a raw public key using the
cosign CLI.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from ..errors import DeadlineExceeded, FailureReason, VerificationError
from ..utils.deadline import Deadline
from ..utils.logging import get_logger
from ..utils.registry import (
    ImageReference,
    InvalidReferenceError,
    Repository,
    parse_image_reference,
    parse_repository,
)
from ..utils.subprocess import CommandResult, run_command
from .credentials import RegistryAuthContext
from .observability import Observability

logger = get_logger(__name__)

COSIGN_REPOSITORY_ENV_VAR = "COSIGN_REPOSITORY"
PUBLIC_KEY_ENV_VAR = "COSIGNWEBHOOK_PUBLIC_KEY"


class KeyAlgorithm(Enum):
    """Supported public key families and how signatures are checked."""
    ECDSA = "ecdsa-sha256"
    RSA = "rsa-pkcs1v15-sha256"

    @property
    def digest_algorithm(self) -> str:
        return "sha256"


@dataclass(frozen=True)
class VerifierStrategy:
    """A parsed public key and the algorithm selected for it."""
    algorithm: KeyAlgorithm
    pem: str
    key_size: int


def load_verifier(key_material: str, image: str = "") -> VerifierStrategy:
    """
    Parse a PEM public key and select the verification algorithm.

    Raises:
        VerificationError: PUBLIC_KEY_MALFORMED if the PEM cannot be
            decoded, UNSUPPORTED_KEY_ALGORITHM for key types other than
            ECDSA and RSA
    """
    try:
        public_key = serialization.load_pem_public_key(key_material.encode("utf-8"))
    except UnsupportedAlgorithm as e:
        logger.error(f"Unsupported public key algorithm: {e}")
        raise VerificationError(
            FailureReason.UNSUPPORTED_KEY_ALGORITHM,
            f"unsupported public key algorithm for image {image!r}",
        ) from e
    except (ValueError, TypeError) as e:
        logger.error(f"Error unmarshalling public key: {e}")
        raise VerificationError(
            FailureReason.PUBLIC_KEY_MALFORMED,
            f"public key for image {image!r} malformed",
        ) from e

    if isinstance(public_key, ec.EllipticCurvePublicKey):
        algorithm = KeyAlgorithm.ECDSA
    elif isinstance(public_key, rsa.RSAPublicKey):
        algorithm = KeyAlgorithm.RSA
    else:
        logger.error(f"Unsupported public key type: {type(public_key).__name__}")
        raise VerificationError(
            FailureReason.UNSUPPORTED_KEY_ALGORITHM,
            f"unsupported public key type {type(public_key).__name__} for image {image!r}",
        )

    return VerifierStrategy(
        algorithm=algorithm,
        pem=key_material,
        key_size=public_key.key_size,
    )


class CosignCLI:
    """Runs ``cosign verify`` for key-based verification."""

    def __init__(self, binary: str = "cosign", timeout: float = 30):
        """
        Initialize the engine.

        Args:
            binary: cosign executable
            timeout: Upper bound for a single verification in seconds
        """
        self.binary = binary
        self.timeout = timeout

    def verify(
        self,
        image: ImageReference,
        strategy: VerifierStrategy,
        auth: RegistryAuthContext,
        repository: Optional[Repository] = None,
        deadline: Optional[Deadline] = None,
    ) -> CommandResult:
        """
        Verify the signatures of an image.

        Transparency log and SCT checks are skipped: signatures are
        checked against a raw public key, not a certificate identity.
        """
        timeout = (deadline or Deadline.never()).timeout(self.timeout, f"verifying {image}")

        args = [
            self.binary, "verify",
            f"--key=env://{PUBLIC_KEY_ENV_VAR}",
            f"--signature-digest-algorithm={strategy.algorithm.digest_algorithm}",
            "--insecure-ignore-tlog=true",
            "--insecure-ignore-sct=true",
            "--output=json",
            str(image),
        ]

        env = dict(auth.env())
        env[PUBLIC_KEY_ENV_VAR] = strategy.pem
        if repository is not None:
            env[COSIGN_REPOSITORY_ENV_VAR] = str(repository)

        return run_command(args, timeout=timeout, extra_env=env, redact=[PUBLIC_KEY_ENV_VAR])


class ContainerVerifier:
    """
    One verification attempt for one container image.

    Every failure is raised as a VerificationError carrying its
    FailureReason.
    """

    def __init__(self, engine: CosignCLI, observability: Optional[Observability] = None):
        self.engine = engine
        self.observability = observability

    def verify(
        self,
        image: str,
        key_material: str,
        auth: RegistryAuthContext,
        repository_override: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        """
        Verify an image signature.

        Args:
            image: Image reference from the container spec
            key_material: PEM encoded public key
            auth: Registry credentials of the pod
            repository_override: Alternate repository holding the signatures
            deadline: Request deadline

        Raises:
            VerificationError: if verification fails for any reason
        """
        try:
            reference = parse_image_reference(image)
        except InvalidReferenceError as e:
            logger.error(f"Error parsing image reference: {e}")
            raise VerificationError(
                FailureReason.IMAGE_REFERENCE_INVALID,
                f"could not parse image reference for image {image!r}",
            ) from e

        strategy = load_verifier(key_material, image)

        repository = None
        if repository_override:
            try:
                repository = parse_repository(repository_override)
            except InvalidReferenceError as e:
                logger.error(f"Error parsing remote signature repository: {e}")
                raise VerificationError(
                    FailureReason.SIGNATURE_REPOSITORY_INVALID,
                    f"could not parse signature repository {repository_override!r}",
                ) from e
            logger.debug(f"Remote signature repository overridden with: {repository}")

        logger.debug(
            f"Verifying image {image!r} with {strategy.key_size}-bit {strategy.algorithm.value} key"
        )
        signature_registry = repository.registry if repository is not None else reference.registry
        if not auth.has_credentials(signature_registry):
            logger.debug(f"No pull secret credentials for {signature_registry}, using anonymous access")

        try:
            result = self.engine.verify(reference, strategy, auth, repository, deadline)
        except DeadlineExceeded as e:
            raise VerificationError(
                FailureReason.SIGNATURE_VERIFICATION_FAILED,
                f"signature for {image!r} couldn't be verified: {e}",
            ) from e

        if not result.success:
            logger.error(f"Error verifying signature: {result.stderr.strip() or 'verification failed'}")
            raise VerificationError(
                FailureReason.SIGNATURE_VERIFICATION_FAILED,
                f"signature for {image!r} couldn't be verified",
            )

        if self.observability is not None:
            self.observability.record_verified()
        logger.info(f"Image {image!r} verified successfully")
