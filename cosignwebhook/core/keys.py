"""Public key resolution for containers.

A container opts into verification through the ``COSIGNPUBKEY``
environment variable, either as a literal PEM value or as a reference to
a secret key. Without it, the namespace-wide default secret is used.
"""

from typing import Optional, Protocol

from ..errors import SecretLookupError
from ..models.admission import ContainerSpec, KeyLookupResult, KeyLookupStatus
from ..utils.deadline import Deadline
from ..utils.logging import get_logger

logger = get_logger(__name__)

COSIGN_ENV_VAR = "COSIGNPUBKEY"
DEFAULT_SECRET_NAME = "cosignwebhook"
DEFAULT_SECRET_KEY = COSIGN_ENV_VAR


class SecretStore(Protocol):
    """Anything that can read a single secret value."""

    def get(
        self,
        namespace: str,
        name: str,
        key: str,
        deadline: Optional[Deadline] = None,
    ) -> Optional[str]:
        ...


class PublicKeyResolver:
    """
    Find the public key a container's image must be signed with.

    Resolution never raises: every failure mode ends up as ``NOT_FOUND``
    or ``LOOKUP_ERROR`` and it is up to the caller's policy to decide
    what a lookup error means for admission.
    """

    def __init__(
        self,
        secrets: SecretStore,
        default_secret_name: str = DEFAULT_SECRET_NAME,
        default_secret_key: str = DEFAULT_SECRET_KEY,
    ):
        self.secrets = secrets
        self.default_secret_name = default_secret_name
        self.default_secret_key = default_secret_key

    def resolve(
        self,
        container: ContainerSpec,
        namespace: str,
        deadline: Optional[Deadline] = None,
    ) -> KeyLookupResult:
        """
        Resolve the public key for a container.

        Args:
            container: Container to resolve the key for
            namespace: Namespace of the pod
            deadline: Request deadline bounding secret reads

        Returns:
            KeyLookupResult
        """
        if not container.image:
            logger.debug(f"Container {container.name!r} has no image, skipping verification")
            return KeyLookupResult.not_found()

        from_env = self._from_env(container, namespace, deadline)
        if from_env.status is KeyLookupStatus.FOUND:
            return from_env

        # Namespace default secret, consulted only when the container gave no key
        from_default = self._from_secret(
            namespace, self.default_secret_name, self.default_secret_key, deadline
        )
        if from_default.status is KeyLookupStatus.FOUND:
            logger.debug(f"Using default secret public key for container {container.name!r}")
            return from_default

        if KeyLookupStatus.LOOKUP_ERROR in (from_env.status, from_default.status):
            cause = from_env.cause or from_default.cause
            logger.warning(f"Public key lookup for container {container.name!r} failed: {cause}")
            return KeyLookupResult.lookup_error(cause or "lookup failed")

        logger.debug(f"No public key found for container {container.name!r}")
        return KeyLookupResult.not_found()

    def _from_env(
        self,
        container: ContainerSpec,
        namespace: str,
        deadline: Optional[Deadline],
    ) -> KeyLookupResult:
        env = container.get_env(COSIGN_ENV_VAR)
        if env is None:
            logger.debug(f"No {COSIGN_ENV_VAR} env var in container {container.name!r} in namespace {namespace!r}")
            return KeyLookupResult.not_found()

        if env.value:
            logger.debug(f"Found public key in env var for container {container.name!r}")
            return KeyLookupResult.found(env.value)

        if env.secret_key_ref is not None:
            ref = env.secret_key_ref
            logger.debug(f"Found reference to public key in secret {ref.name!r} for container {container.name!r}")
            return self._from_secret(namespace, ref.name, ref.key, deadline)

        logger.debug(f"{COSIGN_ENV_VAR} in container {container.name!r} has no value")
        return KeyLookupResult.not_found()

    def _from_secret(
        self,
        namespace: str,
        name: str,
        key: str,
        deadline: Optional[Deadline],
    ) -> KeyLookupResult:
        if not name or not key:
            return KeyLookupResult.not_found()
        try:
            value = self.secrets.get(namespace, name, key, deadline)
        except SecretLookupError as e:
            logger.debug(f"Can't get secret {namespace}/{name}: {e}")
            return KeyLookupResult.lookup_error(str(e))
        if not value:
            return KeyLookupResult.not_found()
        return KeyLookupResult.found(value)
