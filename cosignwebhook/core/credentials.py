"""Registry credentials for signature lookup.

Collects the docker credentials a pod is allowed to use (its own image
pull secrets plus those of its service account) into a private docker
config directory handed to cosign through ``DOCKER_CONFIG``.
"""

import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import KeychainInitError, SecretLookupError
from ..utils.deadline import Deadline
from ..utils.logging import get_logger
from ..utils.registry import DEFAULT_REGISTRY
from .kubernetes import KubernetesSecretStore

logger = get_logger(__name__)

DOCKER_CONFIG_JSON_KEY = ".dockerconfigjson"
DOCKER_CFG_KEY = ".dockercfg"


@dataclass(frozen=True)
class RegistryAuthContext:
    """
    Registry credentials for a single admission request.

    Owns a temporary directory that is removed by ``close()`` or when the
    context manager exits. Never shared between requests.
    """
    docker_config_dir: str
    registries: Tuple[str, ...] = field(default_factory=tuple)

    def env(self) -> Dict[str, str]:
        """Environment for tools reading docker credentials."""
        return {"DOCKER_CONFIG": self.docker_config_dir}

    def has_credentials(self, registry: str) -> bool:
        """Whether a pull secret carried credentials for a registry host."""
        return _registry_host(registry) in {_registry_host(r) for r in self.registries}

    def close(self) -> None:
        shutil.rmtree(self.docker_config_dir, ignore_errors=True)

    def __enter__(self) -> "RegistryAuthContext":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _registry_host(key: str) -> str:
    # Docker config keys may be URLs such as https://index.docker.io/v1/
    host = key.split("://", 1)[-1].split("/", 1)[0].lower()
    return DEFAULT_REGISTRY if host == "docker.io" else host


def parse_docker_credentials(data: Dict[str, bytes]) -> Dict[str, Any]:
    """
    Extract the ``auths`` mapping from decoded pull secret data.

    Supports both ``.dockerconfigjson`` and legacy ``.dockercfg`` secrets.

    Raises:
        ValueError: if the data is present but not valid JSON
    """
    if DOCKER_CONFIG_JSON_KEY in data:
        parsed = json.loads(data[DOCKER_CONFIG_JSON_KEY])
        auths = parsed.get("auths") if isinstance(parsed, dict) else None
        return auths if isinstance(auths, dict) else {}
    if DOCKER_CFG_KEY in data:
        parsed = json.loads(data[DOCKER_CFG_KEY])
        return parsed if isinstance(parsed, dict) else {}
    return {}


class RegistryCredentialBuilder:
    """Build a RegistryAuthContext for a pod."""

    def __init__(self, store: KubernetesSecretStore, base_dir: Optional[str] = None):
        """
        Initialize the builder.

        Args:
            store: Cluster API access for secrets and service accounts
            base_dir: Where temporary docker config directories are created
        """
        self.store = store
        self.base_dir = base_dir

    def _secret_names(
        self,
        namespace: str,
        service_account: str,
        pull_secrets: Sequence[str],
        deadline: Optional[Deadline],
    ) -> List[str]:
        names = list(pull_secrets)
        if service_account:
            account_secrets = self.store.get_image_pull_secret_names(
                namespace, service_account, deadline
            )
            if account_secrets is None:
                logger.warning(
                    f"Service account {namespace}/{service_account} not found, "
                    "using pod image pull secrets only"
                )
            else:
                names.extend(account_secrets)

        # Keep first occurrence, pod secrets take precedence
        seen = set()
        return [n for n in names if not (n in seen or seen.add(n))]

    def build(
        self,
        namespace: str,
        service_account: str,
        pull_secrets: Sequence[str],
        deadline: Optional[Deadline] = None,
    ) -> RegistryAuthContext:
        """
        Build the registry credential context.

        Missing service accounts and missing secrets are skipped; any other
        cluster API failure aborts.

        Raises:
            KeychainInitError: if credentials cannot be assembled
        """
        auths: Dict[str, Any] = {}
        try:
            for name in self._secret_names(namespace, service_account, pull_secrets, deadline):
                data = self.store.read_secret(namespace, name, deadline)
                if data is None:
                    logger.warning(f"Image pull secret {namespace}/{name} not found, skipping")
                    continue
                try:
                    credentials = parse_docker_credentials(data)
                except ValueError as e:
                    raise KeychainInitError(
                        f"image pull secret {namespace}/{name} is not a valid docker config: {e}"
                    ) from e
                for registry, auth in credentials.items():
                    auths.setdefault(registry, auth)
        except SecretLookupError as e:
            raise KeychainInitError(f"error initializing keychain for {namespace}: {e}") from e

        try:
            config_dir = tempfile.mkdtemp(prefix="cosignwebhook-", dir=self.base_dir)
        except OSError as e:
            raise KeychainInitError(f"can't create docker config directory: {e}") from e
        try:
            config_path = os.path.join(config_dir, "config.json")
            fd = os.open(config_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump({"auths": auths}, f)
        except OSError as e:
            shutil.rmtree(config_dir, ignore_errors=True)
            raise KeychainInitError(f"can't write docker config: {e}") from e

        logger.debug(f"Built keychain for {namespace} with {len(auths)} registries")
        return RegistryAuthContext(
            docker_config_dir=config_dir,
            registries=tuple(sorted(auths)),
        )
