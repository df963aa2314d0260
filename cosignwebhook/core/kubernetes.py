"""Kubernetes API access module.

Reads secrets and service accounts on behalf of admission requests.
"""

import base64
from dataclasses import dataclass
from typing import Dict, List, Optional

from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.config import ConfigException
from urllib3.exceptions import HTTPError as TransportError

from ..errors import DeadlineExceeded, SecretLookupError
from ..utils.deadline import Deadline
from ..utils.logging import get_logger, is_verbose

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10


@dataclass
class KubernetesConfig:
    """Kubernetes connection configuration."""
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    in_cluster: Optional[bool] = None

    def load_api_client(self) -> client.ApiClient:
        """
        Build an API client.

        In-cluster configuration is used when requested, or when neither a
        kubeconfig nor a context was given and a service account token is
        mounted. Otherwise the kubeconfig file (or its default location) is
        used.
        """
        use_in_cluster = self.in_cluster
        if use_in_cluster is None:
            use_in_cluster = not (self.kubeconfig or self.context)

        if use_in_cluster:
            try:
                config.load_incluster_config()
                logger.debug("Using in-cluster Kubernetes configuration")
                return client.ApiClient()
            except ConfigException as e:
                if self.in_cluster:
                    raise
                logger.debug(f"In-cluster configuration unavailable ({e}), trying kubeconfig")

        logger.debug(f"Using kubeconfig {self.kubeconfig or '(default)'} context {self.context or '(current)'}")
        return config.new_client_from_config(
            config_file=self.kubeconfig,
            context=self.context,
        )


def _is_not_found(error: ApiException) -> bool:
    return error.status == 404


class KubernetesSecretStore:
    """
    Narrow read-only view of the cluster API used by the webhook.

    The underlying ApiClient is shared by all requests; every call is
    bounded by the per-call timeout and the caller's deadline.
    """

    def __init__(self, core_api: client.CoreV1Api, timeout: float = DEFAULT_TIMEOUT):
        self.core_api = core_api
        self.timeout = timeout

    def _request_timeout(self, deadline: Optional[Deadline], operation: str) -> float:
        return (deadline or Deadline.never()).timeout(self.timeout, operation)

    def read_secret(
        self,
        namespace: str,
        name: str,
        deadline: Optional[Deadline] = None,
    ) -> Optional[Dict[str, bytes]]:
        """
        Read and decode all data of a secret.

        Returns:
            Mapping of key to raw bytes, or None if the secret does not exist

        Raises:
            SecretLookupError: on any other API or transport failure
        """
        try:
            secret = self.core_api.read_namespaced_secret(
                name,
                namespace,
                _request_timeout=self._request_timeout(deadline, f"reading secret {namespace}/{name}"),
            )
        except ApiException as e:
            if _is_not_found(e):
                logger.debug(f"Secret {namespace}/{name} not found")
                return None
            raise SecretLookupError(
                f"can't get secret {namespace}/{name}: {e.status} {e.reason}"
            ) from e
        except (TransportError, DeadlineExceeded) as e:
            raise SecretLookupError(f"can't get secret {namespace}/{name}: {e}") from e

        data = secret.data or {}
        try:
            return {k: base64.b64decode(v or "") for k, v in data.items()}
        except ValueError as e:
            raise SecretLookupError(f"secret {namespace}/{name} has undecodable data") from e

    def get(
        self,
        namespace: str,
        name: str,
        key: str,
        deadline: Optional[Deadline] = None,
    ) -> Optional[str]:
        """
        Get one value of a secret.

        Returns:
            The value, or None if the secret or key is missing or empty

        Raises:
            SecretLookupError: on API failures other than not found
        """
        data = self.read_secret(namespace, name, deadline)
        if data is None:
            return None

        value = data.get(key)
        if not value:
            logger.debug(f"Secret value of {key!r} is empty or missing for {namespace}/{name}")
            return None

        text = value.decode("utf-8", errors="replace")
        if is_verbose():
            logger.debug(f"Found value in secret {namespace}/{name}, key {key}: {text}")
        return text

    def get_image_pull_secret_names(
        self,
        namespace: str,
        service_account: str,
        deadline: Optional[Deadline] = None,
    ) -> Optional[List[str]]:
        """
        Names of the image pull secrets attached to a service account.

        Returns:
            List of secret names, or None if the service account does not exist

        Raises:
            SecretLookupError: on API failures other than not found
        """
        try:
            account = self.core_api.read_namespaced_service_account(
                service_account,
                namespace,
                _request_timeout=self._request_timeout(
                    deadline, f"reading service account {namespace}/{service_account}"
                ),
            )
        except ApiException as e:
            if _is_not_found(e):
                return None
            raise SecretLookupError(
                f"can't get service account {namespace}/{service_account}: {e.status} {e.reason}"
            ) from e
        except (TransportError, DeadlineExceeded) as e:
            raise SecretLookupError(
                f"can't get service account {namespace}/{service_account}: {e}"
            ) from e

        return [ref.name for ref in account.image_pull_secrets or [] if ref.name]
