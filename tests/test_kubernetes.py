"""Tests for the cluster API access layer."""

import base64
from unittest.mock import MagicMock

import pytest
from kubernetes.client import ApiException, V1LocalObjectReference, V1Secret, V1ServiceAccount
from urllib3.exceptions import ReadTimeoutError

from cosignwebhook.core.kubernetes import KubernetesSecretStore
from cosignwebhook.errors import SecretLookupError
from cosignwebhook.utils.deadline import Deadline


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


@pytest.fixture
def core_api():
    return MagicMock()


class TestReadSecret:

    def test_decodes_data(self, core_api):
        core_api.read_namespaced_secret.return_value = V1Secret(data={"COSIGNPUBKEY": _b64("pem")})

        data = KubernetesSecretStore(core_api, timeout=7).read_secret("test", "cosign")

        assert data == {"COSIGNPUBKEY": b"pem"}
        core_api.read_namespaced_secret.assert_called_once_with("cosign", "test", _request_timeout=7)

    def test_secret_without_data(self, core_api):
        core_api.read_namespaced_secret.return_value = V1Secret(data=None)

        assert KubernetesSecretStore(core_api).read_secret("test", "cosign") == {}

    def test_not_found(self, core_api):
        core_api.read_namespaced_secret.side_effect = ApiException(status=404, reason="Not Found")

        assert KubernetesSecretStore(core_api).read_secret("test", "cosign") is None

    def test_api_error(self, core_api):
        core_api.read_namespaced_secret.side_effect = ApiException(status=500, reason="Internal Server Error")

        with pytest.raises(SecretLookupError, match="500"):
            KubernetesSecretStore(core_api).read_secret("test", "cosign")

    def test_transport_error(self, core_api):
        core_api.read_namespaced_secret.side_effect = ReadTimeoutError(None, "/api", "read timed out")

        with pytest.raises(SecretLookupError):
            KubernetesSecretStore(core_api).read_secret("test", "cosign")

    def test_expired_deadline(self, core_api):
        with pytest.raises(SecretLookupError, match="deadline"):
            KubernetesSecretStore(core_api).read_secret("test", "cosign", Deadline(0))

        core_api.read_namespaced_secret.assert_not_called()


class TestGet:

    def test_value(self, core_api):
        core_api.read_namespaced_secret.return_value = V1Secret(data={"COSIGNPUBKEY": _b64("pem")})

        assert KubernetesSecretStore(core_api).get("test", "cosign", "COSIGNPUBKEY") == "pem"

    def test_missing_key(self, core_api):
        core_api.read_namespaced_secret.return_value = V1Secret(data={"other": _b64("pem")})

        assert KubernetesSecretStore(core_api).get("test", "cosign", "COSIGNPUBKEY") is None

    def test_empty_value(self, core_api):
        core_api.read_namespaced_secret.return_value = V1Secret(data={"COSIGNPUBKEY": ""})

        assert KubernetesSecretStore(core_api).get("test", "cosign", "COSIGNPUBKEY") is None


class TestServiceAccountPullSecrets:

    def test_names(self, core_api):
        core_api.read_namespaced_service_account.return_value = V1ServiceAccount(
            image_pull_secrets=[V1LocalObjectReference(name="regcred"), V1LocalObjectReference(name="")]
        )

        names = KubernetesSecretStore(core_api).get_image_pull_secret_names("test", "default")

        assert names == ["regcred"]

    def test_no_pull_secrets(self, core_api):
        core_api.read_namespaced_service_account.return_value = V1ServiceAccount()

        assert KubernetesSecretStore(core_api).get_image_pull_secret_names("test", "default") == []

    def test_not_found(self, core_api):
        core_api.read_namespaced_service_account.side_effect = ApiException(status=404)

        assert KubernetesSecretStore(core_api).get_image_pull_secret_names("test", "builder") is None

    def test_forbidden(self, core_api):
        core_api.read_namespaced_service_account.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(SecretLookupError):
            KubernetesSecretStore(core_api).get_image_pull_secret_names("test", "builder")
