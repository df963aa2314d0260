"""Tests for registry credential assembly."""

import json
import os
import stat
from unittest.mock import MagicMock

import pytest

from cosignwebhook.core.credentials import RegistryCredentialBuilder, parse_docker_credentials
from cosignwebhook.errors import KeychainInitError, SecretLookupError


def _dockerconfigjson(auths: dict) -> dict:
    return {".dockerconfigjson": json.dumps({"auths": auths}).encode()}


@pytest.fixture
def store():
    store = MagicMock()
    store.get_image_pull_secret_names.return_value = []
    store.read_secret.return_value = None
    return store


def _read_config(auth) -> dict:
    with open(os.path.join(auth.docker_config_dir, "config.json")) as f:
        return json.load(f)


class TestParseDockerCredentials:

    def test_dockerconfigjson(self):
        data = _dockerconfigjson({"ghcr.io": {"auth": "dXNlcjpwYXNz"}})

        assert parse_docker_credentials(data) == {"ghcr.io": {"auth": "dXNlcjpwYXNz"}}

    def test_legacy_dockercfg(self):
        data = {".dockercfg": json.dumps({"quay.io": {"auth": "eDp5"}}).encode()}

        assert parse_docker_credentials(data) == {"quay.io": {"auth": "eDp5"}}

    def test_other_secret_types_carry_no_credentials(self):
        assert parse_docker_credentials({"token": b"abc"}) == {}

    def test_invalid_json(self):
        with pytest.raises(ValueError):
            parse_docker_credentials({".dockerconfigjson": b"{not json"})


class TestBuild:

    def test_merges_pod_and_service_account_secrets(self, store, tmp_path):
        store.get_image_pull_secret_names.return_value = ["sa-secret", "pod-secret"]
        store.read_secret.side_effect = lambda ns, name, deadline=None: {
            "pod-secret": _dockerconfigjson({"ghcr.io": {"auth": "pod"}}),
            "sa-secret": _dockerconfigjson({"ghcr.io": {"auth": "sa"}, "quay.io": {"auth": "sa"}}),
        }[name]

        with RegistryCredentialBuilder(store, base_dir=str(tmp_path)).build(
            "test", "builder", ["pod-secret"]
        ) as auth:
            config = _read_config(auth)
            assert config["auths"] == {"ghcr.io": {"auth": "pod"}, "quay.io": {"auth": "sa"}}
            assert auth.registries == ("ghcr.io", "quay.io")
            assert auth.env() == {"DOCKER_CONFIG": auth.docker_config_dir}

        # Each secret read once even when listed twice
        assert [c.args[1] for c in store.read_secret.call_args_list] == ["pod-secret", "sa-secret"]
        store.get_image_pull_secret_names.assert_called_once_with("test", "builder", None)

    def test_config_file_is_private(self, store, tmp_path):
        with RegistryCredentialBuilder(store, base_dir=str(tmp_path)).build("test", "default", []) as auth:
            mode = os.stat(os.path.join(auth.docker_config_dir, "config.json")).st_mode

        assert stat.S_IMODE(mode) == 0o600

    def test_directory_is_removed_on_close(self, store, tmp_path):
        auth = RegistryCredentialBuilder(store, base_dir=str(tmp_path)).build("test", "default", [])
        assert os.path.isdir(auth.docker_config_dir)

        auth.close()

        assert not os.path.exists(auth.docker_config_dir)

    def test_missing_service_account_is_skipped(self, store, tmp_path):
        store.get_image_pull_secret_names.return_value = None
        store.read_secret.return_value = _dockerconfigjson({"ghcr.io": {"auth": "pod"}})

        with RegistryCredentialBuilder(store, base_dir=str(tmp_path)).build(
            "test", "missing", ["pod-secret"]
        ) as auth:
            assert auth.registries == ("ghcr.io",)

    def test_missing_secret_is_skipped(self, store, tmp_path):
        with RegistryCredentialBuilder(store, base_dir=str(tmp_path)).build(
            "test", "default", ["gone"]
        ) as auth:
            assert _read_config(auth) == {"auths": {}}

    def test_api_failure_aborts(self, store, tmp_path):
        store.read_secret.side_effect = SecretLookupError("can't get secret test/pod-secret: 500")

        with pytest.raises(KeychainInitError):
            RegistryCredentialBuilder(store, base_dir=str(tmp_path)).build("test", "default", ["pod-secret"])

        assert os.listdir(tmp_path) == []

    def test_service_account_failure_aborts(self, store, tmp_path):
        store.get_image_pull_secret_names.side_effect = SecretLookupError("forbidden")

        with pytest.raises(KeychainInitError):
            RegistryCredentialBuilder(store, base_dir=str(tmp_path)).build("test", "default", [])

    def test_invalid_pull_secret_aborts(self, store, tmp_path):
        store.read_secret.return_value = {".dockerconfigjson": b"{not json"}

        with pytest.raises(KeychainInitError):
            RegistryCredentialBuilder(store, base_dir=str(tmp_path)).build("test", "default", ["broken"])
