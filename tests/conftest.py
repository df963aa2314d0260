"""Shared fixtures: real keys, fake cluster secrets and a fake cosign."""

from typing import Dict, List, Optional, Set, Tuple

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from cosignwebhook.core.credentials import RegistryAuthContext
from cosignwebhook.core.keys import PublicKeyResolver
from cosignwebhook.core.observability import Observability
from cosignwebhook.core.orchestrator import KeyLookupPolicy, PodVerificationOrchestrator
from cosignwebhook.core.verification import ContainerVerifier
from cosignwebhook.errors import SecretLookupError
from cosignwebhook.utils.subprocess import CommandResult


def _public_pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture(scope="session")
def ecdsa_pem() -> str:
    return _public_pem(ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture(scope="session")
def other_ecdsa_pem() -> str:
    return _public_pem(ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture(scope="session")
def rsa_pem() -> str:
    return _public_pem(rsa.generate_private_key(public_exponent=65537, key_size=2048))


@pytest.fixture(scope="session")
def ed25519_pem() -> str:
    return _public_pem(ed25519.Ed25519PrivateKey.generate())


class FakeSecretStore:
    """In-memory secrets keyed by (namespace, name)."""

    def __init__(self, secrets: Optional[Dict[Tuple[str, str], Dict[str, str]]] = None):
        self.secrets = secrets or {}
        self.failing: Set[Tuple[str, str]] = set()
        self.calls: List[Tuple[str, str, str]] = []

    def get(self, namespace, name, key, deadline=None):
        self.calls.append((namespace, name, key))
        if (namespace, name) in self.failing:
            raise SecretLookupError(f"can't get secret {namespace}/{name}: 500 Internal Server Error")
        data = self.secrets.get((namespace, name))
        if data is None:
            return None
        return data.get(key) or None


class FakeCosign:
    """Stands in for the cosign CLI: images are signed with one key each."""

    def __init__(self):
        self.signed_with: Dict[str, str] = {}
        self.calls: List[dict] = []

    def sign(self, image: str, pem: str) -> None:
        self.signed_with[image] = pem

    def verify(self, image, strategy, auth, repository=None, deadline=None):
        self.calls.append({
            "image": str(image),
            "algorithm": strategy.algorithm,
            "repository": str(repository) if repository else None,
            "docker_config": auth.docker_config_dir,
        })
        for name, pem in self.signed_with.items():
            if str(image).endswith(name) and pem == strategy.pem:
                return CommandResult(returncode=0, stdout="[]", stderr="")
        return CommandResult(returncode=1, stdout="", stderr="Error: no matching signatures")


@pytest.fixture
def secrets() -> FakeSecretStore:
    return FakeSecretStore()


@pytest.fixture
def cosign() -> FakeCosign:
    return FakeCosign()


@pytest.fixture
def observability() -> Observability:
    return Observability()


@pytest.fixture
def auth(tmp_path) -> RegistryAuthContext:
    return RegistryAuthContext(docker_config_dir=str(tmp_path))


@pytest.fixture
def orchestrator(secrets, cosign, observability) -> PodVerificationOrchestrator:
    return PodVerificationOrchestrator(
        resolver=PublicKeyResolver(secrets),
        verifier=ContainerVerifier(cosign, observability),
        key_lookup_policy=KeyLookupPolicy.FAIL_OPEN,
    )


def container(name: str, image: str, key: Optional[str] = None, secret_ref=None, **extra_env) -> dict:
    """Container dict as found in a pod spec."""
    env = []
    if key is not None:
        env.append({"name": "COSIGNPUBKEY", "value": key})
    if secret_ref is not None:
        env.append({
            "name": "COSIGNPUBKEY",
            "valueFrom": {"secretKeyRef": {"name": secret_ref[0], "key": secret_ref[1]}},
        })
    for env_name, value in extra_env.items():
        env.append({"name": env_name, "value": value})
    data = {"name": name, "image": image}
    if env:
        data["env"] = env
    return data


def pod(containers=(), init_containers=(), namespace="test", name="app", **spec_extra) -> dict:
    spec = {"containers": list(containers)}
    if init_containers:
        spec["initContainers"] = list(init_containers)
    spec.update(spec_extra)
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
    }


def admission_review(pod_obj: dict, uid: str = "705ab4f5-6393-11e8-b7cc-42010a800002") -> dict:
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": {
            "uid": uid,
            "kind": {"group": "", "version": "v1", "kind": "Pod"},
            "namespace": pod_obj["metadata"].get("namespace", ""),
            "operation": "CREATE",
            "object": pod_obj,
        },
    }
