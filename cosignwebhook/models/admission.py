"""Data models for admission requests and verification decisions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import AdmissionRequestError, FailureReason

ADMISSION_API = "admission.k8s.io/v1"
ADMISSION_KIND = "AdmissionReview"


class ContainerKind(Enum):
    """Which list of the pod spec a container came from."""
    INIT = "init container"
    REGULAR = "container"


@dataclass(frozen=True)
class SecretKeyRef:
    """Reference to one key of a secret in the pod's namespace."""
    name: str
    key: str


@dataclass(frozen=True)
class EnvVar:
    """One entry of a container's env list."""
    name: str
    value: Optional[str] = None
    secret_key_ref: Optional[SecretKeyRef] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnvVar":
        ref = None
        secret = ((data.get("valueFrom") or {}).get("secretKeyRef")) or None
        if secret:
            ref = SecretKeyRef(name=secret.get("name", ""), key=secret.get("key", ""))
        return cls(name=data.get("name", ""), value=data.get("value"), secret_key_ref=ref)


@dataclass(frozen=True)
class ContainerSpec:
    """The parts of a container the webhook looks at."""
    name: str
    image: str = ""
    env: Tuple[EnvVar, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContainerSpec":
        return cls(
            name=data.get("name", ""),
            image=data.get("image") or "",
            env=tuple(EnvVar.from_dict(e) for e in data.get("env") or []),
        )

    def get_env(self, name: str) -> Optional[EnvVar]:
        """First env entry with the given name."""
        for env in self.env:
            if env.name == name:
                return env
        return None


@dataclass(frozen=True)
class PodVerificationRequest:
    """Everything the orchestrator needs to judge one pod."""
    uid: str
    namespace: str
    pod_name: str = ""
    service_account: str = ""
    image_pull_secrets: Tuple[str, ...] = ()
    init_containers: Tuple[ContainerSpec, ...] = ()
    containers: Tuple[ContainerSpec, ...] = ()

    def containers_in_order(self) -> Iterator[Tuple[ContainerKind, ContainerSpec]]:
        """Init containers first, then regular containers, each in spec order."""
        for container in self.init_containers:
            yield ContainerKind.INIT, container
        for container in self.containers:
            yield ContainerKind.REGULAR, container

    @property
    def pod_ref(self) -> str:
        return f"{self.namespace}/{self.pod_name}"

    @classmethod
    def from_pod(cls, pod: Dict[str, Any], uid: str = "", namespace: str = "") -> "PodVerificationRequest":
        """
        Build a request from a Pod object.

        Args:
            pod: Pod as decoded JSON
            uid: Admission request UID
            namespace: Namespace from the admission request, used when the
                pod metadata has none (pods created by controllers)

        Raises:
            AdmissionRequestError: if the object is not a usable Pod
        """
        if not isinstance(pod, dict):
            raise AdmissionRequestError("pod object is not a JSON object")
        metadata = pod.get("metadata") or {}
        spec = pod.get("spec") or {}
        if not isinstance(metadata, dict) or not isinstance(spec, dict):
            raise AdmissionRequestError("pod metadata or spec is malformed")

        try:
            init_containers = tuple(
                ContainerSpec.from_dict(c) for c in spec.get("initContainers") or []
            )
            containers = tuple(
                ContainerSpec.from_dict(c) for c in spec.get("containers") or []
            )
            pull_secrets = tuple(
                s.get("name", "") for s in spec.get("imagePullSecrets") or []
            )
        except (AttributeError, TypeError) as e:
            raise AdmissionRequestError(f"error deserializing pod: {e}") from e

        return cls(
            uid=uid,
            namespace=metadata.get("namespace") or namespace or "default",
            pod_name=metadata.get("name") or metadata.get("generateName") or "",
            service_account=spec.get("serviceAccountName") or "default",
            image_pull_secrets=tuple(s for s in pull_secrets if s),
            init_containers=init_containers,
            containers=containers,
        )

    @classmethod
    def from_admission_review(cls, review: Any) -> "PodVerificationRequest":
        """
        Decode the Pod carried by an AdmissionReview.

        Raises:
            AdmissionRequestError: if the envelope or pod cannot be decoded
        """
        if not isinstance(review, dict):
            raise AdmissionRequestError("incorrect body")
        request = review.get("request")
        if not isinstance(request, dict):
            raise AdmissionRequestError("admissionreview request not found")
        pod = request.get("object")
        if pod is None:
            raise AdmissionRequestError("admissionreview request carries no object")
        return cls.from_pod(
            pod,
            uid=str(request.get("uid") or ""),
            namespace=request.get("namespace") or "",
        )


class KeyLookupStatus(Enum):
    """Outcome of looking up a container's public key."""
    FOUND = "found"
    NOT_FOUND = "not-found"
    LOOKUP_ERROR = "lookup-error"


@dataclass(frozen=True)
class KeyLookupResult:
    """Public key material, or why there is none."""
    status: KeyLookupStatus
    key: Optional[str] = None
    cause: Optional[str] = None

    @classmethod
    def found(cls, key: str) -> "KeyLookupResult":
        return cls(KeyLookupStatus.FOUND, key=key)

    @classmethod
    def not_found(cls) -> "KeyLookupResult":
        return cls(KeyLookupStatus.NOT_FOUND)

    @classmethod
    def lookup_error(cls, cause: str) -> "KeyLookupResult":
        return cls(KeyLookupStatus.LOOKUP_ERROR, cause=cause)


class VerificationStatus(Enum):
    """Per-container result."""
    SKIPPED = "skipped"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass(frozen=True)
class ContainerOutcome:
    """What happened to one evaluated container."""
    container: ContainerSpec
    kind: ContainerKind
    status: VerificationStatus
    failure: Optional[FailureReason] = None
    message: str = ""


class Notification(Enum):
    """Event emitted after an allowed pod."""
    POD_VERIFIED = "PodVerified"
    NO_VERIFICATION = "NoVerification"

    @property
    def message(self) -> str:
        if self is Notification.POD_VERIFIED:
            return "Signature of pod's images(s) verified successfully"
        return "No signature verification performed"


@dataclass(frozen=True)
class AdmissionDecision:
    """Allow or deny, always carrying the request UID."""
    allowed: bool
    message: str
    uid: str

    @classmethod
    def allow(cls, uid: str, message: str = "Cosign verification passed") -> "AdmissionDecision":
        return cls(allowed=True, message=message, uid=uid)

    @classmethod
    def deny(cls, uid: str, message: str) -> "AdmissionDecision":
        return cls(allowed=False, message=message, uid=uid)

    @property
    def http_code(self) -> int:
        return 200 if self.allowed else 403

    def to_admission_review(self) -> Dict[str, Any]:
        """Render as an admission.k8s.io/v1 AdmissionReview response."""
        return {
            "apiVersion": ADMISSION_API,
            "kind": ADMISSION_KIND,
            "response": {
                "uid": self.uid,
                "allowed": self.allowed,
                "status": {
                    "status": "Success" if self.allowed else "Failure",
                    "message": self.message,
                    "code": self.http_code,
                },
            },
        }


@dataclass
class OrchestrationResult:
    """Decision for a pod plus the trail that led to it."""
    decision: AdmissionDecision
    notification: Optional[Notification] = None
    outcomes: List[ContainerOutcome] = field(default_factory=list)

    @property
    def verified_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is VerificationStatus.VERIFIED)

    @property
    def attempted_count(self) -> int:
        """Containers for which a verification was actually attempted."""
        return sum(
            1 for o in self.outcomes
            if o.status is not VerificationStatus.SKIPPED
            and o.failure is not FailureReason.KEY_LOOKUP_FAILED
        )
