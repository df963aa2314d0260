"""Per-pod verification orchestrator.

Walks the init containers and then the regular containers of a pod as
one ordered sequence. Each container either has no key (skipped), or is
verified, or fails; the first failure denies the pod and stops the walk.
"""

from enum import Enum
from typing import Optional

from ..errors import FailureReason, VerificationError
from ..models.admission import (
    AdmissionDecision,
    ContainerKind,
    ContainerOutcome,
    ContainerSpec,
    KeyLookupStatus,
    Notification,
    OrchestrationResult,
    PodVerificationRequest,
    VerificationStatus,
)
from ..utils.deadline import Deadline
from ..utils.logging import get_logger
from .credentials import RegistryAuthContext
from .keys import PublicKeyResolver
from .verification import COSIGN_REPOSITORY_ENV_VAR, ContainerVerifier

logger = get_logger(__name__)


class KeyLookupPolicy(Enum):
    """
    What a failed key lookup means for admission.

    FAIL_OPEN treats a lookup error like an unconfigured key and skips
    the container. FAIL_CLOSED denies the pod.
    """
    FAIL_OPEN = "fail-open"
    FAIL_CLOSED = "fail-closed"


class PodVerificationOrchestrator:
    """Decide whether a pod may be admitted."""

    def __init__(
        self,
        resolver: PublicKeyResolver,
        verifier: ContainerVerifier,
        key_lookup_policy: KeyLookupPolicy = KeyLookupPolicy.FAIL_OPEN,
    ):
        self.resolver = resolver
        self.verifier = verifier
        self.key_lookup_policy = key_lookup_policy

    def evaluate(
        self,
        request: PodVerificationRequest,
        auth: RegistryAuthContext,
        deadline: Optional[Deadline] = None,
    ) -> OrchestrationResult:
        """
        Evaluate all containers of a pod, stopping at the first failure.

        Args:
            request: Decoded pod
            auth: Registry credentials built for this request
            deadline: Request deadline passed to every downstream call

        Returns:
            OrchestrationResult with the decision and the notification to emit
        """
        result = OrchestrationResult(decision=AdmissionDecision.allow(request.uid))

        for kind, container in request.containers_in_order():
            outcome = self._evaluate_container(request, kind, container, auth, deadline)
            result.outcomes.append(outcome)

            if outcome.status is VerificationStatus.FAILED:
                logger.error(
                    f"Error verifying {kind.value} {request.pod_ref}/{container.name}: {outcome.message}"
                )
                result.decision = AdmissionDecision.deny(
                    request.uid,
                    f"{kind.value} {container.name!r} denied: "
                    f"{outcome.failure.value}: {outcome.message}",
                )
                return result

        if result.verified_count > 0:
            result.notification = Notification.POD_VERIFIED
        else:
            result.notification = Notification.NO_VERIFICATION
        logger.info(
            f"Pod {request.pod_ref} admitted, {result.verified_count} of "
            f"{len(result.outcomes)} containers verified"
        )
        return result

    def _evaluate_container(
        self,
        request: PodVerificationRequest,
        kind: ContainerKind,
        container: ContainerSpec,
        auth: RegistryAuthContext,
        deadline: Optional[Deadline],
    ) -> ContainerOutcome:
        lookup = self.resolver.resolve(container, request.namespace, deadline)

        if lookup.status is KeyLookupStatus.LOOKUP_ERROR:
            if self.key_lookup_policy is KeyLookupPolicy.FAIL_CLOSED:
                return ContainerOutcome(
                    container, kind, VerificationStatus.FAILED,
                    failure=FailureReason.KEY_LOOKUP_FAILED,
                    message=f"public key lookup failed: {lookup.cause}",
                )
            logger.warning(
                f"Skipping {kind.value} {request.pod_ref}/{container.name}, "
                f"key lookup failed and policy is fail-open: {lookup.cause}"
            )
            return ContainerOutcome(container, kind, VerificationStatus.SKIPPED,
                                    message=f"key lookup failed: {lookup.cause}")

        if lookup.status is KeyLookupStatus.NOT_FOUND:
            return ContainerOutcome(container, kind, VerificationStatus.SKIPPED,
                                    message="no public key")

        logger.debug(f"Verifying {kind.value} {request.pod_ref}/{container.name}")
        repository = container.get_env(COSIGN_REPOSITORY_ENV_VAR)
        try:
            self.verifier.verify(
                container.image,
                lookup.key,
                auth,
                repository_override=repository.value if repository else None,
                deadline=deadline,
            )
        except VerificationError as e:
            return ContainerOutcome(container, kind, VerificationStatus.FAILED,
                                    failure=e.reason, message=e.message)

        return ContainerOutcome(container, kind, VerificationStatus.VERIFIED,
                                message=f"image {container.image!r} verified")
