"""Admission request handling.

Turns a raw AdmissionReview body into an HTTP status and payload. Policy
decisions are always returned as an AdmissionReview; requests that cannot
be evaluated at all get a plain error status instead.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from ..core.credentials import RegistryCredentialBuilder
from ..core.observability import Observability
from ..core.orchestrator import PodVerificationOrchestrator
from ..errors import AdmissionRequestError, KeychainInitError
from ..models.admission import OrchestrationResult, PodVerificationRequest
from ..utils.deadline import Deadline
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class HandlerResponse:
    """HTTP status plus either an AdmissionReview or a plain error text."""
    status: int
    body: Union[Dict[str, Any], str]

    @property
    def is_review(self) -> bool:
        return isinstance(self.body, dict)


class AdmissionHandler:
    """Evaluates admission requests for pods."""

    def __init__(
        self,
        credentials: RegistryCredentialBuilder,
        orchestrator: PodVerificationOrchestrator,
        observability: Observability,
        request_timeout: Optional[float] = 25,
    ):
        """
        Initialize the handler.

        Args:
            credentials: Builds the registry credentials of each pod
            orchestrator: Decides per pod
            observability: Shared metrics and event recorder
            request_timeout: Time limit for one admission request in seconds
        """
        self.credentials = credentials
        self.orchestrator = orchestrator
        self.observability = observability
        self.request_timeout = request_timeout

    def admit(
        self,
        request: PodVerificationRequest,
        deadline: Optional[Deadline] = None,
    ) -> OrchestrationResult:
        """
        Build credentials, evaluate the pod and emit the resulting event.

        Raises:
            KeychainInitError: if registry credentials cannot be built
        """
        deadline = deadline or Deadline(self.request_timeout)
        auth = self.credentials.build(
            request.namespace,
            request.service_account,
            request.image_pull_secrets,
            deadline,
        )
        with auth:
            result = self.orchestrator.evaluate(request, auth, deadline)

        if result.notification is not None:
            self.observability.notify(request, result.notification)
        return result

    def handle(self, body: bytes) -> HandlerResponse:
        """
        Handle the body of a /validate call.

        Returns:
            HandlerResponse: 200 with an AdmissionReview for allow and deny,
            400 for undecodable requests, 500 when credentials fail
        """
        if not body:
            logger.error("Empty body")
            return HandlerResponse(400, "empty body")

        self.observability.record_request()

        try:
            request = PodVerificationRequest.from_admission_review(json.loads(body))
        except (ValueError, AdmissionRequestError) as e:
            logger.error(f"Error decoding admission request: {e}")
            return HandlerResponse(400, "incorrect body")

        logger.debug(f"Admission request {request.uid} for pod {request.pod_ref}")

        try:
            result = self.admit(request)
        except KeychainInitError as e:
            logger.error(f"Error initializing k8schain for {request.pod_ref}: {e}")
            return HandlerResponse(500, "Failed initializing k8schain")

        return HandlerResponse(200, result.decision.to_admission_review())
