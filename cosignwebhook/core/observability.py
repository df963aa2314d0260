"""Metrics and Kubernetes events for the webhook.

Everything here is best effort: a failure to record a metric or emit an
event is logged and never changes an admission decision.
"""

import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from kubernetes import client
from kubernetes.client import ApiException
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest
from urllib3.exceptions import HTTPError as TransportError

from ..models.admission import Notification, PodVerificationRequest
from ..utils.logging import get_logger

logger = get_logger(__name__)

EVENT_COMPONENT = "Cosignwebhook"
EVENT_TYPE_NORMAL = "Normal"


@dataclass(frozen=True)
class PodEvent:
    """An event queued for emission."""
    namespace: str
    pod_name: str
    reason: str
    message: str
    event_type: str = EVENT_TYPE_NORMAL


class EventRecorder:
    """
    Fire-and-forget Kubernetes event emitter.

    Events are queued by request threads and written by a single worker
    thread, so emitting never blocks or fails an admission request.
    """

    def __init__(
        self,
        core_api: client.CoreV1Api,
        host: str = "",
        component: str = EVENT_COMPONENT,
        timeout: float = 10,
        max_queued: int = 1000,
    ):
        """
        Initialize the recorder.

        Args:
            core_api: Shared CoreV1 API client
            host: Host reported as the event source
            component: Component reported as the event source
            timeout: Timeout for a single event write
            max_queued: Events beyond this many pending are dropped
        """
        self.core_api = core_api
        self.host = host
        self.component = component
        self.timeout = timeout
        self._queue: "queue.Queue[Optional[PodEvent]]" = queue.Queue(maxsize=max_queued)
        self._worker: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._worker = threading.Thread(target=self._run, name="event-recorder", daemon=True)
        self._worker.start()
        logger.debug("Event recorder started")

    def shutdown(self, timeout: float = 5) -> None:
        """Stop the worker after it has written the queued events."""
        if not self.running:
            return
        self._queue.put(None)
        self._worker.join(timeout)
        if self._worker.is_alive():
            logger.warning("Event recorder did not drain before shutdown")
        self._worker = None

    def emit(self, event: PodEvent) -> None:
        """Queue an event; drops it with a warning when the queue is full."""
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning(f"Event queue full, dropping {event.reason} event for {event.namespace}/{event.pod_name}")

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is None:
                return
            try:
                self.write(event)
            except Exception:
                logger.exception(f"Unexpected error emitting {event.reason} event for {event.namespace}/{event.pod_name}")

    def write(self, event: PodEvent) -> bool:
        """Create the event in the cluster. Returns False on failure."""
        now = datetime.now(timezone.utc)
        body = client.CoreV1Event(
            metadata=client.V1ObjectMeta(
                generate_name=f"{event.pod_name or 'pod'}.",
                namespace=event.namespace,
            ),
            involved_object=client.V1ObjectReference(
                api_version="v1",
                kind="Pod",
                name=event.pod_name,
                namespace=event.namespace,
            ),
            reason=event.reason,
            message=event.message,
            type=event.event_type,
            source=client.V1EventSource(component=self.component, host=self.host),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )
        try:
            self.core_api.create_namespaced_event(
                event.namespace, body, _request_timeout=self.timeout
            )
        except (ApiException, TransportError) as e:
            logger.error(f"Can't emit {event.reason} event for {event.namespace}/{event.pod_name}: {e}")
            return False
        logger.debug(f"Emitted {event.reason} event for {event.namespace}/{event.pod_name}")
        return True


class Observability:
    """
    Metrics registry and event recorder shared by all requests.

    Constructed once at startup and injected; ``start()`` and
    ``shutdown()`` bound its lifetime.
    """

    def __init__(
        self,
        events: Optional[EventRecorder] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.events = events
        self.registry = registry or CollectorRegistry()
        self.ops_processed = Counter(
            "cosign_processed_ops_total",
            "The total number of processed events",
            registry=self.registry,
        )
        self.verified_processed = Counter(
            "cosign_processed_verified_total",
            "The number of verified events",
            registry=self.registry,
        )

    def start(self) -> None:
        if self.events is not None:
            self.events.start()

    def shutdown(self) -> None:
        if self.events is not None:
            self.events.shutdown()

    def record_request(self) -> None:
        self.ops_processed.inc()

    def record_verified(self) -> None:
        self.verified_processed.inc()

    def notify(self, request: PodVerificationRequest, notification: Notification) -> None:
        """Emit the event for an allowed pod."""
        if self.events is None:
            logger.debug(f"No event recorder, not emitting {notification.value} for {request.pod_ref}")
            return
        self.events.emit(PodEvent(
            namespace=request.namespace,
            pod_name=request.pod_name,
            reason=notification.value,
            message=notification.message,
        ))

    def render_metrics(self) -> Tuple[bytes, str]:
        """Prometheus exposition of the registry."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
