"""Tests for metrics and event emission."""

from unittest.mock import MagicMock

from kubernetes.client import ApiException

from cosignwebhook.core.observability import EventRecorder, Observability, PodEvent
from cosignwebhook.models.admission import Notification, PodVerificationRequest

EVENT = PodEvent(namespace="test", pod_name="app", reason="PodVerified", message="verified")


class TestMetrics:

    def test_counters_start_at_zero(self):
        observability = Observability()

        assert observability.registry.get_sample_value("cosign_processed_ops_total") == 0
        assert observability.registry.get_sample_value("cosign_processed_verified_total") == 0

    def test_counters(self):
        observability = Observability()

        observability.record_request()
        observability.record_request()
        observability.record_verified()

        assert observability.registry.get_sample_value("cosign_processed_ops_total") == 2
        assert observability.registry.get_sample_value("cosign_processed_verified_total") == 1

    def test_instances_do_not_share_counters(self):
        first, second = Observability(), Observability()

        first.record_request()

        assert second.registry.get_sample_value("cosign_processed_ops_total") == 0

    def test_render_metrics(self):
        observability = Observability()
        observability.record_verified()

        payload, content_type = observability.render_metrics()

        assert b"cosign_processed_verified_total 1.0" in payload
        assert content_type.startswith("text/plain")


class TestEventRecorder:

    def test_write_creates_pod_event(self):
        core_api = MagicMock()
        recorder = EventRecorder(core_api, host="webhook-0", timeout=3)

        assert recorder.write(EVENT) is True

        namespace, body = core_api.create_namespaced_event.call_args.args
        assert namespace == "test"
        assert core_api.create_namespaced_event.call_args.kwargs == {"_request_timeout": 3}
        assert body.reason == "PodVerified"
        assert body.type == "Normal"
        assert body.count == 1
        assert body.metadata.generate_name == "app."
        assert body.involved_object.kind == "Pod"
        assert body.involved_object.name == "app"
        assert body.source.component == "Cosignwebhook"
        assert body.source.host == "webhook-0"

    def test_write_failure_is_reported_not_raised(self):
        core_api = MagicMock()
        core_api.create_namespaced_event.side_effect = ApiException(status=403, reason="Forbidden")

        assert EventRecorder(core_api).write(EVENT) is False

    def test_queued_events_are_written_before_shutdown(self):
        core_api = MagicMock()
        recorder = EventRecorder(core_api)
        recorder.start()
        assert recorder.running

        for _ in range(3):
            recorder.emit(EVENT)
        recorder.shutdown()

        assert core_api.create_namespaced_event.call_count == 3
        assert not recorder.running

    def test_unexpected_write_error_keeps_worker_alive(self):
        core_api = MagicMock()
        core_api.create_namespaced_event.side_effect = [RuntimeError("client failure"), None]
        recorder = EventRecorder(core_api)
        recorder.start()

        recorder.emit(EVENT)
        recorder.emit(EVENT)
        recorder.shutdown()

        assert core_api.create_namespaced_event.call_count == 2

    def test_full_queue_drops_events(self):
        core_api = MagicMock()
        recorder = EventRecorder(core_api, max_queued=1)

        recorder.emit(EVENT)
        recorder.emit(EVENT)
        recorder.start()
        recorder.shutdown()

        assert core_api.create_namespaced_event.call_count == 1


class TestNotify:

    def test_emits_event_for_pod(self):
        events = MagicMock()
        request = PodVerificationRequest(uid="1", namespace="test", pod_name="app")

        Observability(events=events).notify(request, Notification.NO_VERIFICATION)

        event = events.emit.call_args.args[0]
        assert event.reason == "NoVerification"
        assert event.message == "No signature verification performed"
        assert (event.namespace, event.pod_name) == ("test", "app")

    def test_without_recorder(self):
        request = PodVerificationRequest(uid="1", namespace="test", pod_name="app")

        Observability().notify(request, Notification.POD_VERIFIED)
