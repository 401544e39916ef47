import pytest
import httpx
from uuid import uuid4
from unittest.mock import AsyncMock, MagicMock

from src.tutorapp_backend.common.config import settings
from src.tutorapp_backend.database.db_enums import NotificationKind
from src.tutorapp_backend.models.notification import NotificationEvent
from src.tutorapp_backend.services.notification_service import (
    NotificationSink,
    LoggingNotificationSink,
    WebhookNotificationSink,
    NotificationDispatcher,
    NotificationService,
    build_sink_from_settings
)

WEBHOOK_URL = "https://hooks.tutorapp.io/notify"


class RecordingSink(NotificationSink):
    """Fails the first `failures` sends, then records every event."""
    name = "recording"

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0
        self.events: list[NotificationEvent] = []

    async def send(self, event: NotificationEvent) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("relay unavailable")
        self.events.append(event)


def _event(kind: NotificationKind = NotificationKind.LESSON_ASSIGNED, **payload) -> NotificationEvent:
    return NotificationEvent(kind=kind, recipients=[uuid4(), uuid4()], payload=payload)


@pytest.mark.anyio
class TestNotificationDispatcher:

    async def test_inline_delivery_when_not_running(self):
        sink = RecordingSink()
        dispatcher = NotificationDispatcher(sink, retry_delay=0)

        assert dispatcher.running is False
        await dispatcher.submit(_event(topic="Algebra"))

        assert len(sink.events) == 1
        assert sink.events[0].payload == {"topic": "Algebra"}

    async def test_retries_until_success(self):
        sink = RecordingSink(failures=2)
        dispatcher = NotificationDispatcher(sink, max_attempts=3, retry_delay=0)

        assert await dispatcher.deliver(_event()) is True
        assert sink.calls == 3
        assert len(sink.events) == 1

    async def test_gives_up_after_max_attempts(self):
        sink = RecordingSink(failures=10)
        dispatcher = NotificationDispatcher(sink, max_attempts=3, retry_delay=0)

        assert await dispatcher.deliver(_event()) is False
        assert sink.calls == 3
        assert sink.events == []

    async def test_queue_is_drained_on_stop(self):
        print("\n--- Testing the queued consumer ---")
        sink = RecordingSink(failures=1)
        dispatcher = NotificationDispatcher(sink, max_attempts=2, retry_delay=0)

        await dispatcher.start()
        await dispatcher.start()  # second start is a no-op
        assert dispatcher.running is True

        for n in range(3):
            await dispatcher.submit(_event(sequence=n))
        await dispatcher.stop()

        assert dispatcher.running is False
        assert [e.payload["sequence"] for e in sink.events] == [0, 1, 2]

    async def test_stop_without_start(self):
        dispatcher = NotificationDispatcher(RecordingSink())
        await dispatcher.stop()
        assert dispatcher.running is False


@pytest.mark.anyio
class TestNotificationSinks:

    async def test_webhook_posts_event_json(self, mocker):
        response = httpx.Response(200, request=httpx.Request("POST", WEBHOOK_URL))
        mock_post = mocker.patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response)

        event = _event(NotificationKind.PAYMENT_DECISION, status="approved", total_amount="100.00")
        await WebhookNotificationSink(WEBHOOK_URL, timeout=2.0).send(event)

        mock_post.assert_awaited_once()
        assert mock_post.call_args.args[0] == WEBHOOK_URL
        body = mock_post.call_args.kwargs["json"]
        assert body["kind"] == "payment-decision"
        assert body["payload"] == {"status": "approved", "total_amount": "100.00"}
        assert body["recipients"] == [str(r) for r in event.recipients]

    async def test_webhook_error_status_is_retried_then_dropped(self, mocker):
        response = httpx.Response(502, request=httpx.Request("POST", WEBHOOK_URL))
        mock_post = mocker.patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=response)

        dispatcher = NotificationDispatcher(WebhookNotificationSink(WEBHOOK_URL), max_attempts=2, retry_delay=0)

        assert await dispatcher.deliver(_event()) is False
        assert mock_post.await_count == 2

    async def test_logging_sink_never_fails(self):
        await LoggingNotificationSink().send(_event(topic="Geometry"))

    def test_sink_follows_settings(self, mocker):
        mocker.patch.object(settings, "NOTIFICATION_WEBHOOK_URL", "")
        assert isinstance(build_sink_from_settings(), LoggingNotificationSink)

        mocker.patch.object(settings, "NOTIFICATION_WEBHOOK_URL", WEBHOOK_URL)
        sink = build_sink_from_settings()
        assert isinstance(sink, WebhookNotificationSink)
        assert sink.url == WEBHOOK_URL


@pytest.mark.anyio
class TestNotificationService:

    async def test_notify_builds_event(self):
        sink = RecordingSink()
        service = NotificationService(dispatcher=NotificationDispatcher(sink, retry_delay=0))
        tutor_id, student_id = uuid4(), uuid4()

        await service.notify(NotificationKind.LESSON_CANCELLED, [tutor_id, student_id], lesson_id="abc", tutor_paid=True)

        event = sink.events[0]
        assert event.kind == NotificationKind.LESSON_CANCELLED
        assert event.recipients == [tutor_id, student_id]
        assert event.payload == {"lesson_id": "abc", "tutor_paid": True}

    async def test_notify_never_raises(self):
        broken = MagicMock(spec=NotificationDispatcher)
        broken.submit = AsyncMock(side_effect=RuntimeError("queue closed"))
        service = NotificationService(dispatcher=broken)

        await service.notify(NotificationKind.LESSON_COMPLETED, [uuid4()], lesson_id="abc")
        broken.submit.assert_awaited_once()

    async def test_notify_survives_failing_sink(self):
        sink = RecordingSink(failures=5)
        service = NotificationService(dispatcher=NotificationDispatcher(sink, max_attempts=2, retry_delay=0))

        await service.notify(NotificationKind.LESSON_RESCHEDULED, [uuid4()])
        assert sink.calls == 2
