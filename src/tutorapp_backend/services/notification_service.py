'''
Best-effort notifications.

Services call `NotificationService.notify(...)` after a mutation. The event is
queued on the process-wide `NotificationDispatcher`, whose background task
hands it to a sink (log only, or an HTTP webhook) with bounded retries.
Delivery failures are logged and never reach the caller.
'''
import asyncio
import contextlib
from typing import Annotated, Any, Optional
from uuid import UUID

import httpx
from fastapi import Depends

from ..common.config import settings
from ..common.logger import log
from ..database.db_enums import NotificationKind
from ..models.notification import NotificationEvent


# --- 1. Sinks ---

class NotificationSink:
    """Delivers one event. Implementations raise on failure so the dispatcher can retry."""
    name = "base"

    async def send(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    name = "log"

    async def send(self, event: NotificationEvent) -> None:
        log.info(f"NOTIFY [{event.kind.value}] -> {[str(r) for r in event.recipients]}: {event.payload}")


class WebhookNotificationSink(NotificationSink):
    """POSTs the JSON-encoded event to a configured URL (e.g. an email relay)."""
    name = "webhook"

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def send(self, event: NotificationEvent) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=event.model_dump(mode="json"))
            response.raise_for_status()


def build_sink_from_settings() -> NotificationSink:
    if settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotificationSink(
            settings.NOTIFICATION_WEBHOOK_URL,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS
        )
    return LoggingNotificationSink()


# --- 2. Dispatcher ---

class NotificationDispatcher:
    """
    Outbound queue with a single consumer task.
    While the consumer is not running (scripts, tests) events are delivered inline.
    """
    def __init__(self, sink: NotificationSink, max_attempts: int = 3, retry_delay: float = 0.5):
        self.sink = sink
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self):
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._consume(), name="notification-dispatcher")
        log.info(f"Notification dispatcher started (sink: {self.sink.name}).")

    async def stop(self, drain_timeout: float = 5.0):
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            log.warning(f"Notification dispatcher stopped with {self._queue.qsize()} undelivered event(s).")
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        self._queue = None
        log.info("Notification dispatcher stopped.")

    async def submit(self, event: NotificationEvent):
        if self.running:
            self._queue.put_nowait(event)
        else:
            await self.deliver(event)

    async def deliver(self, event: NotificationEvent) -> bool:
        """Tries the sink up to `max_attempts` times. Returns whether delivery succeeded."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.sink.send(event)
                return True
            except Exception as e:
                log.warning(f"Notification '{event.kind.value}' attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay * attempt)
        log.error(f"Dropping notification '{event.kind.value}' for {[str(r) for r in event.recipients]} after {self.max_attempts} attempts.")
        return False

    async def _consume(self):
        while True:
            event = await self._queue.get()
            try:
                await self.deliver(event)
            except Exception as e:
                log.error(f"Unexpected error in notification consumer: {e}", exc_info=True)
            finally:
                self._queue.task_done()


dispatcher = NotificationDispatcher(
    build_sink_from_settings(),
    max_attempts=settings.NOTIFICATION_MAX_ATTEMPTS
)


def get_notification_dispatcher() -> NotificationDispatcher:
    return dispatcher


# --- 3. Service Facade ---

class NotificationService:
    """
    What the lesson and earnings services talk to.
    `notify` never raises.
    """
    def __init__(
        self,
        dispatcher: Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]
    ):
        self.dispatcher = dispatcher

    async def notify(self, kind: NotificationKind, recipients: list[UUID], **payload: Any) -> None:
        try:
            event = NotificationEvent(kind=kind, recipients=recipients, payload=payload)
            await self.dispatcher.submit(event)
        except Exception as e:
            log.error(f"Failed to emit notification '{kind}': {e}", exc_info=True)
