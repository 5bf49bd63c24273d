from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, Protocol, TypeVar

from opentelemetry import trace

from app.services.notification_templates import NotificationEvent
from app.services.realtime import RealtimeHub
from app.services.records import ResourceStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class EffortResult(Generic[T]):
    ok: bool
    value: T | None = None
    error: str | None = None


async def best_effort(label: str, operation: Callable[[], Awaitable[T]], **context: Any) -> EffortResult[T]:
    """Run a side effect whose failure must not fail the calling operation.

    Exceptions are logged with ``label`` and ``context`` and captured in the
    returned result; they are never re-raised.
    """
    try:
        value = await operation()
    except Exception as exc:
        details = " ".join(f"{key}={item}" for key, item in context.items())
        logger.exception("%s failed %s", label, details)
        return EffortResult(ok=False, error=f"{type(exc).__name__}: {exc}")
    return EffortResult(ok=True, value=value)


@dataclass(slots=True)
class DeliveryResult:
    user_id: int
    delivered: bool
    notification_id: int | None = None
    error: str | None = None


class NotificationSink(Protocol):
    async def deliver(self, event: NotificationEvent) -> int | None: ...


class StoreNotificationSink:
    """Persists the notification, then pushes it on the live channel."""

    def __init__(
        self,
        store: ResourceStore,
        hub: RealtimeHub,
        *,
        channel: str = "inapp",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.hub = hub
        self.channel = channel
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def deliver(self, event: NotificationEvent) -> int | None:
        record = await self.store.insert_notification(
            user_id=event.user_id,
            kind=event.kind.value,
            title=event.title,
            body=event.body,
            data=event.data,
            channel=self.channel,
            now=self._clock(),
        )
        pushed = self.hub.publish(
            event.user_id,
            {
                "id": record.id,
                "user_id": record.user_id,
                "type": record.kind,
                "title": record.title,
                "body": record.body,
                "data": record.data,
                "created_at": record.created_at.isoformat(),
                "is_read": False,
            },
        )
        if not pushed:
            logger.info("notification stored without live subscriber user_id=%s id=%s", event.user_id, record.id)
        return record.id


class NotificationDispatcher:
    def __init__(self, sink: NotificationSink, *, fanout_concurrency: int = 8) -> None:
        self.sink = sink
        self.fanout_concurrency = max(1, fanout_concurrency)

    async def dispatch(self, event: NotificationEvent) -> DeliveryResult:
        """Send ``event`` once. Never raises; failures come back as ``delivered=False``."""
        with tracer.start_as_current_span("notification.dispatch") as span:
            span.set_attribute("notification.user_id", event.user_id)
            span.set_attribute("notification.kind", event.kind.value)
            outcome = await best_effort(
                "notification dispatch",
                lambda: self.sink.deliver(event),
                user_id=event.user_id,
                kind=event.kind.value,
            )
            span.set_attribute("notification.delivered", outcome.ok)
        if not outcome.ok:
            return DeliveryResult(user_id=event.user_id, delivered=False, error=outcome.error)
        return DeliveryResult(user_id=event.user_id, delivered=True, notification_id=outcome.value)

    async def dispatch_many(self, events: Iterable[NotificationEvent]) -> list[DeliveryResult]:
        """Dispatch independent per-recipient events concurrently.

        Result order follows ``events``; one failed recipient does not stop
        the others.
        """
        semaphore = asyncio.Semaphore(self.fanout_concurrency)

        async def _bounded(event: NotificationEvent) -> DeliveryResult:
            async with semaphore:
                return await self.dispatch(event)

        pending = [_bounded(event) for event in events]
        if not pending:
            return []
        with tracer.start_as_current_span("notification.fanout") as span:
            span.set_attribute("notification.recipients", len(pending))
            results = list(await asyncio.gather(*pending))
            span.set_attribute("notification.delivered_count", sum(1 for result in results if result.delivered))
        return results
