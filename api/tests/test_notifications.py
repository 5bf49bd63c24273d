from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone

import pytest

from app.api.routes.notifications import event_stream, format_event
from app.core.lifecycle import ApplicationStatus, JobStatus
from app.services.notification_templates import (
    NotificationEvent,
    NotificationKind,
    application_status_event,
    job_moderation_event,
)
from app.services.notifications import NotificationDispatcher, StoreNotificationSink, best_effort
from app.services.realtime import RealtimeHub
from app.services.store import InMemoryStore


def _event(user_id: int) -> NotificationEvent:
    return NotificationEvent(
        user_id=user_id,
        kind=NotificationKind.INFO,
        title="Job posting closed",
        body="closed",
        data={"job_id": 1},
    )


def test_best_effort_captures_and_logs_failures(caplog: pytest.LogCaptureFixture) -> None:
    async def _explode() -> int:
        raise ValueError("boom")

    with caplog.at_level(logging.ERROR):
        result = asyncio.run(best_effort("history write", _explode, job_id=7))

    assert result.ok is False
    assert result.value is None
    assert result.error == "ValueError: boom"
    assert "history write failed job_id=7" in caplog.text


def test_best_effort_returns_value() -> None:
    async def _value() -> int:
        return 11

    result = asyncio.run(best_effort("lookup", _value))

    assert result.ok is True
    assert result.value == 11


def test_dispatch_never_raises_for_unknown_user(store: InMemoryStore, hub: RealtimeHub) -> None:
    dispatcher = NotificationDispatcher(StoreNotificationSink(store, hub))

    result = asyncio.run(dispatcher.dispatch(_event(user_id=9999)))

    assert result.delivered is False
    assert result.error is not None
    assert store.notifications == []


def test_dispatch_many_keeps_order_and_isolates_failures(store: InMemoryStore, hub: RealtimeHub) -> None:
    dispatcher = NotificationDispatcher(StoreNotificationSink(store, hub), fanout_concurrency=2)

    results = asyncio.run(dispatcher.dispatch_many([_event(301), _event(9999), _event(302), _event(303)]))

    assert [result.user_id for result in results] == [301, 9999, 302, 303]
    assert [result.delivered for result in results] == [True, False, True, True]
    assert len(store.notifications) == 3


def test_dispatch_many_with_no_events() -> None:
    class NeverCalled:
        async def deliver(self, event: NotificationEvent) -> int | None:
            raise AssertionError("should not deliver")

    assert asyncio.run(NotificationDispatcher(NeverCalled()).dispatch_many([])) == []


def test_store_sink_pushes_to_live_subscriber(store: InMemoryStore, hub: RealtimeHub) -> None:
    queue = hub.subscribe(301)
    sink = StoreNotificationSink(
        store,
        hub,
        channel="inapp",
        clock=lambda: datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc),
    )

    notification_id = asyncio.run(sink.deliver(_event(301)))

    payload = queue.get_nowait()
    assert payload["id"] == notification_id
    assert payload["title"] == "Job posting closed"
    assert payload["created_at"] == "2026-01-05T09:30:00+00:00"
    assert store.notifications[0].channel == "inapp"


def test_hub_drops_events_for_full_queues() -> None:
    hub = RealtimeHub(queue_size=1)
    queue = hub.subscribe(5)

    assert hub.publish(5, {"id": 1}) is True
    assert hub.publish(5, {"id": 2}) is False
    assert queue.qsize() == 1
    assert hub.publish(6, {"id": 3}) is False

    hub.unsubscribe(5, queue)
    assert hub.connection_count(5) == 0


def test_application_template_appends_notes() -> None:
    event = application_status_event(
        user_id=301,
        application_id=4,
        old_status=ApplicationStatus.PENDING,
        new_status=ApplicationStatus.REJECTED,
        job_title="Radiologist",
        hospital_name="City Clinic",
        notes="position filled",
    )

    assert event.kind is NotificationKind.ERROR
    assert event.body.endswith("Note: position filled")
    assert event.data["status"] == ApplicationStatus.REJECTED


def test_application_template_falls_back_for_unmapped_codes() -> None:
    event = application_status_event(
        user_id=301,
        application_id=4,
        old_status=1,
        new_status=99,
        job_title="Radiologist",
        hospital_name="City Clinic",
        notes=None,
    )

    assert event.title == "Application status changed"
    assert event.kind is NotificationKind.INFO
    assert "Radiologist" in event.body


def test_moderation_templates() -> None:
    rejected = job_moderation_event(
        user_id=100,
        job_id=3,
        new_status=JobStatus.REJECTED,
        job_title="Radiologist",
        hospital_name="City Clinic",
        note="duplicate posting",
    )
    assert rejected is not None
    assert rejected.kind is NotificationKind.ERROR
    assert rejected.body.endswith("Reason: duplicate posting")

    assert (
        job_moderation_event(
            user_id=100,
            job_id=3,
            new_status=JobStatus.INACTIVE,
            job_title="Radiologist",
            hospital_name="City Clinic",
            note=None,
        )
        is None
    )


def test_event_stream_relays_hub_events_until_disconnect() -> None:
    hub = RealtimeHub(queue_size=5)

    async def _run() -> list[str]:
        queue = hub.subscribe(301)
        hub.publish(301, {"id": 1, "title": "Application accepted"})
        checks = iter([False, False, True])

        async def _is_disconnected() -> bool:
            return next(checks)

        chunks = [
            chunk
            async for chunk in event_stream(
                hub,
                301,
                queue,
                is_disconnected=_is_disconnected,
                keepalive_seconds=0.01,
            )
        ]
        return chunks

    chunks = asyncio.run(_run())

    assert chunks[0] == ": connected\n\n"
    assert chunks[1].startswith("event: notification\n")
    assert json.loads(chunks[1].split("data: ", 1)[1]) == {"id": 1, "title": "Application accepted"}
    assert chunks[2] == ": keepalive\n\n"
    assert hub.connection_count(301) == 0


def test_format_event_uses_custom_event_name() -> None:
    assert format_event({"event": "ping"}).startswith("event: ping\n")
