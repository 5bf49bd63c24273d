from fastapi import Depends

from app.core.config import Settings, get_settings
from app.services.applications import ApplicationLifecycleEngine
from app.services.guard import OwnershipGuard
from app.services.history import HistoryRecorder
from app.services.jobs import JobLifecycleEngine
from app.services.notifications import NotificationDispatcher, StoreNotificationSink
from app.services.realtime import RealtimeHub, get_realtime_hub
from app.services.records import ResourceStore
from app.services.repository import get_repository


def get_dispatcher(
    settings: Settings = Depends(get_settings),
    repository: ResourceStore = Depends(get_repository),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> NotificationDispatcher:
    sink = StoreNotificationSink(repository, hub, channel=settings.notification_channel)
    return NotificationDispatcher(sink, fanout_concurrency=settings.notification_fanout_concurrency)


def get_job_engine(
    repository: ResourceStore = Depends(get_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> JobLifecycleEngine:
    return JobLifecycleEngine(
        repository,
        guard=OwnershipGuard(repository),
        history=HistoryRecorder(repository),
        dispatcher=dispatcher,
    )


def get_application_engine(
    repository: ResourceStore = Depends(get_repository),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> ApplicationLifecycleEngine:
    return ApplicationLifecycleEngine(
        repository,
        guard=OwnershipGuard(repository),
        dispatcher=dispatcher,
    )
