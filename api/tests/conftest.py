from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from app.core.auth import AdminActor, DoctorActor, HospitalActor
from app.core.lifecycle import ApplicationStatus, JobStatus
from app.services.applications import ApplicationLifecycleEngine
from app.services.guard import OwnershipGuard
from app.services.history import HistoryRecorder
from app.services.jobs import JobLifecycleEngine
from app.services.notifications import NotificationDispatcher, StoreNotificationSink
from app.services.realtime import RealtimeHub
from app.services.records import ApplicationRecord, JobPostingRecord
from app.services.store import InMemoryStore

HOSPITAL_ID = 10
HOSPITAL_USER_ID = 100
OTHER_HOSPITAL_ID = 20
OTHER_HOSPITAL_USER_ID = 200
DOCTOR_USER_IDS = {1: 301, 2: 302, 3: 303}


@pytest.fixture
def store() -> InMemoryStore:
    seeded = InMemoryStore()
    seeded.users.add(1)
    seeded.add_hospital(hospital_id=HOSPITAL_ID, user_id=HOSPITAL_USER_ID, institution_name="St. Mary Hospital")
    seeded.add_hospital(hospital_id=OTHER_HOSPITAL_ID, user_id=OTHER_HOSPITAL_USER_ID, institution_name="City Clinic")
    for doctor_profile_id, user_id in DOCTOR_USER_IDS.items():
        seeded.add_doctor(doctor_profile_id=doctor_profile_id, user_id=user_id)
    return seeded


@pytest.fixture
def actors() -> SimpleNamespace:
    return SimpleNamespace(
        admin=AdminActor(user_id=1),
        hospital=HospitalActor(user_id=HOSPITAL_USER_ID, hospital_profile_id=HOSPITAL_ID),
        other_hospital=HospitalActor(user_id=OTHER_HOSPITAL_USER_ID, hospital_profile_id=OTHER_HOSPITAL_ID),
        doctor=DoctorActor(user_id=DOCTOR_USER_IDS[1], doctor_profile_id=1),
        other_doctor=DoctorActor(user_id=DOCTOR_USER_IDS[2], doctor_profile_id=2),
    )


@pytest.fixture
def make_job(store: InMemoryStore) -> Callable[..., JobPostingRecord]:
    def _make(
        status: JobStatus = JobStatus.PENDING_APPROVAL,
        *,
        hospital_id: int = HOSPITAL_ID,
        title: str = "Cardiologist",
    ) -> JobPostingRecord:
        job = asyncio.run(
            store.insert_job(hospital_id=hospital_id, fields={"title": title}, now=datetime.now(timezone.utc))
        )
        stored = store.jobs[job.id]
        stored.status_id = int(status)
        if status is JobStatus.NEEDS_REVISION:
            stored.revision_note = "seeded revision note"
            stored.revision_count = 1
        return asyncio.run(store.get_job(job.id))

    return _make


@pytest.fixture
def make_application(store: InMemoryStore) -> Callable[..., ApplicationRecord]:
    def _make(
        job_id: int,
        doctor_profile_id: int = 1,
        status: ApplicationStatus = ApplicationStatus.PENDING,
    ) -> ApplicationRecord:
        return store.add_application(job_id=job_id, doctor_profile_id=doctor_profile_id, status=status)

    return _make


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub(queue_size=10)


@pytest.fixture
def dispatcher(store: InMemoryStore, hub: RealtimeHub) -> NotificationDispatcher:
    return NotificationDispatcher(StoreNotificationSink(store, hub), fanout_concurrency=4)


@pytest.fixture
def job_engine(store: InMemoryStore, dispatcher: NotificationDispatcher) -> JobLifecycleEngine:
    return JobLifecycleEngine(
        store,
        guard=OwnershipGuard(store),
        history=HistoryRecorder(store),
        dispatcher=dispatcher,
    )


@pytest.fixture
def application_engine(store: InMemoryStore, dispatcher: NotificationDispatcher) -> ApplicationLifecycleEngine:
    return ApplicationLifecycleEngine(store, guard=OwnershipGuard(store), dispatcher=dispatcher)
