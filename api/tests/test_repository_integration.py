from __future__ import annotations

import asyncio
import os
from pathlib import Path

import asyncpg  # type: ignore[import-untyped]
import pytest

from app.core.auth import AdminActor, DoctorActor, HospitalActor
from app.core.lifecycle import ApplicationStatus, JobStatus
from app.services.applications import ApplicationLifecycleEngine
from app.services.errors import InvalidTransitionError, TerminalStateError
from app.services.guard import OwnershipGuard
from app.services.history import HistoryRecorder
from app.services.jobs import JobLifecycleEngine
from app.services.notifications import NotificationDispatcher, StoreNotificationSink
from app.services.realtime import RealtimeHub
from app.services.repository import PostgresRepository

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "db" / "schema.sql"


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("HJ_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require HJ_DATABASE_URL or DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def seeded_ids(database_url: str) -> dict[str, int]:
    return asyncio.run(_reset_and_seed(database_url))


def _engines(repository: PostgresRepository) -> tuple[JobLifecycleEngine, ApplicationLifecycleEngine]:
    dispatcher = NotificationDispatcher(StoreNotificationSink(repository, RealtimeHub()))
    guard = OwnershipGuard(repository)
    return (
        JobLifecycleEngine(repository, guard=guard, history=HistoryRecorder(repository), dispatcher=dispatcher),
        ApplicationLifecycleEngine(repository, guard=guard, dispatcher=dispatcher),
    )


def test_job_lifecycle_against_postgres(database_url: str, seeded_ids: dict[str, int]) -> None:
    admin = AdminActor(user_id=seeded_ids["admin_user"])
    hospital = HospitalActor(user_id=seeded_ids["hospital_user"], hospital_profile_id=seeded_ids["hospital"])

    async def _scenario() -> None:
        repository = PostgresRepository(database_url, min_pool_size=1, max_pool_size=2)
        jobs, _ = _engines(repository)
        try:
            job = await jobs.create_job(hospital, {"title": "Anesthesiologist", "requirements": {"years": 3}})
            assert job.status_id == JobStatus.PENDING_APPROVAL
            assert job.requirements == {"years": 3}

            revision = await jobs.transition_job(admin, job.id, JobStatus.NEEDS_REVISION, note="add shift pattern")
            assert revision.job.revision_count == 1
            assert revision.notifications_delivered == 1

            edited = await jobs.edit_job(hospital, job.id, {"description": "Night shifts", "requirements": {"years": 5}})
            assert edited.requirements == {"years": 5}

            resubmitted = await jobs.transition_job(hospital, job.id, JobStatus.PENDING_APPROVAL)
            assert resubmitted.job.revision_note is None
            assert resubmitted.job.revision_count == 1

            approved = await jobs.transition_job(admin, job.id, JobStatus.APPROVED)
            assert approved.job.approved_at is not None
            assert approved.job.published_at is not None

            with pytest.raises(InvalidTransitionError):
                await jobs.transition_job(admin, job.id, JobStatus.REJECTED)

            history = await jobs.list_history(admin, job.id)
            assert [entry.new_status_id for entry in history] == [
                JobStatus.APPROVED,
                JobStatus.PENDING_APPROVAL,
                JobStatus.NEEDS_REVISION,
            ]
            assert history[1].note == "resubmitted"
        finally:
            await repository.close()

    asyncio.run(_scenario())


def test_fanout_and_application_review_against_postgres(database_url: str, seeded_ids: dict[str, int]) -> None:
    admin = AdminActor(user_id=seeded_ids["admin_user"])
    hospital = HospitalActor(user_id=seeded_ids["hospital_user"], hospital_profile_id=seeded_ids["hospital"])
    doctor = DoctorActor(user_id=seeded_ids["doctor_user"], doctor_profile_id=seeded_ids["doctor"])

    async def _scenario() -> None:
        repository = PostgresRepository(database_url, min_pool_size=1, max_pool_size=2)
        jobs, applications = _engines(repository)
        try:
            closed = await jobs.transition_job(admin, seeded_ids["approved_job"], JobStatus.INACTIVE)
            assert closed.notifications_attempted == 1

            reviewed = await applications.transition_application(
                hospital,
                seeded_ids["application"],
                ApplicationStatus.UNDER_REVIEW,
                notes="call scheduled",
            )
            assert reviewed.application.notes == "call scheduled"
            assert reviewed.notification is not None and reviewed.notification.delivered

            withdrawn = await applications.withdraw_application(doctor, seeded_ids["application"])
            assert withdrawn.application.status_id == ApplicationStatus.WITHDRAWN

            with pytest.raises(TerminalStateError):
                await applications.transition_application(
                    hospital, seeded_ids["application"], ApplicationStatus.ACCEPTED
                )
        finally:
            await repository.close()

    asyncio.run(_scenario())


async def _reset_and_seed(database_url: str) -> dict[str, int]:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
        await conn.execute(
            """
            truncate table
              notifications,
              job_history,
              applications,
              jobs,
              doctor_profiles,
              hospital_profiles,
              users
            restart identity cascade
            """
        )
        admin_user = await conn.fetchval(
            "insert into users (email, role) values ('admin@example.test', 'admin') returning id"
        )
        hospital_user = await conn.fetchval(
            "insert into users (email, role) values ('hr@example.test', 'hospital') returning id"
        )
        doctor_user = await conn.fetchval(
            "insert into users (email, role) values ('doc@example.test', 'doctor') returning id"
        )
        hospital = await conn.fetchval(
            "insert into hospital_profiles (user_id, institution_name) values ($1, 'Harbor General') returning id",
            hospital_user,
        )
        doctor = await conn.fetchval(
            "insert into doctor_profiles (user_id, first_name, last_name) values ($1, 'Ada', 'Lovelace') returning id",
            doctor_user,
        )
        approved_job = await conn.fetchval(
            """
            insert into jobs (hospital_id, title, status_id, approved_at, published_at)
            values ($1, 'Pediatrician', 3, now(), now())
            returning id
            """,
            hospital,
        )
        application = await conn.fetchval(
            "insert into applications (job_id, doctor_profile_id) values ($1, $2) returning id",
            approved_job,
            doctor,
        )
    finally:
        await conn.close()

    return {
        "admin_user": int(admin_user),
        "hospital_user": int(hospital_user),
        "doctor_user": int(doctor_user),
        "hospital": int(hospital),
        "doctor": int(doctor),
        "approved_job": int(approved_job),
        "application": int(application),
    }
