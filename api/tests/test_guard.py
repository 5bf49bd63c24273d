from __future__ import annotations

import asyncio

import pytest

from app.core.lifecycle import ApplicationStatus, JobStatus
from app.services.errors import NotFoundError
from app.services.guard import OwnershipGuard
from app.services.store import InMemoryStore


@pytest.fixture
def guard(store: InMemoryStore) -> OwnershipGuard:
    return OwnershipGuard(store)


def test_admin_resolves_any_job(guard: OwnershipGuard, actors, make_job) -> None:
    job = make_job(JobStatus.PENDING_APPROVAL, hospital_id=20)

    assert asyncio.run(guard.resolve_job_for_actor(actors.admin, job.id)).id == job.id


def test_hospital_mismatch_looks_like_missing(guard: OwnershipGuard, actors, make_job) -> None:
    job = make_job(JobStatus.APPROVED)

    with pytest.raises(NotFoundError) as mismatch:
        asyncio.run(guard.resolve_job_for_actor(actors.other_hospital, job.id))
    with pytest.raises(NotFoundError) as missing:
        asyncio.run(guard.resolve_job_for_actor(actors.other_hospital, 9999))

    assert mismatch.value.code == missing.value.code == "not_found"
    assert mismatch.value.detail == missing.value.detail


@pytest.mark.parametrize(
    ("status", "visible"),
    [
        (JobStatus.PENDING_APPROVAL, False),
        (JobStatus.NEEDS_REVISION, False),
        (JobStatus.APPROVED, True),
        (JobStatus.INACTIVE, True),
        (JobStatus.REJECTED, False),
    ],
)
def test_doctor_job_visibility(guard: OwnershipGuard, actors, make_job, status: JobStatus, visible: bool) -> None:
    job = make_job(status)

    if visible:
        assert asyncio.run(guard.resolve_job_for_actor(actors.doctor, job.id)).id == job.id
    else:
        with pytest.raises(NotFoundError):
            asyncio.run(guard.resolve_job_for_actor(actors.doctor, job.id))


def test_soft_deleted_job_is_missing_even_for_admin(guard: OwnershipGuard, store: InMemoryStore, actors, make_job) -> None:
    job = make_job(JobStatus.APPROVED)
    asyncio.run(store.soft_delete_job(job_id=job.id, now=job.created_at))

    with pytest.raises(NotFoundError):
        asyncio.run(guard.resolve_job_for_actor(actors.admin, job.id))


def test_application_ownership(guard: OwnershipGuard, actors, make_job, make_application) -> None:
    job = make_job(JobStatus.APPROVED)
    application = make_application(job.id, 1, ApplicationStatus.UNDER_REVIEW)

    assert asyncio.run(guard.resolve_application_for_actor(actors.hospital, application.id)).id == application.id
    assert asyncio.run(guard.resolve_application_for_actor(actors.doctor, application.id)).id == application.id
    assert asyncio.run(guard.resolve_application_for_actor(actors.admin, application.id)).id == application.id
    for outsider in (actors.other_hospital, actors.other_doctor):
        with pytest.raises(NotFoundError):
            asyncio.run(guard.resolve_application_for_actor(outsider, application.id))
