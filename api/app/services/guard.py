from __future__ import annotations

import logging

from app.core.auth import Actor, AdminActor, DoctorActor, HospitalActor
from app.core.lifecycle import JobStatus
from app.services.errors import ForbiddenError, NotFoundError
from app.services.records import ApplicationRecord, JobPostingRecord, ResourceStore

logger = logging.getLogger(__name__)

# Statuses in which a posting is visible to doctors.
DOCTOR_VISIBLE_JOB_STATUSES = frozenset({int(JobStatus.APPROVED), int(JobStatus.INACTIVE)})


class OwnershipGuard:
    """Resolves the resource an actor is allowed to act on.

    Hospital and doctor actors get ``NotFoundError`` both for missing rows and
    for rows they do not own, so existence is never leaked. Admins bypass
    ownership matching.
    """

    def __init__(self, store: ResourceStore) -> None:
        self.store = store

    async def resolve_job_for_actor(self, actor: Actor, job_id: int) -> JobPostingRecord:
        job = await self.store.get_job(job_id)
        if job is None or job.deleted_at is not None:
            raise NotFoundError("job not found", resource="job", resource_id=job_id)

        if isinstance(actor, AdminActor):
            return job
        if isinstance(actor, HospitalActor):
            if job.hospital_id != actor.hospital_profile_id:
                logger.info(
                    "job ownership mismatch job_id=%s hospital_id=%s actor_hospital_id=%s",
                    job_id,
                    job.hospital_id,
                    actor.hospital_profile_id,
                )
                raise NotFoundError("job not found", resource="job", resource_id=job_id)
            return job
        if isinstance(actor, DoctorActor):
            if job.status_id not in DOCTOR_VISIBLE_JOB_STATUSES:
                raise NotFoundError("job not found", resource="job", resource_id=job_id)
            return job
        raise ForbiddenError("unsupported actor", resource="job", resource_id=job_id)

    async def resolve_application_for_actor(self, actor: Actor, application_id: int) -> ApplicationRecord:
        application = await self.store.get_application(application_id)
        if application is None or application.deleted_at is not None:
            raise NotFoundError("application not found", resource="application", resource_id=application_id)

        if isinstance(actor, AdminActor):
            return application
        if isinstance(actor, HospitalActor):
            if application.hospital_id == actor.hospital_profile_id:
                return application
        elif isinstance(actor, DoctorActor):
            if application.doctor_profile_id == actor.doctor_profile_id:
                return application
        else:
            raise ForbiddenError("unsupported actor", resource="application", resource_id=application_id)

        raise NotFoundError("application not found", resource="application", resource_id=application_id)
