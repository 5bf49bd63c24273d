from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from app.core.lifecycle import ApplicationStatus, JobStatus
from app.services.records import (
    ApplicantRecipient,
    ApplicationRecord,
    HospitalContact,
    JobHistoryRecord,
    JobPostingRecord,
    JobStatusChange,
    NotificationRecord,
    RepositoryNotFoundError,
)


class InMemoryStore:
    """Process-local store used for development runs and tests.

    Mirrors the compare-and-swap semantics of the Postgres repository: status
    writes only land when the row still holds the expected status.
    """

    def __init__(self) -> None:
        self.jobs: dict[int, JobPostingRecord] = {}
        self.applications: dict[int, ApplicationRecord] = {}
        self.history: list[JobHistoryRecord] = []
        self.notifications: list[NotificationRecord] = []
        self.users: set[int] = set()
        self.hospitals: dict[int, HospitalContact] = {}
        self.doctors: dict[int, int] = {}
        self._next_job_id = 1
        self._next_application_id = 1
        self._next_history_id = 1
        self._next_notification_id = 1

    async def close(self) -> None:
        return None

    def add_hospital(self, *, hospital_id: int, user_id: int, institution_name: str) -> HospitalContact:
        self.users.add(user_id)
        contact = HospitalContact(hospital_id=hospital_id, user_id=user_id, institution_name=institution_name)
        self.hospitals[hospital_id] = contact
        return contact

    def add_doctor(self, *, doctor_profile_id: int, user_id: int) -> None:
        self.users.add(user_id)
        self.doctors[doctor_profile_id] = user_id

    def add_application(
        self,
        *,
        job_id: int,
        doctor_profile_id: int,
        status: ApplicationStatus = ApplicationStatus.PENDING,
        applied_at: datetime | None = None,
    ) -> ApplicationRecord:
        job = self.jobs[job_id]
        application = ApplicationRecord(
            id=self._next_application_id,
            job_id=job_id,
            hospital_id=job.hospital_id,
            doctor_profile_id=doctor_profile_id,
            status_id=int(status),
            applied_at=applied_at or datetime.now(timezone.utc),
            job_title=job.title,
        )
        self._next_application_id += 1
        self.applications[application.id] = application
        return replace(application)

    async def get_job(self, job_id: int) -> JobPostingRecord | None:
        job = self.jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def insert_job(self, *, hospital_id: int, fields: dict[str, Any], now: datetime) -> JobPostingRecord:
        job = JobPostingRecord(
            id=self._next_job_id,
            hospital_id=hospital_id,
            title=fields["title"],
            status_id=int(JobStatus.PENDING_APPROVAL),
            description=fields.get("description"),
            requirements=dict(fields.get("requirements") or {}),
            specialty=fields.get("specialty"),
            city=fields.get("city"),
            employment_type=fields.get("employment_type"),
            created_at=now,
            updated_at=now,
        )
        self._next_job_id += 1
        self.jobs[job.id] = job
        return copy.deepcopy(job)

    async def update_job_status(
        self,
        *,
        job_id: int,
        expected_status: JobStatus,
        change: JobStatusChange,
        now: datetime,
    ) -> JobPostingRecord | None:
        job = self.jobs.get(job_id)
        if job is None or job.deleted_at is not None or job.status_id != int(expected_status):
            return None
        job.status_id = int(change.new_status)
        job.revision_note = change.revision_note
        if change.increment_revision_count:
            job.revision_count += 1
        if change.approved_at is not None:
            job.approved_at = change.approved_at
        if change.published_at is not None:
            job.published_at = change.published_at
        job.updated_at = now
        return copy.deepcopy(job)

    async def update_job_fields(
        self,
        *,
        job_id: int,
        expected_status: JobStatus,
        fields: dict[str, Any],
        now: datetime,
    ) -> JobPostingRecord | None:
        job = self.jobs.get(job_id)
        if job is None or job.deleted_at is not None or job.status_id != int(expected_status):
            return None
        for name, value in fields.items():
            setattr(job, name, copy.deepcopy(value))
        job.updated_at = now
        return copy.deepcopy(job)

    async def soft_delete_job(self, *, job_id: int, now: datetime) -> bool:
        job = self.jobs.get(job_id)
        if job is None or job.deleted_at is not None:
            return False
        job.deleted_at = now
        job.updated_at = now
        return True

    async def get_application(self, application_id: int) -> ApplicationRecord | None:
        application = self.applications.get(application_id)
        return replace(application) if application else None

    async def update_application_status(
        self,
        *,
        application_id: int,
        expected_status: ApplicationStatus,
        new_status: ApplicationStatus,
        notes: str | None,
        now: datetime,
    ) -> ApplicationRecord | None:
        application = self.applications.get(application_id)
        if (
            application is None
            or application.deleted_at is not None
            or application.status_id != int(expected_status)
            or application.status_id == int(ApplicationStatus.WITHDRAWN)
        ):
            return None
        application.status_id = int(new_status)
        application.notes = notes
        application.updated_at = now
        return replace(application)

    async def append_job_history(
        self,
        *,
        job_id: int,
        old_status: JobStatus,
        new_status: JobStatus,
        changed_by_user_id: int,
        changed_by_role: str,
        note: str | None,
        changed_at: datetime,
    ) -> JobHistoryRecord:
        entry = JobHistoryRecord(
            id=self._next_history_id,
            job_id=job_id,
            old_status_id=int(old_status),
            new_status_id=int(new_status),
            changed_by_user_id=changed_by_user_id,
            changed_by_role=changed_by_role,
            note=note,
            changed_at=changed_at,
        )
        self._next_history_id += 1
        self.history.append(entry)
        return replace(entry)

    async def list_job_history(self, job_id: int) -> list[JobHistoryRecord]:
        rows = [replace(entry) for entry in self.history if entry.job_id == job_id]
        rows.sort(key=lambda entry: (entry.changed_at, entry.id), reverse=True)
        return rows

    async def list_notifiable_applicants(self, job_id: int) -> list[ApplicantRecipient]:
        recipients: list[ApplicantRecipient] = []
        for application in self.applications.values():
            if application.job_id != job_id or application.deleted_at is not None:
                continue
            if application.status_id == int(ApplicationStatus.WITHDRAWN):
                continue
            user_id = self.doctors.get(application.doctor_profile_id)
            if user_id is None:
                continue
            recipients.append(
                ApplicantRecipient(
                    application_id=application.id,
                    doctor_profile_id=application.doctor_profile_id,
                    user_id=user_id,
                )
            )
        return recipients

    async def get_hospital_contact(self, hospital_id: int) -> HospitalContact | None:
        contact = self.hospitals.get(hospital_id)
        return replace(contact) if contact else None

    async def get_doctor_user_id(self, doctor_profile_id: int) -> int | None:
        return self.doctors.get(doctor_profile_id)

    async def insert_notification(
        self,
        *,
        user_id: int,
        kind: str,
        title: str,
        body: str,
        data: dict[str, Any],
        channel: str,
        now: datetime,
    ) -> NotificationRecord:
        if user_id not in self.users:
            raise RepositoryNotFoundError("user not found")
        record = NotificationRecord(
            id=self._next_notification_id,
            user_id=user_id,
            kind=kind,
            title=title,
            body=body,
            data=dict(data),
            channel=channel,
            created_at=now,
        )
        self._next_notification_id += 1
        self.notifications.append(record)
        return replace(record)
