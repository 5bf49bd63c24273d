"""Rows read and written by the lifecycle engines, and the store contract.

Only the columns the state machines read or write are modelled here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from app.core.lifecycle import ApplicationStatus, JobStatus


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates a storage constraint."""


@dataclass(slots=True)
class JobPostingRecord:
    id: int
    hospital_id: int
    title: str
    status_id: int
    description: str | None = None
    requirements: dict[str, Any] = field(default_factory=dict)
    specialty: str | None = None
    city: str | None = None
    employment_type: str | None = None
    revision_note: str | None = None
    revision_count: int = 0
    approved_at: datetime | None = None
    published_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class ApplicationRecord:
    id: int
    job_id: int
    hospital_id: int
    doctor_profile_id: int
    status_id: int
    applied_at: datetime
    job_title: str | None = None
    notes: str | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass(slots=True)
class JobHistoryRecord:
    id: int
    job_id: int
    old_status_id: int
    new_status_id: int
    changed_by_user_id: int
    changed_by_role: str
    note: str | None
    changed_at: datetime


@dataclass(slots=True)
class JobStatusChange:
    """Column writes that travel with a job status update.

    ``revision_note`` is always written; ``approved_at`` / ``published_at``
    are written only when set.
    """

    new_status: JobStatus
    revision_note: str | None = None
    increment_revision_count: bool = False
    approved_at: datetime | None = None
    published_at: datetime | None = None


@dataclass(slots=True)
class ApplicantRecipient:
    application_id: int
    doctor_profile_id: int
    user_id: int


@dataclass(slots=True)
class HospitalContact:
    hospital_id: int
    user_id: int
    institution_name: str


@dataclass(slots=True)
class NotificationRecord:
    id: int
    user_id: int
    kind: str
    title: str
    body: str
    data: dict[str, Any]
    channel: str
    created_at: datetime


class ResourceStore(Protocol):
    async def close(self) -> None: ...

    async def get_job(self, job_id: int) -> JobPostingRecord | None: ...

    async def insert_job(self, *, hospital_id: int, fields: dict[str, Any], now: datetime) -> JobPostingRecord: ...

    async def update_job_status(
        self,
        *,
        job_id: int,
        expected_status: JobStatus,
        change: JobStatusChange,
        now: datetime,
    ) -> JobPostingRecord | None: ...

    async def update_job_fields(
        self,
        *,
        job_id: int,
        expected_status: JobStatus,
        fields: dict[str, Any],
        now: datetime,
    ) -> JobPostingRecord | None: ...

    async def soft_delete_job(self, *, job_id: int, now: datetime) -> bool: ...

    async def get_application(self, application_id: int) -> ApplicationRecord | None: ...

    async def update_application_status(
        self,
        *,
        application_id: int,
        expected_status: ApplicationStatus,
        new_status: ApplicationStatus,
        notes: str | None,
        now: datetime,
    ) -> ApplicationRecord | None: ...

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
    ) -> JobHistoryRecord: ...

    async def list_job_history(self, job_id: int) -> list[JobHistoryRecord]: ...

    async def list_notifiable_applicants(self, job_id: int) -> list[ApplicantRecipient]: ...

    async def get_hospital_contact(self, hospital_id: int) -> HospitalContact | None: ...

    async def get_doctor_user_id(self, doctor_profile_id: int) -> int | None: ...

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
    ) -> NotificationRecord: ...
