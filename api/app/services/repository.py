from __future__ import annotations

import json
from datetime import datetime
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from app.core.config import get_settings
from app.core.lifecycle import JOB_EDITABLE_FIELDS, ApplicationStatus, JobStatus
from app.services.records import (
    ApplicantRecipient,
    ApplicationRecord,
    HospitalContact,
    JobHistoryRecord,
    JobPostingRecord,
    JobStatusChange,
    NotificationRecord,
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    ResourceStore,
)
from app.services.store import InMemoryStore

__all__ = [
    "PostgresRepository",
    "RepositoryConflictError",
    "RepositoryError",
    "RepositoryNotFoundError",
    "RepositoryUnavailableError",
    "get_repository",
]

_JOB_COLUMNS = """
  id,
  hospital_id,
  title,
  description,
  requirements,
  specialty,
  city,
  employment_type,
  status_id,
  revision_note,
  revision_count,
  approved_at,
  published_at,
  deleted_at,
  created_at,
  updated_at
"""

_APPLICATION_COLUMNS = """
  a.id,
  a.job_id,
  j.hospital_id,
  j.title as job_title,
  a.doctor_profile_id,
  a.status_id,
  a.notes,
  a.applied_at,
  a.updated_at,
  a.deleted_at
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_job(self, job_id: int) -> JobPostingRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {_JOB_COLUMNS}
            from jobs
            where id = $1
            """,
            job_id,
        )
        return self._job_row_to_record(row) if row else None

    async def insert_job(self, *, hospital_id: int, fields: dict[str, Any], now: datetime) -> JobPostingRecord:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                insert into jobs (
                  hospital_id,
                  title,
                  description,
                  requirements,
                  specialty,
                  city,
                  employment_type,
                  status_id,
                  revision_count,
                  created_at,
                  updated_at
                )
                values ($1, $2, $3, $4::jsonb, $5, $6, $7, $8, 0, $9, $9)
                returning {_JOB_COLUMNS}
                """,
                hospital_id,
                fields["title"],
                fields.get("description"),
                json.dumps(fields.get("requirements") or {}),
                fields.get("specialty"),
                fields.get("city"),
                fields.get("employment_type"),
                int(JobStatus.PENDING_APPROVAL),
                now,
            )
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryNotFoundError("hospital profile not found") from exc
        if not row:
            raise RepositoryConflictError("failed to insert job")
        return self._job_row_to_record(row)

    async def update_job_status(
        self,
        *,
        job_id: int,
        expected_status: JobStatus,
        change: JobStatusChange,
        now: datetime,
    ) -> JobPostingRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            update jobs
            set
              status_id = $3,
              revision_note = $4,
              revision_count = case when $5 then revision_count + 1 else revision_count end,
              approved_at = coalesce($6, approved_at),
              published_at = coalesce($7, published_at),
              updated_at = $8
            where id = $1
              and status_id = $2
              and deleted_at is null
            returning {_JOB_COLUMNS}
            """,
            job_id,
            int(expected_status),
            int(change.new_status),
            change.revision_note,
            change.increment_revision_count,
            change.approved_at,
            change.published_at,
            now,
        )
        return self._job_row_to_record(row) if row else None

    async def update_job_fields(
        self,
        *,
        job_id: int,
        expected_status: JobStatus,
        fields: dict[str, Any],
        now: datetime,
    ) -> JobPostingRecord | None:
        unknown = set(fields) - JOB_EDITABLE_FIELDS
        if unknown:
            raise RepositoryConflictError(f"fields are not editable: {sorted(unknown)}")

        assignments: list[str] = []
        values: list[Any] = [job_id, int(expected_status), now]
        for name in sorted(fields):
            value = fields[name]
            values.append(json.dumps(value or {}) if name == "requirements" else value)
            cast = "::jsonb" if name == "requirements" else ""
            assignments.append(f"{name} = ${len(values)}{cast}")
        assignments.append("updated_at = $3")

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            update jobs
            set {", ".join(assignments)}
            where id = $1
              and status_id = $2
              and deleted_at is null
            returning {_JOB_COLUMNS}
            """,
            *values,
        )
        return self._job_row_to_record(row) if row else None

    async def soft_delete_job(self, *, job_id: int, now: datetime) -> bool:
        pool = await self._get_pool()
        result = await pool.execute(
            """
            update jobs
            set deleted_at = $2, updated_at = $2
            where id = $1
              and deleted_at is null
            """,
            job_id,
            now,
        )
        return result.endswith(" 1")

    async def get_application(self, application_id: int) -> ApplicationRecord | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {_APPLICATION_COLUMNS}
            from applications a
            join jobs j on j.id = a.job_id
            where a.id = $1
            """,
            application_id,
        )
        return self._application_row_to_record(row) if row else None

    async def update_application_status(
        self,
        *,
        application_id: int,
        expected_status: ApplicationStatus,
        new_status: ApplicationStatus,
        notes: str | None,
        now: datetime,
    ) -> ApplicationRecord | None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                updated_id = await conn.fetchval(
                    """
                    update applications
                    set
                      status_id = $3,
                      notes = $4,
                      updated_at = $5
                    where id = $1
                      and status_id = $2
                      and status_id <> $6
                      and deleted_at is null
                    returning id
                    """,
                    application_id,
                    int(expected_status),
                    int(new_status),
                    notes,
                    now,
                    int(ApplicationStatus.WITHDRAWN),
                )
                if updated_id is None:
                    return None
                row = await conn.fetchrow(
                    f"""
                    select {_APPLICATION_COLUMNS}
                    from applications a
                    join jobs j on j.id = a.job_id
                    where a.id = $1
                    """,
                    application_id,
                )
        return self._application_row_to_record(row) if row else None

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
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            insert into job_history (
              job_id,
              old_status_id,
              new_status_id,
              changed_by,
              changed_by_role,
              note,
              changed_at
            )
            values ($1, $2, $3, $4, $5, $6, $7)
            returning
              id,
              job_id,
              old_status_id,
              new_status_id,
              changed_by,
              changed_by_role,
              note,
              changed_at
            """,
            job_id,
            int(old_status),
            int(new_status),
            changed_by_user_id,
            changed_by_role,
            note,
            changed_at,
        )
        if not row:
            raise RepositoryConflictError("failed to append job history")
        return self._history_row_to_record(row)

    async def list_job_history(self, job_id: int) -> list[JobHistoryRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select
              id,
              job_id,
              old_status_id,
              new_status_id,
              changed_by,
              changed_by_role,
              note,
              changed_at
            from job_history
            where job_id = $1
            order by changed_at desc, id desc
            """,
            job_id,
        )
        return [self._history_row_to_record(row) for row in rows]

    async def list_notifiable_applicants(self, job_id: int) -> list[ApplicantRecipient]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select
              a.id as application_id,
              a.doctor_profile_id,
              dp.user_id
            from applications a
            join doctor_profiles dp on dp.id = a.doctor_profile_id
            where a.job_id = $1
              and a.status_id <> $2
              and a.deleted_at is null
            order by a.id
            """,
            job_id,
            int(ApplicationStatus.WITHDRAWN),
        )
        return [
            ApplicantRecipient(
                application_id=int(row["application_id"]),
                doctor_profile_id=int(row["doctor_profile_id"]),
                user_id=int(row["user_id"]),
            )
            for row in rows
        ]

    async def get_hospital_contact(self, hospital_id: int) -> HospitalContact | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select id, user_id, institution_name
            from hospital_profiles
            where id = $1
            """,
            hospital_id,
        )
        if not row:
            return None
        return HospitalContact(
            hospital_id=int(row["id"]),
            user_id=int(row["user_id"]),
            institution_name=row["institution_name"],
        )

    async def get_doctor_user_id(self, doctor_profile_id: int) -> int | None:
        pool = await self._get_pool()
        user_id = await pool.fetchval(
            """
            select user_id
            from doctor_profiles
            where id = $1
            """,
            doctor_profile_id,
        )
        return int(user_id) if user_id is not None else None

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
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into notifications (user_id, type, title, body, data_json, channel, created_at)
                select id, $2::text, $3::text, $4::text, $5::jsonb, $6::text, $7::timestamptz
                from users
                where id = $1::bigint
                returning id, user_id, type, title, body, data_json, channel, created_at
                """,
                user_id,
                kind,
                title,
                body,
                json.dumps(data, default=str),
                channel,
                now,
            )
        except pg_exc.ForeignKeyViolationError as exc:
            raise RepositoryNotFoundError("user not found") from exc
        if not row:
            raise RepositoryNotFoundError("user not found")
        return NotificationRecord(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            kind=row["type"],
            title=row["title"],
            body=row["body"],
            data=self._coerce_json_dict(row["data_json"]),
            channel=row["channel"],
            created_at=row["created_at"],
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("HJ_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @classmethod
    def _job_row_to_record(cls, row: asyncpg.Record) -> JobPostingRecord:
        return JobPostingRecord(
            id=int(row["id"]),
            hospital_id=int(row["hospital_id"]),
            title=row["title"],
            description=row["description"],
            requirements=cls._coerce_json_dict(row["requirements"]),
            specialty=row["specialty"],
            city=row["city"],
            employment_type=row["employment_type"],
            status_id=int(row["status_id"]),
            revision_note=row["revision_note"],
            revision_count=int(row["revision_count"] or 0),
            approved_at=row["approved_at"],
            published_at=row["published_at"],
            deleted_at=row["deleted_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _application_row_to_record(row: asyncpg.Record) -> ApplicationRecord:
        return ApplicationRecord(
            id=int(row["id"]),
            job_id=int(row["job_id"]),
            hospital_id=int(row["hospital_id"]),
            doctor_profile_id=int(row["doctor_profile_id"]),
            status_id=int(row["status_id"]),
            applied_at=row["applied_at"],
            job_title=row["job_title"],
            notes=row["notes"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    @staticmethod
    def _history_row_to_record(row: asyncpg.Record) -> JobHistoryRecord:
        return JobHistoryRecord(
            id=int(row["id"]),
            job_id=int(row["job_id"]),
            old_status_id=int(row["old_status_id"]),
            new_status_id=int(row["new_status_id"]),
            changed_by_user_id=int(row["changed_by"]),
            changed_by_role=row["changed_by_role"],
            note=row["note"],
            changed_at=row["changed_at"],
        )

    @staticmethod
    def _coerce_json_dict(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        if isinstance(value, dict):
            return value
        return {}


@lru_cache
def get_repository() -> ResourceStore:
    settings = get_settings()
    if settings.store_backend == "memory":
        return InMemoryStore()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
