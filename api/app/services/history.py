from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from app.core.auth import Actor
from app.core.lifecycle import JobStatus
from app.services.records import JobHistoryRecord, ResourceStore

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """Append-only audit trail of job status transitions."""

    def __init__(self, store: ResourceStore, *, clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def record(
        self,
        *,
        job_id: int,
        old_status: JobStatus,
        new_status: JobStatus,
        actor: Actor,
        note: str | None,
    ) -> JobHistoryRecord:
        entry = await self.store.append_job_history(
            job_id=job_id,
            old_status=old_status,
            new_status=new_status,
            changed_by_user_id=actor.user_id,
            changed_by_role=actor.role.value,
            note=note,
            changed_at=self._clock(),
        )
        logger.info(
            "job history recorded job_id=%s from=%s to=%s actor=%s:%s",
            job_id,
            old_status.label,
            new_status.label,
            actor.role.value,
            actor.user_id,
        )
        return entry

    async def list_for_job(self, job_id: int) -> list[JobHistoryRecord]:
        return await self.store.list_job_history(job_id)
