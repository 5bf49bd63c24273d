"""Job posting lifecycle: moderation, resubmission and publication toggling."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from opentelemetry import trace

from app.core.auth import Actor, AdminActor, HospitalActor
from app.core.lifecycle import (
    JOB_EDITABLE_FIELDS,
    JOB_EDITABLE_STATUS,
    JOB_FANOUT_EDGES,
    JobStatus,
    coerce_job_status,
    job_edge_exists,
    job_edge_roles,
    job_roles_entering,
    job_roles_leaving,
    status_ordinal,
)
from app.services.errors import (
    ForbiddenError,
    InvalidStateError,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    TransitionConflictError,
    ValidationError,
)
from app.services.guard import OwnershipGuard
from app.services.history import HistoryRecorder
from app.services.notification_templates import NotificationEvent, job_availability_event, job_moderation_event
from app.services.notifications import DeliveryResult, NotificationDispatcher, best_effort
from app.services.records import JobHistoryRecord, JobPostingRecord, JobStatusChange, ResourceStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RESUBMIT_NOTE = "resubmitted"
_MODERATION_TARGETS = frozenset({JobStatus.APPROVED, JobStatus.NEEDS_REVISION, JobStatus.REJECTED})

# Edge replayed by a resend when the job has no history entering its status.
_RESEND_SOURCE_STATUS: dict[JobStatus, JobStatus] = {
    JobStatus.PENDING_APPROVAL: JobStatus.NEEDS_REVISION,
    JobStatus.NEEDS_REVISION: JobStatus.PENDING_APPROVAL,
    JobStatus.APPROVED: JobStatus.PENDING_APPROVAL,
    JobStatus.INACTIVE: JobStatus.APPROVED,
    JobStatus.REJECTED: JobStatus.PENDING_APPROVAL,
}


@dataclass(slots=True)
class JobTransitionOutcome:
    job: JobPostingRecord
    from_status: JobStatus
    to_status: JobStatus
    changed: bool
    history: JobHistoryRecord | None = None
    notifications_attempted: int = 0
    notifications_delivered: int = 0


class JobLifecycleEngine:
    def __init__(
        self,
        store: ResourceStore,
        *,
        guard: OwnershipGuard,
        history: HistoryRecorder,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] | None = None,
        max_attempts: int = 2,
    ) -> None:
        self.store = store
        self.guard = guard
        self.history = history
        self.dispatcher = dispatcher
        self.max_attempts = max(1, max_attempts)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def create_job(self, actor: Actor, fields: dict[str, Any]) -> JobPostingRecord:
        if not isinstance(actor, HospitalActor):
            raise ForbiddenError("only hospitals can create job postings", resource="job")
        title = fields.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title is required", resource="job")
        self._reject_unknown_fields(fields, resource_id=None)

        job = await self.store.insert_job(hospital_id=actor.hospital_profile_id, fields=fields, now=self._clock())
        logger.info("job created job_id=%s hospital_id=%s status=%s", job.id, job.hospital_id, JobStatus.PENDING_APPROVAL.label)
        return job

    async def edit_job(self, actor: Actor, job_id: int, fields: dict[str, Any]) -> JobPostingRecord:
        """Apply body edits; only the owning hospital, only while NeedsRevision."""
        job = await self.guard.resolve_job_for_actor(actor, job_id)
        if not isinstance(actor, HospitalActor):
            raise ForbiddenError("only the owning hospital can edit a posting", resource="job", resource_id=job_id)
        if not fields:
            raise ValidationError("no fields to update", resource="job", resource_id=job_id)
        self._reject_unknown_fields(fields, resource_id=job_id)
        if "title" in fields and (not isinstance(fields["title"], str) or not fields["title"].strip()):
            raise ValidationError("title must not be empty", resource="job", resource_id=job_id)
        if job.status_id != int(JOB_EDITABLE_STATUS):
            raise InvalidStateError(
                f"job can only be edited while {JOB_EDITABLE_STATUS.label}",
                resource="job",
                resource_id=job_id,
                from_status=job.status_id,
            )

        updated = await self.store.update_job_fields(
            job_id=job_id,
            expected_status=JOB_EDITABLE_STATUS,
            fields=fields,
            now=self._clock(),
        )
        if updated is None:
            latest = await self.store.get_job(job_id)
            if latest is None or latest.deleted_at is not None:
                raise NotFoundError("job not found", resource="job", resource_id=job_id)
            raise InvalidStateError(
                f"job can only be edited while {JOB_EDITABLE_STATUS.label}",
                resource="job",
                resource_id=job_id,
                from_status=latest.status_id,
            )
        logger.info("job edited job_id=%s fields=%s", job_id, sorted(fields))
        return updated

    async def delete_job(self, actor: Actor, job_id: int) -> None:
        await self.guard.resolve_job_for_actor(actor, job_id)
        if not isinstance(actor, (AdminActor, HospitalActor)):
            raise ForbiddenError("actor may not delete job postings", resource="job", resource_id=job_id)
        deleted = await self.store.soft_delete_job(job_id=job_id, now=self._clock())
        if not deleted:
            raise NotFoundError("job not found", resource="job", resource_id=job_id)
        logger.info("job soft-deleted job_id=%s actor=%s:%s", job_id, actor.role.value, actor.user_id)

    async def list_history(self, actor: Actor, job_id: int) -> list[JobHistoryRecord]:
        await self.guard.resolve_job_for_actor(actor, job_id)
        if not isinstance(actor, (AdminActor, HospitalActor)):
            raise ForbiddenError("actor may not read job history", resource="job", resource_id=job_id)
        return await self.history.list_for_job(job_id)

    async def transition_job(
        self,
        actor: Actor,
        job_id: int,
        target_status: int | JobStatus,
        note: str | None = None,
        *,
        resend_notifications: bool = False,
    ) -> JobTransitionOutcome:
        job = await self.guard.resolve_job_for_actor(actor, job_id)
        return await self.transition(actor, job, target_status, note, resend_notifications=resend_notifications)

    async def transition(
        self,
        actor: Actor,
        job: JobPostingRecord,
        target_status: int | JobStatus,
        note: str | None = None,
        *,
        resend_notifications: bool = False,
    ) -> JobTransitionOutcome:
        """Move ``job`` to ``target_status`` on behalf of an already-resolved actor.

        A request for the current status is a no-op: nothing is written and,
        unless ``resend_notifications`` is set, no notification goes out.
        The status write is a compare-and-swap on the status that was
        validated; when another writer got there first the row is re-read and
        the request revalidated against it.
        """
        target = coerce_job_status(target_status)
        if target is None:
            raise InvalidStatusError(
                f"unknown job status: {target_status}",
                resource="job",
                resource_id=job.id,
                from_status=job.status_id,
                to_status=status_ordinal(target_status),
            )

        with tracer.start_as_current_span("job.transition") as span:
            span.set_attribute("job.id", job.id)
            span.set_attribute("job.to_status", target.label)
            span.set_attribute("actor.role", actor.role.value)

            for _ in range(self.max_attempts):
                current = self._current_status(job)
                span.set_attribute("job.from_status", current.label)
                if current is target:
                    return await self._no_op(actor, job, current, resend_notifications=resend_notifications)

                self._validate_edge(actor, job, current, target)
                change = self._build_change(job, current, target, note)
                updated = await self.store.update_job_status(
                    job_id=job.id,
                    expected_status=current,
                    change=change,
                    now=self._clock(),
                )
                if updated is not None:
                    break

                logger.warning(
                    "job status changed concurrently; revalidating job_id=%s expected=%s",
                    job.id,
                    current.label,
                )
                latest = await self.store.get_job(job.id)
                if latest is None or latest.deleted_at is not None:
                    raise NotFoundError("job not found", resource="job", resource_id=job.id)
                job = latest
            else:
                raise TransitionConflictError(
                    "job status kept changing concurrently",
                    resource="job",
                    resource_id=job.id,
                    from_status=job.status_id,
                    to_status=int(target),
                )

            logger.info(
                "job transitioned job_id=%s from=%s to=%s actor=%s:%s",
                updated.id,
                current.label,
                target.label,
                actor.role.value,
                actor.user_id,
            )

            history = await best_effort(
                "job history record",
                lambda: self.history.record(
                    job_id=updated.id,
                    old_status=current,
                    new_status=target,
                    actor=actor,
                    note=self._history_note(current, target, note),
                ),
                job_id=updated.id,
            )

            results = await self._notify(updated, current, target, note)
            delivered = sum(1 for result in results if result.delivered)
            span.set_attribute("job.notifications_delivered", delivered)

        return JobTransitionOutcome(
            job=updated,
            from_status=current,
            to_status=target,
            changed=True,
            history=history.value,
            notifications_attempted=len(results),
            notifications_delivered=delivered,
        )

    async def _no_op(
        self,
        actor: Actor,
        job: JobPostingRecord,
        status: JobStatus,
        *,
        resend_notifications: bool,
    ) -> JobTransitionOutcome:
        if actor.role not in job_roles_entering(status) | job_roles_leaving(status):
            raise ForbiddenError(
                f"{actor.role.value} may not change a job in {status.label}",
                resource="job",
                resource_id=job.id,
                from_status=int(status),
                to_status=int(status),
            )
        if not resend_notifications:
            logger.info("job transition is a no-op job_id=%s status=%s", job.id, status.label)
            return JobTransitionOutcome(job=job, from_status=status, to_status=status, changed=False)

        previous = await self._entered_from(job, status)
        if actor.role not in job_edge_roles(previous, status):
            raise ForbiddenError(
                f"{actor.role.value} may not resend {previous.label} -> {status.label} notifications",
                resource="job",
                resource_id=job.id,
                from_status=int(previous),
                to_status=int(status),
            )
        logger.info(
            "resending job notifications job_id=%s from=%s to=%s",
            job.id,
            previous.label,
            status.label,
        )
        results = await self._notify(job, previous, status, job.revision_note)
        return JobTransitionOutcome(
            job=job,
            from_status=status,
            to_status=status,
            changed=False,
            notifications_attempted=len(results),
            notifications_delivered=sum(1 for result in results if result.delivered),
        )

    async def _entered_from(self, job: JobPostingRecord, status: JobStatus) -> JobStatus:
        """Status the job left when it last entered ``status``."""
        lookup = await best_effort("job history lookup", lambda: self.history.list_for_job(job.id), job_id=job.id)
        for entry in lookup.value or []:
            if entry.new_status_id != int(status):
                continue
            previous = coerce_job_status(entry.old_status_id)
            if previous is not None and job_edge_exists(previous, status):
                return previous
            break
        return _RESEND_SOURCE_STATUS[status]

    @staticmethod
    def _current_status(job: JobPostingRecord) -> JobStatus:
        current = coerce_job_status(job.status_id)
        if current is None:
            raise InvalidStateError(
                f"job has unknown status {job.status_id}",
                resource="job",
                resource_id=job.id,
                from_status=job.status_id,
            )
        return current

    @staticmethod
    def _validate_edge(actor: Actor, job: JobPostingRecord, current: JobStatus, target: JobStatus) -> None:
        if not job_edge_exists(current, target):
            raise InvalidTransitionError(
                f"invalid job status transition: {current.label} -> {target.label}",
                resource="job",
                resource_id=job.id,
                from_status=int(current),
                to_status=int(target),
            )
        if actor.role not in job_edge_roles(current, target):
            raise ForbiddenError(
                f"{actor.role.value} may not move a job from {current.label} to {target.label}",
                resource="job",
                resource_id=job.id,
                from_status=int(current),
                to_status=int(target),
            )

    def _build_change(
        self,
        job: JobPostingRecord,
        current: JobStatus,
        target: JobStatus,
        note: str | None,
    ) -> JobStatusChange:
        now = self._clock()
        if target is JobStatus.NEEDS_REVISION:
            if note is None or not note.strip():
                raise ValidationError(
                    "a revision note is required",
                    resource="job",
                    resource_id=job.id,
                    from_status=int(current),
                    to_status=int(target),
                )
            return JobStatusChange(new_status=target, revision_note=note.strip(), increment_revision_count=True)
        if current is JobStatus.PENDING_APPROVAL and target is JobStatus.APPROVED:
            return JobStatusChange(new_status=target, approved_at=now, published_at=now)
        if current is JobStatus.INACTIVE and target is JobStatus.APPROVED:
            return JobStatusChange(new_status=target, published_at=now)
        return JobStatusChange(new_status=target)

    @staticmethod
    def _history_note(current: JobStatus, target: JobStatus, note: str | None) -> str:
        if current is JobStatus.NEEDS_REVISION and target is JobStatus.PENDING_APPROVAL:
            return RESUBMIT_NOTE
        if note and note.strip():
            return note.strip()
        if target is JobStatus.APPROVED and current is JobStatus.PENDING_APPROVAL:
            return "approved by admin"
        if target is JobStatus.REJECTED:
            return "rejected by admin"
        return f"status changed: {current.label} -> {target.label}"

    async def _notify(
        self,
        job: JobPostingRecord,
        current: JobStatus,
        target: JobStatus,
        note: str | None,
    ) -> list[DeliveryResult]:
        if current is JobStatus.PENDING_APPROVAL and target in _MODERATION_TARGETS:
            return await self._notify_hospital(job, target, note)
        if (current, target) in JOB_FANOUT_EDGES:
            return await self._notify_applicants(job, current, target)
        return []

    async def _notify_hospital(self, job: JobPostingRecord, target: JobStatus, note: str | None) -> list[DeliveryResult]:
        lookup = await best_effort(
            "hospital contact lookup",
            lambda: self.store.get_hospital_contact(job.hospital_id),
            job_id=job.id,
            hospital_id=job.hospital_id,
        )
        contact = lookup.value
        if contact is None:
            if lookup.ok:
                logger.warning("no hospital contact for job_id=%s hospital_id=%s", job.id, job.hospital_id)
            return []

        event = job_moderation_event(
            user_id=contact.user_id,
            job_id=job.id,
            new_status=target,
            job_title=job.title,
            hospital_name=contact.institution_name,
            note=note.strip() if note else None,
        )
        if event is None:
            return []
        return [await self.dispatcher.dispatch(event)]

    async def _notify_applicants(self, job: JobPostingRecord, current: JobStatus, target: JobStatus) -> list[DeliveryResult]:
        recipients = await best_effort(
            "applicant lookup",
            lambda: self.store.list_notifiable_applicants(job.id),
            job_id=job.id,
        )
        if not recipients.value:
            logger.info("no applicants to notify job_id=%s", job.id)
            return []

        contact = await best_effort(
            "hospital contact lookup",
            lambda: self.store.get_hospital_contact(job.hospital_id),
            job_id=job.id,
            hospital_id=job.hospital_id,
        )
        hospital_name = contact.value.institution_name if contact.value else "the hospital"

        events: list[NotificationEvent] = [
            job_availability_event(
                user_id=recipient.user_id,
                job_id=job.id,
                application_id=recipient.application_id,
                old_status=current,
                new_status=target,
                job_title=job.title,
                hospital_name=hospital_name,
            )
            for recipient in recipients.value
        ]
        results = await self.dispatcher.dispatch_many(events)
        logger.info(
            "job status fan-out job_id=%s recipients=%s delivered=%s",
            job.id,
            len(results),
            sum(1 for result in results if result.delivered),
        )
        return results

    @staticmethod
    def _reject_unknown_fields(fields: dict[str, Any], *, resource_id: int | None) -> None:
        unknown = set(fields) - JOB_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"unsupported job fields: {sorted(unknown)}",
                resource="job",
                resource_id=resource_id,
            )
