"""Application review lifecycle and doctor-side withdrawal."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from opentelemetry import trace

from app.core.auth import Actor, DoctorActor
from app.core.lifecycle import (
    APPLICATION_REVIEW_STATUSES,
    APPLICATION_REVIEWER_ROLES,
    APPLICATION_TERMINAL_STATUSES,
    APPLICATION_WITHDRAWABLE_STATUSES,
    ApplicationStatus,
    coerce_application_status,
    status_ordinal,
)
from app.services.errors import (
    ForbiddenError,
    InvalidStateError,
    InvalidStatusError,
    InvalidTransitionError,
    NotFoundError,
    TerminalStateError,
    TransitionConflictError,
)
from app.services.guard import OwnershipGuard
from app.services.notification_templates import application_status_event, application_withdrawn_event
from app.services.notifications import DeliveryResult, NotificationDispatcher, best_effort
from app.services.records import ApplicationRecord, ResourceStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class ApplicationTransitionOutcome:
    application: ApplicationRecord
    from_status: int
    to_status: ApplicationStatus
    notification: DeliveryResult | None = None


class ApplicationLifecycleEngine:
    def __init__(
        self,
        store: ResourceStore,
        *,
        guard: OwnershipGuard,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] | None = None,
        max_attempts: int = 2,
    ) -> None:
        self.store = store
        self.guard = guard
        self.dispatcher = dispatcher
        self.max_attempts = max(1, max_attempts)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def transition_application(
        self,
        actor: Actor,
        application_id: int,
        target_status: int | ApplicationStatus,
        notes: str | None = None,
    ) -> ApplicationTransitionOutcome:
        application = await self.guard.resolve_application_for_actor(actor, application_id)
        return await self.transition(actor, application, target_status, notes)

    async def transition(
        self,
        actor: Actor,
        application: ApplicationRecord,
        target_status: int | ApplicationStatus,
        notes: str | None = None,
    ) -> ApplicationTransitionOutcome:
        """Review-side status change by the owning hospital or an admin.

        Writes only ``status_id``, ``notes`` and ``updated_at``; ``applied_at``
        is never touched. Withdrawn applications are rejected before any write.
        """
        target = coerce_application_status(target_status)
        if target is None:
            raise InvalidStatusError(
                f"unknown application status: {target_status}",
                resource="application",
                resource_id=application.id,
                from_status=application.status_id,
                to_status=status_ordinal(target_status),
            )
        if actor.role not in APPLICATION_REVIEWER_ROLES:
            raise ForbiddenError(
                f"{actor.role.value} may not review applications",
                resource="application",
                resource_id=application.id,
                from_status=application.status_id,
                to_status=int(target),
            )

        with tracer.start_as_current_span("application.transition") as span:
            span.set_attribute("application.id", application.id)
            span.set_attribute("application.to_status", target.label)
            span.set_attribute("actor.role", actor.role.value)

            for _ in range(self.max_attempts):
                current = self._current_status(application)
                span.set_attribute("application.from_status", current.label)
                self._validate_review(application, current, target)

                updated = await self.store.update_application_status(
                    application_id=application.id,
                    expected_status=current,
                    new_status=target,
                    notes=notes,
                    now=self._clock(),
                )
                if updated is not None:
                    break
                application = await self._reload(application.id)
            else:
                raise TransitionConflictError(
                    "application status kept changing concurrently",
                    resource="application",
                    resource_id=application.id,
                    from_status=application.status_id,
                    to_status=int(target),
                )

            logger.info(
                "application transitioned application_id=%s from=%s to=%s actor=%s:%s",
                updated.id,
                current.label,
                target.label,
                actor.role.value,
                actor.user_id,
            )
            notification = await self._notify_doctor(updated, current, target, notes)
            span.set_attribute("application.notified", bool(notification and notification.delivered))

        return ApplicationTransitionOutcome(
            application=updated,
            from_status=int(current),
            to_status=target,
            notification=notification,
        )

    async def withdraw_application(self, actor: Actor, application_id: int) -> ApplicationTransitionOutcome:
        """Doctor withdraws their own application; the owning hospital is told."""
        application = await self.guard.resolve_application_for_actor(actor, application_id)
        if not isinstance(actor, DoctorActor):
            raise ForbiddenError(
                "only the applying doctor can withdraw an application",
                resource="application",
                resource_id=application_id,
                from_status=application.status_id,
                to_status=int(ApplicationStatus.WITHDRAWN),
            )

        for _ in range(self.max_attempts):
            current = self._current_status(application)
            if current in APPLICATION_TERMINAL_STATUSES:
                raise TerminalStateError(
                    "application is already withdrawn",
                    resource="application",
                    resource_id=application.id,
                    from_status=int(current),
                    to_status=int(ApplicationStatus.WITHDRAWN),
                )
            if current not in APPLICATION_WITHDRAWABLE_STATUSES:
                raise InvalidTransitionError(
                    f"invalid application status transition: {current.label} -> withdrawn",
                    resource="application",
                    resource_id=application.id,
                    from_status=int(current),
                    to_status=int(ApplicationStatus.WITHDRAWN),
                )
            updated = await self.store.update_application_status(
                application_id=application.id,
                expected_status=current,
                new_status=ApplicationStatus.WITHDRAWN,
                notes=application.notes,
                now=self._clock(),
            )
            if updated is not None:
                break
            application = await self._reload(application.id)
        else:
            raise TransitionConflictError(
                "application status kept changing concurrently",
                resource="application",
                resource_id=application.id,
                from_status=application.status_id,
                to_status=int(ApplicationStatus.WITHDRAWN),
            )

        logger.info("application withdrawn application_id=%s doctor_profile_id=%s", updated.id, updated.doctor_profile_id)
        notification = await self._notify_hospital_of_withdrawal(updated)
        return ApplicationTransitionOutcome(
            application=updated,
            from_status=int(current),
            to_status=ApplicationStatus.WITHDRAWN,
            notification=notification,
        )

    async def _reload(self, application_id: int) -> ApplicationRecord:
        logger.warning("application status changed concurrently; revalidating application_id=%s", application_id)
        latest = await self.store.get_application(application_id)
        if latest is None or latest.deleted_at is not None:
            raise NotFoundError("application not found", resource="application", resource_id=application_id)
        return latest

    @staticmethod
    def _current_status(application: ApplicationRecord) -> ApplicationStatus:
        current = coerce_application_status(application.status_id)
        if current is None:
            raise InvalidStateError(
                f"application has unknown status {application.status_id}",
                resource="application",
                resource_id=application.id,
                from_status=application.status_id,
            )
        return current

    @staticmethod
    def _validate_review(application: ApplicationRecord, current: ApplicationStatus, target: ApplicationStatus) -> None:
        if current in APPLICATION_TERMINAL_STATUSES:
            raise TerminalStateError(
                f"application is {current.label} and can no longer change",
                resource="application",
                resource_id=application.id,
                from_status=int(current),
                to_status=int(target),
            )
        if target not in APPLICATION_REVIEW_STATUSES:
            raise InvalidTransitionError(
                f"invalid application status transition: {current.label} -> {target.label}",
                resource="application",
                resource_id=application.id,
                from_status=int(current),
                to_status=int(target),
            )

    async def _notify_doctor(
        self,
        application: ApplicationRecord,
        current: ApplicationStatus,
        target: ApplicationStatus,
        notes: str | None,
    ) -> DeliveryResult | None:
        doctor_user = await best_effort(
            "doctor user lookup",
            lambda: self.store.get_doctor_user_id(application.doctor_profile_id),
            application_id=application.id,
        )
        if doctor_user.value is None:
            if doctor_user.ok:
                logger.warning("no user for doctor_profile_id=%s", application.doctor_profile_id)
            return None

        contact = await best_effort(
            "hospital contact lookup",
            lambda: self.store.get_hospital_contact(application.hospital_id),
            application_id=application.id,
        )
        event = application_status_event(
            user_id=doctor_user.value,
            application_id=application.id,
            old_status=int(current),
            new_status=int(target),
            job_title=application.job_title or "the job posting",
            hospital_name=contact.value.institution_name if contact.value else "the hospital",
            notes=notes,
        )
        return await self.dispatcher.dispatch(event)

    async def _notify_hospital_of_withdrawal(self, application: ApplicationRecord) -> DeliveryResult | None:
        contact = await best_effort(
            "hospital contact lookup",
            lambda: self.store.get_hospital_contact(application.hospital_id),
            application_id=application.id,
        )
        if contact.value is None:
            return None
        event = application_withdrawn_event(
            user_id=contact.value.user_id,
            application_id=application.id,
            job_id=application.job_id,
            job_title=application.job_title or "the job posting",
        )
        return await self.dispatcher.dispatch(event)
