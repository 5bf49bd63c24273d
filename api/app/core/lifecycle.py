"""Status enumerations and transition tables for job postings and applications.

Ordinals match the ``job_statuses`` / ``application_statuses`` lookup rows and
are what gets persisted in ``status_id`` columns and history rows.
"""

from __future__ import annotations

from enum import IntEnum

from app.core.auth import ActorRole


class JobStatus(IntEnum):
    PENDING_APPROVAL = 1
    NEEDS_REVISION = 2
    APPROVED = 3
    INACTIVE = 4
    REJECTED = 5

    @property
    def label(self) -> str:
        return self.name.lower()


class ApplicationStatus(IntEnum):
    PENDING = 1
    UNDER_REVIEW = 2
    ACCEPTED = 3
    REJECTED = 4
    WITHDRAWN = 5

    @property
    def label(self) -> str:
        return self.name.lower()


_ADMIN = frozenset({ActorRole.ADMIN})
_OWNER = frozenset({ActorRole.HOSPITAL})
_OWNER_OR_ADMIN = frozenset({ActorRole.ADMIN, ActorRole.HOSPITAL})

# from -> to -> roles allowed to take that edge
JOB_TRANSITIONS: dict[JobStatus, dict[JobStatus, frozenset[ActorRole]]] = {
    JobStatus.PENDING_APPROVAL: {
        JobStatus.APPROVED: _ADMIN,
        JobStatus.NEEDS_REVISION: _ADMIN,
        JobStatus.REJECTED: _ADMIN,
    },
    JobStatus.NEEDS_REVISION: {
        JobStatus.PENDING_APPROVAL: _OWNER,
    },
    JobStatus.APPROVED: {
        JobStatus.INACTIVE: _OWNER_OR_ADMIN,
    },
    JobStatus.INACTIVE: {
        JobStatus.APPROVED: _OWNER_OR_ADMIN,
    },
    JobStatus.REJECTED: {},
}

# Transitions whose consequence reaches every non-withdrawn applicant.
JOB_FANOUT_EDGES: frozenset[tuple[JobStatus, JobStatus]] = frozenset(
    {
        (JobStatus.APPROVED, JobStatus.INACTIVE),
        (JobStatus.INACTIVE, JobStatus.APPROVED),
    }
)

JOB_EDITABLE_STATUS = JobStatus.NEEDS_REVISION
JOB_EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "requirements",
        "specialty",
        "city",
        "employment_type",
    }
)

APPLICATION_REVIEW_STATUSES = frozenset(
    {
        ApplicationStatus.PENDING,
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.ACCEPTED,
        ApplicationStatus.REJECTED,
    }
)
APPLICATION_REVIEWER_ROLES = _OWNER_OR_ADMIN
APPLICATION_WITHDRAWABLE_STATUSES = frozenset({ApplicationStatus.PENDING, ApplicationStatus.UNDER_REVIEW})
APPLICATION_TERMINAL_STATUSES = frozenset({ApplicationStatus.WITHDRAWN})


def coerce_job_status(value: int | JobStatus) -> JobStatus | None:
    try:
        return JobStatus(value)
    except ValueError:
        return None


def coerce_application_status(value: int | ApplicationStatus) -> ApplicationStatus | None:
    try:
        return ApplicationStatus(value)
    except ValueError:
        return None


def job_edge_exists(from_status: JobStatus, to_status: JobStatus) -> bool:
    return to_status in JOB_TRANSITIONS.get(from_status, {})


def job_edge_roles(from_status: JobStatus, to_status: JobStatus) -> frozenset[ActorRole]:
    return JOB_TRANSITIONS.get(from_status, {}).get(to_status, frozenset())


def job_roles_entering(status: JobStatus) -> frozenset[ActorRole]:
    """Roles that can move any posting into ``status`` through a defined edge."""
    roles: set[ActorRole] = set()
    for targets in JOB_TRANSITIONS.values():
        roles.update(targets.get(status, frozenset()))
    return frozenset(roles)


def job_roles_leaving(status: JobStatus) -> frozenset[ActorRole]:
    roles: set[ActorRole] = set()
    for allowed in JOB_TRANSITIONS.get(status, {}).values():
        roles.update(allowed)
    return frozenset(roles)


def status_ordinal(value: object) -> int | None:
    """Best-effort integer form of a requested status, for error payloads."""
    if isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None
