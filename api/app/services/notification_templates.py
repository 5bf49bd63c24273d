"""Message templates for lifecycle notifications.

Application templates are keyed by the raw status code so that codes added to
the lookup table without a matching template fall back to a generic message
instead of failing the dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from app.core.lifecycle import ApplicationStatus, JobStatus


class NotificationKind(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    user_id: int
    kind: NotificationKind
    title: str
    body: str
    data: dict[str, Any]


@dataclass(frozen=True, slots=True)
class _Template:
    kind: NotificationKind
    title: str
    body: str
    include_notes: bool = True


_APPLICATION_TEMPLATES: dict[int, _Template] = {
    int(ApplicationStatus.PENDING): _Template(
        NotificationKind.INFO,
        "Application status updated",
        'Your application for "{job_title}" at {hospital_name} is pending review.',
    ),
    int(ApplicationStatus.UNDER_REVIEW): _Template(
        NotificationKind.INFO,
        "Application under review",
        'Your application for "{job_title}" at {hospital_name} is now under review.',
    ),
    int(ApplicationStatus.ACCEPTED): _Template(
        NotificationKind.SUCCESS,
        "Application accepted",
        'Your application for "{job_title}" at {hospital_name} was accepted.',
    ),
    int(ApplicationStatus.REJECTED): _Template(
        NotificationKind.ERROR,
        "Application rejected",
        'Your application for "{job_title}" at {hospital_name} was rejected.',
    ),
    int(ApplicationStatus.WITHDRAWN): _Template(
        NotificationKind.WARNING,
        "Application withdrawn",
        'Your application for "{job_title}" at {hospital_name} was withdrawn.',
        include_notes=False,
    ),
}

_DEFAULT_APPLICATION_TEMPLATE = _Template(
    NotificationKind.INFO,
    "Application status changed",
    'The status of your application for "{job_title}" at {hospital_name} was updated.',
)


def application_status_event(
    *,
    user_id: int,
    application_id: int,
    old_status: int,
    new_status: int,
    job_title: str,
    hospital_name: str,
    notes: str | None,
) -> NotificationEvent:
    template = _APPLICATION_TEMPLATES.get(int(new_status), _DEFAULT_APPLICATION_TEMPLATE)
    body = template.body.format(job_title=job_title, hospital_name=hospital_name)
    if notes and template.include_notes:
        body = f"{body} Note: {notes}"
    return NotificationEvent(
        user_id=user_id,
        kind=template.kind,
        title=template.title,
        body=body,
        data={
            "application_id": application_id,
            "job_title": job_title,
            "hospital_name": hospital_name,
            "old_status": int(old_status),
            "status": int(new_status),
            "notes": notes,
        },
    )


_MODERATION_TEMPLATES: dict[JobStatus, _Template] = {
    JobStatus.APPROVED: _Template(
        NotificationKind.SUCCESS,
        "Job posting approved",
        'The posting "{job_title}" at {hospital_name} was approved and published.',
    ),
    JobStatus.NEEDS_REVISION: _Template(
        NotificationKind.WARNING,
        "Job posting needs revision",
        'The posting "{job_title}" at {hospital_name} needs revision.',
    ),
    JobStatus.REJECTED: _Template(
        NotificationKind.ERROR,
        "Job posting rejected",
        'The posting "{job_title}" at {hospital_name} was rejected.',
    ),
}


def job_moderation_event(
    *,
    user_id: int,
    job_id: int,
    new_status: JobStatus,
    job_title: str,
    hospital_name: str,
    note: str | None,
) -> NotificationEvent | None:
    """Message for the owning hospital after an admin moderation decision."""
    template = _MODERATION_TEMPLATES.get(new_status)
    if template is None:
        return None
    body = template.body.format(job_title=job_title, hospital_name=hospital_name)
    data: dict[str, Any] = {"job_id": job_id, "job_title": job_title, "status": new_status.label}
    if new_status is JobStatus.NEEDS_REVISION:
        data["revision_note"] = note
        body = f"{body} Note: {note}"
    elif new_status is JobStatus.REJECTED and note:
        data["rejection_reason"] = note
        body = f"{body} Reason: {note}"
    return NotificationEvent(user_id=user_id, kind=template.kind, title=template.title, body=body, data=data)


def job_availability_event(
    *,
    user_id: int,
    job_id: int,
    application_id: int,
    old_status: JobStatus,
    new_status: JobStatus,
    job_title: str,
    hospital_name: str,
) -> NotificationEvent:
    """Message for an applicant when the posting they applied to opens or closes."""
    if new_status is JobStatus.INACTIVE:
        kind = NotificationKind.WARNING
        title = "Job posting closed"
        body = f'The posting "{job_title}" at {hospital_name} you applied to was closed.'
    else:
        kind = NotificationKind.INFO
        title = "Job posting reopened"
        body = f'The posting "{job_title}" at {hospital_name} you applied to is active again.'
    return NotificationEvent(
        user_id=user_id,
        kind=kind,
        title=title,
        body=body,
        data={
            "job_id": job_id,
            "application_id": application_id,
            "job_title": job_title,
            "hospital_name": hospital_name,
            "old_status": old_status.label,
            "new_status": new_status.label,
        },
    )


def application_withdrawn_event(
    *,
    user_id: int,
    application_id: int,
    job_id: int,
    job_title: str,
) -> NotificationEvent:
    """Message for the owning hospital when a doctor withdraws."""
    return NotificationEvent(
        user_id=user_id,
        kind=NotificationKind.WARNING,
        title="Application withdrawn",
        body=f'An application for "{job_title}" was withdrawn by the applicant.',
        data={"application_id": application_id, "job_id": job_id, "job_title": job_title},
    )
