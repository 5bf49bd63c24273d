from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.core.lifecycle import coerce_job_status


class JobCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None
    requirements: dict[str, Any] = Field(default_factory=dict)
    specialty: str | None = None
    city: str | None = None
    employment_type: str | None = None


class JobEditRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    requirements: dict[str, Any] | None = None
    specialty: str | None = None
    city: str | None = None
    employment_type: str | None = None


class JobTransitionRequest(BaseModel):
    status: int
    note: str | None = None
    resend: bool = False


class JobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    hospital_id: int
    title: str
    description: str | None = None
    requirements: dict[str, Any] = Field(default_factory=dict)
    specialty: str | None = None
    city: str | None = None
    employment_type: str | None = None
    status_id: int
    revision_note: str | None = None
    revision_count: int = 0
    approved_at: datetime | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> str:
        status = coerce_job_status(self.status_id)
        return status.label if status else "unknown"


class JobTransitionOut(BaseModel):
    job: JobOut
    changed: bool
    from_status: int
    to_status: int
    notifications_attempted: int = 0
    notifications_delivered: int = 0


class JobHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    old_status_id: int
    new_status_id: int
    changed_by_user_id: int
    changed_by_role: str
    note: str | None = None
    changed_at: datetime
