from datetime import datetime

from pydantic import BaseModel, ConfigDict, computed_field

from app.core.lifecycle import coerce_application_status


class ApplicationTransitionRequest(BaseModel):
    status: int
    notes: str | None = None


class ApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    doctor_profile_id: int
    status_id: int
    job_title: str | None = None
    notes: str | None = None
    applied_at: datetime
    updated_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> str:
        status = coerce_application_status(self.status_id)
        return status.label if status else "unknown"


class ApplicationTransitionOut(BaseModel):
    application: ApplicationOut
    from_status: int
    to_status: int
    notified: bool
