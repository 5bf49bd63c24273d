from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.dependencies import get_job_engine
from app.api.errors import repository_http_exception, to_http_exception
from app.core.auth import Actor
from app.core.security import get_actor
from app.schemas.jobs import (
    JobCreateRequest,
    JobEditRequest,
    JobHistoryOut,
    JobOut,
    JobTransitionOut,
    JobTransitionRequest,
)
from app.services.errors import LifecycleError
from app.services.jobs import JobLifecycleEngine
from app.services.records import RepositoryError

router = APIRouter()


@router.post("", response_model=JobOut, status_code=status.HTTP_201_CREATED)
async def create_job(
    payload: JobCreateRequest,
    actor: Actor = Depends(get_actor),
    engine: JobLifecycleEngine = Depends(get_job_engine),
) -> JobOut:
    try:
        job = await engine.create_job(actor, payload.model_dump(exclude_none=True))
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    except RepositoryError as exc:
        raise repository_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.patch("/{job_id}", response_model=JobOut)
async def edit_job(
    job_id: int,
    payload: JobEditRequest,
    actor: Actor = Depends(get_actor),
    engine: JobLifecycleEngine = Depends(get_job_engine),
) -> JobOut:
    fields = payload.model_dump(exclude_unset=True)
    if fields.get("requirements", {}) is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="requirements must be an object")

    try:
        job = await engine.edit_job(actor, job_id, fields)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    except RepositoryError as exc:
        raise repository_http_exception(exc) from exc
    return JobOut.model_validate(job)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(
    job_id: int,
    actor: Actor = Depends(get_actor),
    engine: JobLifecycleEngine = Depends(get_job_engine),
) -> Response:
    try:
        await engine.delete_job(actor, job_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    except RepositoryError as exc:
        raise repository_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{job_id}/transitions", response_model=JobTransitionOut)
async def transition_job(
    job_id: int,
    payload: JobTransitionRequest,
    actor: Actor = Depends(get_actor),
    engine: JobLifecycleEngine = Depends(get_job_engine),
) -> JobTransitionOut:
    try:
        outcome = await engine.transition_job(
            actor,
            job_id,
            payload.status,
            payload.note,
            resend_notifications=payload.resend,
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    except RepositoryError as exc:
        raise repository_http_exception(exc) from exc

    return JobTransitionOut(
        job=JobOut.model_validate(outcome.job),
        changed=outcome.changed,
        from_status=int(outcome.from_status),
        to_status=int(outcome.to_status),
        notifications_attempted=outcome.notifications_attempted,
        notifications_delivered=outcome.notifications_delivered,
    )


@router.get("/{job_id}/history", response_model=list[JobHistoryOut])
async def list_job_history(
    job_id: int,
    actor: Actor = Depends(get_actor),
    engine: JobLifecycleEngine = Depends(get_job_engine),
) -> list[JobHistoryOut]:
    try:
        rows = await engine.list_history(actor, job_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    except RepositoryError as exc:
        raise repository_http_exception(exc) from exc
    return [JobHistoryOut.model_validate(row) for row in rows]
