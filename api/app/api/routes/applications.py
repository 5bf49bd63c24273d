from fastapi import APIRouter, Depends

from app.api.dependencies import get_application_engine
from app.api.errors import repository_http_exception, to_http_exception
from app.core.auth import Actor
from app.core.security import get_actor
from app.schemas.applications import ApplicationOut, ApplicationTransitionOut, ApplicationTransitionRequest
from app.services.applications import ApplicationLifecycleEngine, ApplicationTransitionOutcome
from app.services.errors import LifecycleError
from app.services.records import RepositoryError

router = APIRouter()


@router.post("/{application_id}/transitions", response_model=ApplicationTransitionOut)
async def transition_application(
    application_id: int,
    payload: ApplicationTransitionRequest,
    actor: Actor = Depends(get_actor),
    engine: ApplicationLifecycleEngine = Depends(get_application_engine),
) -> ApplicationTransitionOut:
    try:
        outcome = await engine.transition_application(actor, application_id, payload.status, payload.notes)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    except RepositoryError as exc:
        raise repository_http_exception(exc) from exc
    return _to_out(outcome)


@router.post("/{application_id}/withdraw", response_model=ApplicationTransitionOut)
async def withdraw_application(
    application_id: int,
    actor: Actor = Depends(get_actor),
    engine: ApplicationLifecycleEngine = Depends(get_application_engine),
) -> ApplicationTransitionOut:
    try:
        outcome = await engine.withdraw_application(actor, application_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    except RepositoryError as exc:
        raise repository_http_exception(exc) from exc
    return _to_out(outcome)


def _to_out(outcome: ApplicationTransitionOutcome) -> ApplicationTransitionOut:
    return ApplicationTransitionOut(
        application=ApplicationOut.model_validate(outcome.application),
        from_status=outcome.from_status,
        to_status=int(outcome.to_status),
        notified=bool(outcome.notification and outcome.notification.delivered),
    )
