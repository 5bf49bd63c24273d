from fastapi import HTTPException, status

from app.services.errors import (
    ForbiddenError,
    InvalidStateError,
    InvalidStatusError,
    InvalidTransitionError,
    LifecycleError,
    NotFoundError,
    TerminalStateError,
    TransitionConflictError,
    ValidationError,
)
from app.services.records import (
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
)

_STATUS_BY_ERROR: dict[type[LifecycleError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    InvalidStateError: status.HTTP_409_CONFLICT,
    TerminalStateError: status.HTTP_409_CONFLICT,
    TransitionConflictError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidStatusError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def to_http_exception(exc: LifecycleError) -> HTTPException:
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=exc.to_dict())


def repository_http_exception(exc: RepositoryError) -> HTTPException:
    if isinstance(exc, RepositoryUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, RepositoryNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RepositoryConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
