from __future__ import annotations

from typing import Any


class LifecycleError(Exception):
    """Base error for rejected lifecycle operations.

    Carries enough context (resource, id, attempted transition) for the caller
    to render an actionable message.
    """

    code = "lifecycle_error"

    def __init__(
        self,
        detail: str,
        *,
        resource: str,
        resource_id: int | None = None,
        from_status: int | None = None,
        to_status: int | None = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.resource = resource
        self.resource_id = resource_id
        self.from_status = from_status
        self.to_status = to_status

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.detail,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
        }


class NotFoundError(LifecycleError):
    """Raised when the resource is missing or not visible to the actor."""

    code = "not_found"


class ForbiddenError(LifecycleError):
    """Raised when the actor's role may not perform the requested operation."""

    code = "forbidden"


class InvalidTransitionError(LifecycleError):
    """Raised when the (from, to) pair is not a defined edge."""

    code = "invalid_transition"


class InvalidStateError(LifecycleError):
    """Raised when an operation is attempted outside the state that permits it."""

    code = "invalid_state"


class TerminalStateError(LifecycleError):
    """Raised when mutating a resource already in a terminal status."""

    code = "terminal_state"


class ValidationError(LifecycleError):
    """Raised when required accompanying data is missing."""

    code = "validation_error"


class InvalidStatusError(LifecycleError):
    """Raised when the requested target status is not a known status value."""

    code = "invalid_status"


class TransitionConflictError(LifecycleError):
    """Raised when a concurrent writer keeps winning the compare-and-swap."""

    code = "transition_conflict"
