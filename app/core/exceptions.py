"""
Structured error classes for live-session access.

Every failure the access core can produce has its own class so callers can
tell "the session does not exist" apart from "you have not paid for it".
The HTTP layer renders them with to_dict(); services never raise
HTTPException directly.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import status


class LiveAccessError(Exception):
    """Base exception for the live-session access core."""

    code = "live_access_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        for key, value in self.context.items():
            body[key] = str(value) if isinstance(value, UUID) else value
        return body


class NotFound(LiveAccessError):
    """Session, schedule, recording, attendance or purchase missing (or soft-deleted)."""

    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Optional[Any] = None):
        self.entity = entity
        super().__init__(f"{entity} not found.", entity=entity, entity_id=entity_id)


class NotEntitled(LiveAccessError):
    """The resolver said no. Recoverable by purchasing or enrolling."""

    code = "not_entitled"
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, session_id: Any, reason: str = "no_entitlement", checkout_available: bool = False):
        self.reason = reason
        super().__init__(
            "You do not have access to this session.",
            session_id=session_id,
            reason=reason,
            checkout_available=checkout_available,
        )


class SessionFull(LiveAccessError):
    """Capacity rejection. Not retriable until someone frees a seat."""

    code = "session_full"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "This session has reached its participant limit.", **context: Any):
        super().__init__(message, **context)


class AlreadyEntitled(LiveAccessError):
    """
    Duplicate purchase attempt.

    Callers treat this as a success redirect: existing_id points at the
    purchase / enrollment the learner already holds.
    """

    code = "already_entitled"
    http_status = status.HTTP_200_OK

    def __init__(self, existing_id: Any, existing_status: str):
        self.existing_id = existing_id
        self.existing_status = existing_status
        super().__init__(
            "You already hold this purchase.",
            existing_id=existing_id,
            existing_status=existing_status,
        )


class InvalidState(LiveAccessError):
    """Operation not allowed in the entity's current state."""

    code = "invalid_state"
    http_status = status.HTTP_409_CONFLICT


class TransientStorageFailure(LiveAccessError):
    """Durable storage failed after bounded retries. Safe to retry the whole operation."""

    code = "transient_storage_failure"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, operation: str, attempts: int):
        super().__init__(
            f"Storage unavailable while attempting to {operation}. Please retry.",
            operation=operation,
            attempts=attempts,
        )
