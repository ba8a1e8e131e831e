"""Typed errors raised by the session, review and material services.

Every error carries a stable machine code, an HTTP status and a message that is
safe to show to the caller. Internal details (driver errors, collaborator
responses) are logged where they happen and never placed in ``message``.
"""

from fastapi import status


class SessionServiceError(Exception):
    code = "SERVICE_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "The request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(SessionServiceError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class InvalidTransition(SessionServiceError):
    code = "INVALID_TRANSITION"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This action is not allowed in the session's current state"


class GateNotOpen(SessionServiceError):
    code = "GATE_NOT_OPEN"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The session cannot be started before its scheduled time"


class Unauthorized(SessionServiceError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to act on this session"


class ValidationError(SessionServiceError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Invalid input"


class SlotUnavailable(ValidationError):
    code = "SLOT_UNAVAILABLE"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This time slot is already booked"


class DependencyFailure(SessionServiceError):
    code = "DEPENDENCY_FAILURE"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "A required service is temporarily unavailable"
