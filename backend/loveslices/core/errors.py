"""
Domain error taxonomy.

Services raise these; the API layer turns them into HTTP responses through a
single exception handler registered in main.py. ChannelDeliveryFailure is the
exception: it is raised and caught inside the notifier and never reaches a
request handler.
"""
from fastapi import status


class DomainError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BAD_REQUEST"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFound(DomainError):
    """Referenced conversation, question, loveslice or user does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class Conflict(DomainError):
    """Illegal state transition or duplicate submission."""
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class Unauthorized(DomainError):
    """Acting user is not a participant of the target entity."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class ChannelDeliveryFailure(Exception):
    """A realtime push could not be delivered to an open channel."""

    def __init__(self, user_id: str, event_type: str, cause: Exception | None = None):
        super().__init__(f"delivery of {event_type} to user {user_id} failed: {cause!r}")
        self.user_id = user_id
        self.event_type = event_type
        self.cause = cause
