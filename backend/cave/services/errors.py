# Overview: Error taxonomy shared by the Cave services and mapped to HTTP by the routes.

"""
Cave error taxonomy.

Session, order, event and ticket operations raise these. Ticket validation
does not: it returns a TicketValidation result whose `reason` carries one of
the codes below, so callers must check `valid`.

Store failures are not wrapped. Anything SQLAlchemy raises reaches the
caller as-is; StoreError is the name the routes catch it under.
"""

from sqlalchemy.exc import SQLAlchemyError

StoreError = SQLAlchemyError


class CaveError(Exception):
    """Base class for Cave domain errors."""

    code = "CAVE_ERROR"
    http_status = 400
    default_message = "Cave operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotFoundError(CaveError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Not found"


class EventNotFoundError(NotFoundError):
    code = "EVENT_NOT_FOUND"
    default_message = "Event not found"


class TicketNotFoundError(NotFoundError):
    code = "TICKET_NOT_FOUND"
    default_message = "Ticket not found"


class SessionNotFoundError(NotFoundError):
    code = "SESSION_NOT_FOUND"
    default_message = "Session not found"


class ForbiddenError(CaveError):
    code = "FORBIDDEN"
    http_status = 403
    default_message = "This ticket is personal and cannot be used by you"


class ExpiredError(CaveError):
    code = "EXPIRED"
    http_status = 410
    default_message = "Your ticket has expired"


class CapacityExceededError(CaveError):
    code = "CAPACITY_EXCEEDED"
    http_status = 409
    default_message = "You have already used your allotted visits for this event"


class EntryClosedError(CaveError):
    """Scheduled event is inactive or outside its time window."""

    code = "ENTRY_CLOSED"
    http_status = 409
    default_message = "This event is not open for entry right now"


class EventInUseError(CaveError):
    code = "EVENT_IN_USE"
    http_status = 409
    default_message = "Event is referenced by tickets, sessions or orders"


class ValidationError(CaveError):
    code = "VALIDATION_ERROR"
    http_status = 400
    default_message = "Invalid input"


class EventValidationError(ValidationError):
    pass


class TicketValidationError(ValidationError):
    pass


class OrderValidationError(ValidationError):
    pass


class AuthorizationError(CaveError):
    code = "UNAUTHORIZED"
    http_status = 401
    default_message = "Authentication required"
