# Overview: Service-layer operations for Cave tickets; encapsulates business logic and database work.

"""
Ticket Validator

Decides whether a presented code grants entry to a ticketed event.

ERROR CHANNEL: validate_ticket never raises for a domain outcome. It returns
a TicketValidation whose `valid` flag callers must check; `reason` carries
NOT_FOUND / FORBIDDEN / EXPIRED / EVENT_UNAVAILABLE so expiry and ownership
failures stay distinguishable. Store failures still propagate.

Ticket state (active / inactive / expired) is derived at read time from
is_active and expiry. Validation writes nothing: max_use and per_user_limit
are stored but not counted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import CaveEvent, CaveTicket
from ..models.events import EVENT_KIND_TICKETED
from ..validation import enforce_rules_ticket
from .errors import TicketNotFoundError, TicketValidationError
from cave.time_utils import utcnow, to_naive_utc


REASON_NOT_FOUND = "NOT_FOUND"
REASON_FORBIDDEN = "FORBIDDEN"
REASON_EXPIRED = "EXPIRED"
REASON_EVENT_UNAVAILABLE = "EVENT_UNAVAILABLE"

TICKET_STATE_ACTIVE = "active"
TICKET_STATE_INACTIVE = "inactive"
TICKET_STATE_EXPIRED = "expired"

TICKET_FIELDS = (
    "event_id",
    "code",
    "max_use",
    "per_user_limit",
    "is_personal",
    "owner_user_id",
    "expiry",
    "is_active",
)


@dataclass
class TicketValidation:
    """Outcome of validate_ticket. `event` is set only when valid."""
    valid: bool
    event: CaveEvent | None = None
    message: str | None = None
    reason: str | None = None
    ticket: CaveTicket | None = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "event": self.event.to_dict() if self.event else None,
            "message": self.message,
            "reason": self.reason,
        }


def _invalid(reason: str, message: str, ticket: CaveTicket | None = None) -> TicketValidation:
    return TicketValidation(valid=False, message=message, reason=reason, ticket=ticket)


def validate_ticket(code: str, user_id: int, now: datetime | None = None) -> TicketValidation:
    """
    Check whether `code` admits `user_id`.

    Order matters: ownership is checked before expiry, so a non-owner is
    told the ticket is personal even when it has also expired.
    """
    now = now or utcnow()

    ticket = db.session.query(CaveTicket).filter_by(code=code, is_active=True).one_or_none()
    if not ticket:
        return _invalid(REASON_NOT_FOUND, "ticket not found")

    if ticket.is_personal and ticket.owner_user_id != user_id:
        return _invalid(REASON_FORBIDDEN, "this ticket is personal and cannot be used by you", ticket)

    if ticket.expiry and to_naive_utc(ticket.expiry) < now:
        return _invalid(REASON_EXPIRED, "your ticket has expired", ticket)

    event = db.session.get(CaveEvent, ticket.event_id)
    if not event:
        current_app.logger.warning("Ticket %s references missing event %s", ticket.id, ticket.event_id)
        return _invalid(REASON_EVENT_UNAVAILABLE, "could not load the ticket's event", ticket)

    return TicketValidation(valid=True, event=event, ticket=ticket)


def ticket_state(ticket: CaveTicket, now: datetime | None = None) -> str:
    now = now or utcnow()
    if not ticket.is_active:
        return TICKET_STATE_INACTIVE
    if ticket.expiry and to_naive_utc(ticket.expiry) < now:
        return TICKET_STATE_EXPIRED
    return TICKET_STATE_ACTIVE


def list_tickets(event_id: int | None = None) -> list[CaveTicket]:
    query = db.session.query(CaveTicket)
    if event_id is not None:
        query = query.filter_by(event_id=event_id)
    return query.order_by(CaveTicket.created_at.desc(), CaveTicket.id.desc()).all()


def get_ticket(ticket_id: int) -> CaveTicket:
    ticket = db.session.get(CaveTicket, ticket_id)
    if not ticket:
        raise TicketNotFoundError(f"Ticket {ticket_id} not found")
    return ticket


def _normalize_owner(values: dict) -> dict:
    # Shared tickets never carry an owner
    if not values.get("is_personal"):
        values["owner_user_id"] = None
    return values


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - set(TICKET_FIELDS)
    if unknown:
        raise TicketValidationError(f"Unknown ticket fields: {', '.join(sorted(unknown))}")


def create_ticket(**fields) -> CaveTicket:
    """
    Issue a ticket for an event.

    Raises:
        TicketValidationError: If the event is missing, not ticketed or
            inactive, or a ticket rule is violated
    """
    _check_fields(fields)
    values = {
        "max_use": 1,
        "per_user_limit": 1,
        "is_personal": False,
        "owner_user_id": None,
        "expiry": None,
        "is_active": True,
        **fields,
    }
    values["expiry"] = to_naive_utc(values.get("expiry"))
    _normalize_owner(values)

    event = db.session.get(CaveEvent, values.get("event_id")) if values.get("event_id") else None
    if not event or event.kind != EVENT_KIND_TICKETED or not event.is_active:
        raise TicketValidationError("Ticket event must exist, be active and be of kind 'ticketed'")

    enforce_rules_ticket(values)

    if db.session.query(CaveTicket.id).filter_by(code=values["code"]).first():
        raise TicketValidationError(f"Ticket code '{values['code']}' already exists")

    ticket = CaveTicket(**values)
    db.session.add(ticket)
    db.session.commit()

    current_app.logger.info("Issued ticket %s for event %s", ticket.id, ticket.event_id)
    return ticket


def update_ticket(ticket_id: int, **changes) -> CaveTicket:
    _check_fields(changes)
    ticket = get_ticket(ticket_id)

    if "expiry" in changes:
        changes["expiry"] = to_naive_utc(changes["expiry"])

    merged = {key: getattr(ticket, key) for key in TICKET_FIELDS}
    merged.update(changes)
    _normalize_owner(merged)
    enforce_rules_ticket(merged)

    if merged["code"] != ticket.code:
        clash = db.session.query(CaveTicket.id).filter(
            CaveTicket.code == merged["code"], CaveTicket.id != ticket.id
        ).first()
        if clash:
            raise TicketValidationError(f"Ticket code '{merged['code']}' already exists")

    for key in TICKET_FIELDS:
        setattr(ticket, key, merged[key])
    db.session.commit()

    current_app.logger.info("Updated ticket %s", ticket.id)
    return ticket


def delete_ticket(ticket_id: int) -> None:
    ticket = get_ticket(ticket_id)
    db.session.delete(ticket)
    db.session.commit()
    current_app.logger.info("Deleted ticket %s", ticket_id)
