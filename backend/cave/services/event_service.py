# Overview: Service-layer operations for Cave events; encapsulates business logic and database work.

"""
Event Registry

Owns event definitions: time window, capacity parameters and admission
mode. Depends on nothing else in the Cave.

DESIGN PRINCIPLES:
- Windows are half-open: start_time <= now < end_time
- Overlapping windows across events are allowed (no cross-event exclusion)
- Deletion of a referenced event is refused by the store's foreign keys
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CaveEvent
from ..models.events import EVENT_KIND_SCHEDULED
from ..validation import enforce_rules_event
from .errors import EventNotFoundError, EventInUseError, EventValidationError
from cave.time_utils import utcnow, to_naive_utc


EVENT_FIELDS = (
    "title",
    "description",
    "kind",
    "start_time",
    "end_time",
    "is_active",
    "max_concurrent",
    "user_time_limit",
    "purchase_cap",
    "max_participations_per_user",
    "allowed_pay",
)

EVENT_DEFAULTS = {
    "description": None,
    "kind": EVENT_KIND_SCHEDULED,
    "is_active": True,
    "max_concurrent": 1,
    "purchase_cap": 0,
    "max_participations_per_user": 1,
    "allowed_pay": "both",
}


def list_events() -> list[CaveEvent]:
    """All events, newest first."""
    return db.session.query(CaveEvent).order_by(
        CaveEvent.created_at.desc(), CaveEvent.id.desc()
    ).all()


def get_active_events(now: datetime | None = None) -> list[CaveEvent]:
    """Active events whose window contains now, earliest start first."""
    now = now or utcnow()
    return db.session.query(CaveEvent).filter(
        CaveEvent.is_active == True,  # noqa: E712
        CaveEvent.start_time <= now,
        CaveEvent.end_time > now,
    ).order_by(CaveEvent.start_time.asc(), CaveEvent.id.asc()).all()


def get_upcoming_events(now: datetime | None = None) -> list[CaveEvent]:
    """Active events that have not started yet, earliest start first."""
    now = now or utcnow()
    return db.session.query(CaveEvent).filter(
        CaveEvent.is_active == True,  # noqa: E712
        CaveEvent.start_time > now,
    ).order_by(CaveEvent.start_time.asc(), CaveEvent.id.asc()).all()


def find_event(event_id: int) -> CaveEvent | None:
    return db.session.get(CaveEvent, event_id)


def get_event(event_id: int) -> CaveEvent:
    """
    Fetch an event by id.

    Raises:
        EventNotFoundError: If no such event exists
    """
    event = find_event(event_id)
    if not event:
        raise EventNotFoundError(f"Event {event_id} not found")
    return event


def is_open_for_entry(event: CaveEvent, now: datetime | None = None) -> bool:
    """True iff the event is active and now falls inside its window."""
    now = now or utcnow()
    return bool(
        event.is_active
        and to_naive_utc(event.start_time) <= now < to_naive_utc(event.end_time)
    )


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - set(EVENT_FIELDS)
    if unknown:
        raise EventValidationError(f"Unknown event fields: {', '.join(sorted(unknown))}")


def create_event(**fields) -> CaveEvent:
    """
    Create a Cave event.

    Required: title, start_time, end_time, user_time_limit.
    Everything else falls back to EVENT_DEFAULTS.

    Raises:
        EventValidationError: If any event rule is violated
    """
    _check_fields(fields)
    if fields.get("user_time_limit") is None:
        raise EventValidationError("user_time_limit is required")
    if not fields.get("title"):
        raise EventValidationError("title is required")

    values = {**EVENT_DEFAULTS, **fields}
    values["start_time"] = to_naive_utc(values.get("start_time"))
    values["end_time"] = to_naive_utc(values.get("end_time"))
    enforce_rules_event(values)

    event = CaveEvent(**values)
    db.session.add(event)
    db.session.commit()

    current_app.logger.info(
        "Created cave event %s (%s, %s -> %s)",
        event.id, event.kind, event.start_time, event.end_time,
    )
    return event


def update_event(event_id: int, **changes) -> CaveEvent:
    """
    Apply a partial update. Rules are re-checked against the merged state,
    so moving only end_time still has to stay after the stored start_time.
    """
    _check_fields(changes)
    event = get_event(event_id)

    for key in ("start_time", "end_time"):
        if key in changes:
            changes[key] = to_naive_utc(changes[key])

    merged = {key: getattr(event, key) for key in EVENT_FIELDS}
    merged.update(changes)
    enforce_rules_event(merged)

    for key, value in changes.items():
        setattr(event, key, value)
    db.session.commit()

    current_app.logger.info("Updated cave event %s: %s", event.id, ", ".join(sorted(changes)))
    return event


def deactivate_event(event_id: int) -> CaveEvent:
    """Soft-disable an event; existing sessions are untouched."""
    return update_event(event_id, is_active=False)


def delete_event(event_id: int) -> None:
    """
    Hard-delete an event.

    Raises:
        EventNotFoundError: If the event does not exist
        EventInUseError: If tickets, sessions or orders still reference it
    """
    event = get_event(event_id)
    db.session.delete(event)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise EventInUseError(f"Event {event_id} is still referenced and cannot be deleted")

    current_app.logger.info("Deleted cave event %s", event_id)
