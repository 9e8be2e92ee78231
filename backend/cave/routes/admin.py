# Overview: Flask API routes for Cave operators; parses input and returns JSON responses.

# backend/cave/routes/admin.py
"""
Admin routes for Cave operators.

Provides endpoints for:
- Event management (list, create, update, deactivate, delete)
- Ticket management (list, issue, update, delete)
- Session and order listings
- Dashboard stats

All endpoints require an authenticated admin. Request bodies go through
validate_payload (type coercion + field allowlist) before the service
layer applies its own rules.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_admin
from ..models import CaveEvent, CaveTicket
from ..services import (
    event_service,
    ticket_service,
    session_service,
    order_service,
    stats_service,
)
from ..services.errors import StoreError
from ..validation import ModelValidationPolicy, validate_payload

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin/cave")


EVENT_POLICY = ModelValidationPolicy(
    writable_fields=set(event_service.EVENT_FIELDS),
    required_on_create={"title", "start_time", "end_time", "user_time_limit"},
)

TICKET_POLICY = ModelValidationPolicy(
    writable_fields=set(ticket_service.TICKET_FIELDS),
    required_on_create={"event_id", "code"},
)


def _store_failure(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def _ticket_dict(ticket: CaveTicket) -> dict:
    data = ticket.to_dict()
    data["state"] = ticket_service.ticket_state(ticket)
    return data


# =============================================================================
# EVENTS
# =============================================================================

@admin_bp.get("/events")
@require_auth
@require_admin
def list_events_route():
    try:
        events = event_service.list_events()
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200
    except StoreError:
        return _store_failure("list events")


@admin_bp.post("/events")
@require_auth
@require_admin
def create_event_route():
    """
    Create an event.

    Request body:
    {
        "title": "Friday Night",          // required
        "start_time": "2024-06-01T18:00Z",// required
        "end_time": "2024-06-01T23:00Z",  // required, after start_time
        "user_time_limit": 30,            // required, minutes
        "kind": "scheduled",              // scheduled | ticketed
        "max_participations_per_user": 1,
        "max_concurrent": 10,
        "purchase_cap": 0,
        "allowed_pay": "both",
        "description": "...",
        "is_active": true
    }
    """
    patch = validate_payload(
        model=CaveEvent, payload=request.get_json(silent=True), policy=EVENT_POLICY, partial=False
    )
    try:
        event = event_service.create_event(**patch)
        return jsonify({"event": event.to_dict()}), 201
    except StoreError:
        return _store_failure("create event")


@admin_bp.get("/events/<int:event_id>")
@require_auth
@require_admin
def get_event_route(event_id: int):
    try:
        event = event_service.get_event(event_id)
        return jsonify({"event": event.to_dict()}), 200
    except StoreError:
        return _store_failure("load event")


@admin_bp.patch("/events/<int:event_id>")
@require_auth
@require_admin
def update_event_route(event_id: int):
    patch = validate_payload(
        model=CaveEvent, payload=request.get_json(silent=True), policy=EVENT_POLICY, partial=True
    )
    try:
        event = event_service.update_event(event_id, **patch)
        return jsonify({"event": event.to_dict()}), 200
    except StoreError:
        return _store_failure("update event")


@admin_bp.post("/events/<int:event_id>/deactivate")
@require_auth
@require_admin
def deactivate_event_route(event_id: int):
    try:
        event = event_service.deactivate_event(event_id)
        return jsonify({"event": event.to_dict()}), 200
    except StoreError:
        return _store_failure("deactivate event")


@admin_bp.delete("/events/<int:event_id>")
@require_auth
@require_admin
def delete_event_route(event_id: int):
    """Hard delete; 409 while tickets, sessions or orders reference the event."""
    try:
        event_service.delete_event(event_id)
        return jsonify({"message": "Event deleted"}), 200
    except StoreError:
        return _store_failure("delete event")


# =============================================================================
# TICKETS
# =============================================================================

@admin_bp.get("/tickets")
@require_auth
@require_admin
def list_tickets_route():
    """
    List tickets.

    Query params:
    - event_id: int - filter by event
    """
    event_id = request.args.get("event_id", type=int)
    try:
        tickets = ticket_service.list_tickets(event_id=event_id)
        return jsonify({"tickets": [_ticket_dict(t) for t in tickets], "count": len(tickets)}), 200
    except StoreError:
        return _store_failure("list tickets")


@admin_bp.post("/tickets")
@require_auth
@require_admin
def create_ticket_route():
    """
    Issue a ticket for a ticketed event.

    Request body:
    {
        "event_id": 1,            // required, active ticketed event
        "code": "VIP-2024",       // required, unique
        "is_personal": true,
        "owner_user_id": 7,       // required when is_personal
        "expiry": "2024-06-01T23:00Z",
        "max_use": 1,
        "per_user_limit": 1
    }
    """
    patch = validate_payload(
        model=CaveTicket, payload=request.get_json(silent=True), policy=TICKET_POLICY, partial=False
    )
    try:
        ticket = ticket_service.create_ticket(**patch)
        return jsonify({"ticket": _ticket_dict(ticket)}), 201
    except StoreError:
        return _store_failure("create ticket")


@admin_bp.get("/tickets/<int:ticket_id>")
@require_auth
@require_admin
def get_ticket_route(ticket_id: int):
    try:
        ticket = ticket_service.get_ticket(ticket_id)
        return jsonify({"ticket": _ticket_dict(ticket)}), 200
    except StoreError:
        return _store_failure("load ticket")


@admin_bp.patch("/tickets/<int:ticket_id>")
@require_auth
@require_admin
def update_ticket_route(ticket_id: int):
    patch = validate_payload(
        model=CaveTicket, payload=request.get_json(silent=True), policy=TICKET_POLICY, partial=True
    )
    try:
        ticket = ticket_service.update_ticket(ticket_id, **patch)
        return jsonify({"ticket": _ticket_dict(ticket)}), 200
    except StoreError:
        return _store_failure("update ticket")


@admin_bp.delete("/tickets/<int:ticket_id>")
@require_auth
@require_admin
def delete_ticket_route(ticket_id: int):
    try:
        ticket_service.delete_ticket(ticket_id)
        return jsonify({"message": "Ticket deleted"}), 200
    except StoreError:
        return _store_failure("delete ticket")


# =============================================================================
# SESSIONS, ORDERS, STATS
# =============================================================================

@admin_bp.get("/sessions")
@require_auth
@require_admin
def list_sessions_route():
    """
    List sessions, newest first.

    Query params:
    - event_id: int
    - user_id: int
    """
    event_id = request.args.get("event_id", type=int)
    user_id = request.args.get("user_id", type=int)
    try:
        sessions = session_service.list_sessions(event_id=event_id, user_id=user_id)
        return jsonify({"sessions": [s.to_dict() for s in sessions], "count": len(sessions)}), 200
    except StoreError:
        return _store_failure("list sessions")


@admin_bp.get("/orders")
@require_auth
@require_admin
def list_orders_route():
    event_id = request.args.get("event_id", type=int)
    session_id = request.args.get("session_id", type=int)
    user_id = request.args.get("user_id", type=int)
    try:
        orders = order_service.list_orders(event_id=event_id, session_id=session_id, user_id=user_id)
        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200
    except StoreError:
        return _store_failure("list orders")


@admin_bp.get("/stats")
@require_auth
@require_admin
def stats_route():
    try:
        return jsonify(stats_service.get_cave_stats().to_dict()), 200
    except StoreError:
        return _store_failure("compute cave stats")
