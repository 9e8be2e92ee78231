# Overview: Flask API routes for Cave visitors; parses input and returns JSON responses.

# backend/cave/routes/cave.py
"""
Cave visitor API routes

Endpoints for the signed-in user:
- Browse active and upcoming events
- Check a ticket code
- Enter the Cave (open or resume a session), look it up, leave it
- Record purchases against a session

Domain failures raise CaveError subclasses and are rendered by the app-level
error handler. Only store failures are caught here.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, current_user_id
from ..models.events import EVENT_KIND_TICKETED
from ..services import event_service, ticket_service, session_service, order_service
from ..services.errors import (
    StoreError,
    ValidationError,
    EntryClosedError,
    ExpiredError,
    ForbiddenError,
    TicketNotFoundError,
    EventNotFoundError,
    SessionNotFoundError,
)

cave_bp = Blueprint("cave", __name__, url_prefix="/api/cave")


_REJECTIONS = {
    ticket_service.REASON_NOT_FOUND: TicketNotFoundError,
    ticket_service.REASON_FORBIDDEN: ForbiddenError,
    ticket_service.REASON_EXPIRED: ExpiredError,
    ticket_service.REASON_EVENT_UNAVAILABLE: EventNotFoundError,
}


def _store_failure(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def _own_session(session_id: int):
    """The caller's session regardless of state; admins may see any."""
    session = session_service.find_session(session_id)
    if not session:
        raise SessionNotFoundError(f"Session {session_id} not found")
    if session.user_id != current_user_id() and not g.current_user.is_admin:
        raise SessionNotFoundError(f"Session {session_id} not found")
    return session


# =============================================================================
# EVENTS
# =============================================================================

@cave_bp.get("/events/active")
@require_auth
def active_events_route():
    try:
        events = event_service.get_active_events()
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200
    except StoreError:
        return _store_failure("list active events")


@cave_bp.get("/events/upcoming")
@require_auth
def upcoming_events_route():
    try:
        events = event_service.get_upcoming_events()
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200
    except StoreError:
        return _store_failure("list upcoming events")


# =============================================================================
# TICKETS
# =============================================================================

@cave_bp.post("/tickets/validate")
@require_auth
def validate_ticket_route():
    """
    Check whether a ticket code admits the caller.

    Always 200: the body's `valid` flag and `reason` carry the outcome.

    Request body:
    {
        "code": "VIP-2024"
    }
    """
    data = request.get_json(silent=True) or {}
    code = (data.get("code") or "").strip()
    if not code:
        return jsonify({"error": "code is required"}), 400

    try:
        result = ticket_service.validate_ticket(code, current_user_id())
        return jsonify(result.to_dict()), 200
    except StoreError:
        return _store_failure("validate ticket")


# =============================================================================
# SESSIONS
# =============================================================================

@cave_bp.post("/sessions")
@require_auth
def enter_route():
    """
    Enter the Cave.

    Request body (one of):
    {
        "event_id": 1            // scheduled events, inside their window
    }
    {
        "ticket_code": "VIP-1"   // ticketed events
    }

    Returns the open session and its event. Calling again while a session
    is open returns that same session, with the event it belongs to.
    """
    data = request.get_json(silent=True) or {}
    user_id = current_user_id()
    ticket_code = (data.get("ticket_code") or "").strip()

    try:
        if ticket_code:
            result = ticket_service.validate_ticket(ticket_code, user_id)
            if not result.valid:
                raise _REJECTIONS[result.reason](result.message)
            event = result.event
        else:
            event_id = data.get("event_id")
            if not isinstance(event_id, int) or isinstance(event_id, bool):
                raise ValidationError("event_id or ticket_code is required")
            event = event_service.get_event(event_id)
            if event.kind == EVENT_KIND_TICKETED:
                raise ValidationError("This event requires a ticket_code")
            if not event_service.is_open_for_entry(event):
                raise EntryClosedError()

        session = session_service.create_session(user_id, event.id)
        # A resumed session may belong to a different event than the one asked for
        if session.event_id != event.id:
            event = event_service.get_event(session.event_id)
        return jsonify({"session": session.to_dict(), "event": event.to_dict()}), 200

    except StoreError:
        return _store_failure("open cave session")


@cave_bp.get("/sessions/active")
@require_auth
def active_session_route():
    try:
        session = session_service.get_active_user_session(current_user_id())
        return jsonify({"session": session.to_dict() if session else None}), 200
    except StoreError:
        return _store_failure("load active session")


@cave_bp.get("/sessions/mine")
@require_auth
def my_sessions_route():
    try:
        sessions = session_service.list_sessions(user_id=current_user_id())
        return jsonify({"sessions": [s.to_dict() for s in sessions], "count": len(sessions)}), 200
    except StoreError:
        return _store_failure("list sessions")


@cave_bp.get("/sessions/<int:session_id>")
@require_auth
def get_session_route(session_id: int):
    """Open, unexpired sessions only; anything else is 404."""
    try:
        session = session_service.get_session_by_id(session_id)
        if not session or (session.user_id != current_user_id() and not g.current_user.is_admin):
            raise SessionNotFoundError(f"Session {session_id} not found or no longer active")
        return jsonify({"session": session.to_dict()}), 200
    except StoreError:
        return _store_failure("load session")


@cave_bp.post("/sessions/<int:session_id>/end")
@require_auth
def end_session_route(session_id: int):
    """
    Leave the Cave.

    Request body (optional):
    {
        "total_spent": 1200   // defaults to the sum of the session's orders
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        _own_session(session_id)

        total_spent = data.get("total_spent")
        if total_spent is None:
            total_spent = order_service.sum_session_orders(session_id)
        elif isinstance(total_spent, bool) or not isinstance(total_spent, int) or total_spent < 0:
            raise ValidationError("total_spent must be a non-negative integer")

        session = session_service.end_session(session_id, total_spent)
        return jsonify({"session": session.to_dict()}), 200

    except StoreError:
        return _store_failure("end cave session")


# =============================================================================
# ORDERS
# =============================================================================

@cave_bp.post("/sessions/<int:session_id>/orders")
@require_auth
def create_order_route(session_id: int):
    """
    Record a purchase against a session.

    Request body:
    {
        "amount": 500,         // minor units, >= 0
        "paid_with": "points"  // points, cash, mixed
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        session = _own_session(session_id)
        order = order_service.create_order(
            session_id=session.id,
            event_id=session.event_id,
            user_id=session.user_id,
            amount=data.get("amount"),
            paid_with=data.get("paid_with"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except StoreError:
        return _store_failure("record cave order")


@cave_bp.get("/sessions/<int:session_id>/orders")
@require_auth
def list_session_orders_route(session_id: int):
    try:
        _own_session(session_id)
        orders = order_service.list_orders(session_id=session_id)
        return jsonify({
            "orders": [o.to_dict() for o in orders],
            "count": len(orders),
            "total": order_service.sum_session_orders(session_id),
        }), 200
    except StoreError:
        return _store_failure("list cave orders")
