# Overview: Service-layer operations for Cave orders; encapsulates business logic and database work.

"""
Order Ledger

Append-only record of purchases made during Cave sessions.

INVARIANTS:
- Orders are inserted, never updated or deleted.
- create_order does not look at the session: open, closed or expired
  sessions all accept orders, and purchase_cap is not checked.
- create_order does not touch cave_sessions.total_spent. Closing a visit is
  a two-step workflow: sum the ledger (sum_session_orders), then pass the
  total to session_service.end_session.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import CaveOrder
from ..validation import enforce_rules_order


def create_order(
    *,
    session_id: int,
    event_id: int,
    user_id: int,
    amount: int,
    paid_with: str,
) -> CaveOrder:
    """
    Append an order tagged with its session, event and user.

    Only the record's own shape is validated (amount >= 0, paid_with enum).

    Raises:
        OrderValidationError: If amount or paid_with is invalid
    """
    enforce_rules_order({"amount": amount, "paid_with": paid_with})

    order = CaveOrder(
        session_id=session_id,
        event_id=event_id,
        user_id=user_id,
        amount=amount,
        paid_with=paid_with,
    )
    db.session.add(order)
    db.session.commit()

    current_app.logger.info(
        "Recorded cave order %s: session=%s amount=%s paid_with=%s",
        order.id, session_id, amount, paid_with,
    )
    return order


def list_orders(
    event_id: int | None = None,
    session_id: int | None = None,
    user_id: int | None = None,
) -> list[CaveOrder]:
    query = db.session.query(CaveOrder)
    if event_id is not None:
        query = query.filter_by(event_id=event_id)
    if session_id is not None:
        query = query.filter_by(session_id=session_id)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    return query.order_by(CaveOrder.created_at.desc(), CaveOrder.id.desc()).all()


def sum_session_orders(session_id: int) -> int:
    """Ledger total for a session; what callers pass to end_session."""
    total = db.session.query(func.coalesce(func.sum(CaveOrder.amount), 0)).filter(
        CaveOrder.session_id == session_id
    ).scalar()
    return int(total or 0)
