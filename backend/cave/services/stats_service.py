# Overview: Read-only operator rollup over Cave events, sessions and orders.

"""
Stats Aggregator

Loads every event, session and order and reduces them in Python.
No pagination: intended for small operator dashboards only.

active_sessions counts rows with left_at NULL, including ones whose
expires_at has passed but were never swept.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from ..extensions import db
from ..models import CaveEvent, CaveSession, CaveOrder


@dataclass
class CaveStats:
    total_events: int = 0
    active_events: int = 0
    total_sessions: int = 0
    active_sessions: int = 0
    total_orders: int = 0
    total_revenue: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def get_cave_stats() -> CaveStats:
    events = db.session.query(CaveEvent).all()
    sessions = db.session.query(CaveSession).all()
    orders = db.session.query(CaveOrder).all()

    return CaveStats(
        total_events=len(events),
        active_events=sum(1 for e in events if e.is_active),
        total_sessions=len(sessions),
        active_sessions=sum(1 for s in sessions if s.left_at is None),
        total_orders=len(orders),
        total_revenue=sum(o.amount for o in orders),
    )
