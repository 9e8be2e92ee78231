from __future__ import annotations

from ..extensions import db
from cave.time_utils import to_utc_z

PAID_WITH_OPTIONS = ("points", "cash", "mixed")


class CaveOrder(db.Model):
    """
    Purchase made during a Cave session.

    APPEND-ONLY: rows are inserted and never updated or deleted.
    Inserting an order does not touch cave_sessions.total_spent.
    """
    __tablename__ = "cave_orders"
    __table_args__ = (
        db.Index("ix_cave_orders_session_created", "session_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cave_sessions.id"), nullable=False, index=True)
    event_id = db.Column(db.Integer, db.ForeignKey("cave_events.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)  # minor units
    paid_with = db.Column(db.String(16), nullable=False)  # points, cash, mixed

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    session = db.relationship("CaveSession", backref=db.backref("orders", lazy=True, passive_deletes="all"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "amount": self.amount,
            "paid_with": self.paid_with,
            "created_at": to_utc_z(self.created_at),
        }
