from __future__ import annotations

from ..extensions import db
from cave.time_utils import to_utc_z


class CaveSession(db.Model):
    """
    A user's time-boxed presence in one event.

    LIFECYCLE:
    - OPEN: left_at is NULL and expires_at > now
    - EXPIRED: left_at is NULL but expires_at <= now (closed lazily on the
      user's next create_session)
    - CLOSED: left_at is set by end_session or by the lazy sweep

    At most one row per user may have left_at NULL. The partial unique index
    below is the authority for that; application checks only shortcut it.
    """
    __tablename__ = "cave_sessions"
    __table_args__ = (
        db.Index(
            "uq_cave_sessions_user_open",
            "user_id",
            unique=True,
            sqlite_where=db.text("left_at IS NULL"),
            postgresql_where=db.text("left_at IS NULL"),
        ),
        db.Index("ix_cave_sessions_user_event", "user_id", "event_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    event_id = db.Column(db.Integer, db.ForeignKey("cave_events.id"), nullable=False, index=True)

    entered_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    left_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Minor units (cents or points); written by end_session, never by orders
    total_spent = db.Column(db.Integer, nullable=False, default=0)

    event = db.relationship("CaveEvent", backref=db.backref("sessions", lazy=True, passive_deletes="all"))
    user = db.relationship("User", backref=db.backref("cave_sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_id": self.event_id,
            "entered_at": to_utc_z(self.entered_at),
            "expires_at": to_utc_z(self.expires_at),
            "left_at": to_utc_z(self.left_at) if self.left_at else None,
            "total_spent": self.total_spent,
        }
