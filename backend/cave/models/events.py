from __future__ import annotations

from ..extensions import db
from cave.time_utils import to_utc_z

EVENT_KIND_SCHEDULED = "scheduled"
EVENT_KIND_TICKETED = "ticketed"
EVENT_KINDS = (EVENT_KIND_SCHEDULED, EVENT_KIND_TICKETED)

ALLOWED_PAY_OPTIONS = ("points", "cash", "both")


class CaveEvent(db.Model):
    """
    A window of time during which users may open Cave sessions.

    KINDS:
    - scheduled: anyone may enter while start_time <= now < end_time
    - ticketed: entry requires a valid ticket code for this event

    CAPACITY FIELDS:
    - user_time_limit: minutes each session stays open
    - max_participations_per_user: sessions a user may ever open for this event
    - max_concurrent: declared ceiling on simultaneous open sessions (not enforced)
    - purchase_cap: declared spend ceiling per session (not enforced)

    Overlapping windows across events are allowed.
    """
    __tablename__ = "cave_events"
    __table_args__ = (
        db.CheckConstraint("end_time > start_time", name="ck_cave_events_window"),
        db.Index("ix_cave_events_active_start", "is_active", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    kind = db.Column(db.String(16), nullable=False, default=EVENT_KIND_SCHEDULED)  # scheduled, ticketed

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    max_concurrent = db.Column(db.Integer, nullable=False, default=1)
    user_time_limit = db.Column(db.Integer, nullable=False)  # minutes
    purchase_cap = db.Column(db.Integer, nullable=False, default=0)
    max_participations_per_user = db.Column(db.Integer, nullable=False, default=1)
    allowed_pay = db.Column(db.String(16), nullable=False, default="both")  # points, cash, both

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "kind": self.kind,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "is_active": self.is_active,
            "max_concurrent": self.max_concurrent,
            "user_time_limit": self.user_time_limit,
            "purchase_cap": self.purchase_cap,
            "max_participations_per_user": self.max_participations_per_user,
            "allowed_pay": self.allowed_pay,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
