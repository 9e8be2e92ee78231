from __future__ import annotations

from ..extensions import db
from cave.time_utils import to_utc_z


class CaveTicket(db.Model):
    """
    Admission credential for a ticketed event.

    A personal ticket is bound to owner_user_id; a shared ticket has no owner.
    max_use and per_user_limit are recorded but validation does not count
    redemptions, so no "used" state is ever stored.
    """
    __tablename__ = "cave_tickets"
    __table_args__ = (
        db.CheckConstraint("is_personal OR owner_user_id IS NULL", name="ck_cave_tickets_owner"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("cave_events.id"), nullable=False, index=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)

    max_use = db.Column(db.Integer, nullable=False, default=1)
    per_user_limit = db.Column(db.Integer, nullable=False, default=1)

    is_personal = db.Column(db.Boolean, nullable=False, default=False)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    expiry = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    event = db.relationship("CaveEvent", backref=db.backref("tickets", lazy=True, passive_deletes="all"))
    owner = db.relationship("User", backref=db.backref("personal_tickets", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "code": self.code,
            "max_use": self.max_use,
            "per_user_limit": self.per_user_limit,
            "is_personal": self.is_personal,
            "owner_user_id": self.owner_user_id,
            "expiry": to_utc_z(self.expiry) if self.expiry else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
