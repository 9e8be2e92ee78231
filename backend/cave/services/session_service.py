# Overview: Service-layer operations for Cave sessions; encapsulates business logic and database work.

"""
Session Manager

Opens, reads and closes time-boxed Cave sessions.

CONCURRENCY CONTRACT (create_session):
- The "already open?" lookup is an optimisation only.
- uq_cave_sessions_user_open (partial unique index on user_id where
  left_at IS NULL) is the only thing that guarantees one open session per
  user across processes.
- A racing insert that loses gets IntegrityError; we roll back, re-read the
  winning row and return it. The caller never sees the conflict.

EXPIRY POLICIES (kept deliberately different):
- create_session sweeps: stale open rows of the caller get left_at = now.
- get_session_by_id / get_active_user_session only hide stale rows; they
  never write.

NOT ENFORCED HERE: event.max_concurrent, event.purchase_cap, ticket usage
counts. The participation count is a read-then-insert and is racy under
concurrent callers for different users of the same event.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CaveEvent, CaveSession
from .errors import CapacityExceededError, EventNotFoundError, SessionNotFoundError
from cave.time_utils import utcnow, to_naive_utc


def _open_session_query(user_id: int, now: datetime):
    return db.session.query(CaveSession).filter(
        CaveSession.user_id == user_id,
        CaveSession.left_at.is_(None),
        CaveSession.expires_at > now,
    )


def _find_open_session(user_id: int, now: datetime) -> CaveSession | None:
    return _open_session_query(user_id, now).order_by(CaveSession.entered_at.desc()).first()


def sweep_expired_sessions(user_id: int, now: datetime) -> int:
    """
    Close the user's open-but-expired sessions by stamping left_at = now.

    Does not commit; create_session commits it together with the insert.
    Returns the number of rows closed.
    """
    result = db.session.execute(
        update(CaveSession)
        .where(
            CaveSession.user_id == user_id,
            CaveSession.left_at.is_(None),
            CaveSession.expires_at <= now,
        )
        .values(left_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def count_participations(user_id: int, event_id: int) -> int:
    """All sessions (open or closed) the user has ever had for the event."""
    return db.session.query(func.count(CaveSession.id)).filter(
        CaveSession.user_id == user_id,
        CaveSession.event_id == event_id,
    ).scalar() or 0


def create_session(user_id: int, event_id: int, now: datetime | None = None) -> CaveSession:
    """
    Open a Cave session for user_id in event_id, or return the one already open.

    Steps:
    1. Sweep the user's expired open sessions (corrective lazy expiry)
    2. Return an existing open session if there is one (any event)
    3. Refuse when the user already has max_participations_per_user sessions
    4. Insert with expires_at = now + user_time_limit minutes
    5. On a unique-index conflict, roll back, sweep again and return the
       session that won the race (re-raising if there is none)

    Raises:
        EventNotFoundError: If the event does not exist
        CapacityExceededError: If the participation cap is reached (nothing inserted)
    """
    now = now or utcnow()

    swept = sweep_expired_sessions(user_id, now)
    if swept:
        current_app.logger.info("Closed %s expired cave session(s) for user %s", swept, user_id)

    existing = _find_open_session(user_id, now)
    if existing:
        db.session.commit()
        return existing

    event = db.session.get(CaveEvent, event_id)
    if not event:
        db.session.commit()
        raise EventNotFoundError(f"Event {event_id} not found")

    participations = count_participations(user_id, event_id)
    if participations >= event.max_participations_per_user:
        db.session.commit()
        raise CapacityExceededError(
            f"You have already used your {event.max_participations_per_user} "
            f"allotted visit(s) for this event"
        )

    session = CaveSession(
        user_id=user_id,
        event_id=event_id,
        entered_at=now,
        expires_at=now + timedelta(minutes=event.user_time_limit),
        left_at=None,
        total_spent=0,
    )
    db.session.add(session)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # The rollback discarded the sweep too
        sweep_expired_sessions(user_id, now)
        winner = _find_open_session(user_id, now)
        db.session.commit()
        if not winner:
            raise
        current_app.logger.info(
            "Open-session conflict for user %s resolved to session %s", user_id, winner.id
        )
        return winner

    current_app.logger.info(
        "Opened cave session %s for user %s in event %s (expires %s)",
        session.id, user_id, event_id, session.expires_at,
    )
    return session


def end_session(session_id: int, total_spent: int, now: datetime | None = None) -> CaveSession:
    """
    Close a session and record what was spent.

    total_spent overwrites the stored value (last write wins); callers sum
    their own orders first. Closing an already-closed session is allowed and
    moves left_at forward.

    Raises:
        SessionNotFoundError: If the session does not exist
    """
    now = now or utcnow()

    session = db.session.get(CaveSession, session_id)
    if not session:
        raise SessionNotFoundError(f"Session {session_id} not found")

    session.left_at = now
    session.total_spent = total_spent
    db.session.commit()

    current_app.logger.info(
        "Closed cave session %s (total_spent=%s)", session.id, session.total_spent
    )
    return session


def find_session(session_id: int) -> CaveSession | None:
    """Raw lookup with no open/expired filtering."""
    return db.session.get(CaveSession, session_id)


def _is_live(session: CaveSession, now: datetime) -> bool:
    return session.left_at is None and to_naive_utc(session.expires_at) > now


def get_session_by_id(session_id: int, now: datetime | None = None) -> CaveSession | None:
    """
    Return the session only while it is open and unexpired.

    Read-only: an expired row is reported as missing but its left_at is
    left untouched.
    """
    now = now or utcnow()
    session = db.session.get(CaveSession, session_id)
    if not session or not _is_live(session, now):
        return None
    return session


def get_active_user_session(user_id: int, now: datetime | None = None) -> CaveSession | None:
    """The user's open, unexpired session, if any. Read-only."""
    now = now or utcnow()
    return _find_open_session(user_id, now)


def list_sessions(event_id: int | None = None, user_id: int | None = None) -> list[CaveSession]:
    query = db.session.query(CaveSession)
    if event_id is not None:
        query = query.filter_by(event_id=event_id)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    return query.order_by(CaveSession.entered_at.desc(), CaveSession.id.desc()).all()
