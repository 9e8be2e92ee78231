# Overview: Service-layer operations for bearer tokens; the identity collaborator behind require_auth.

"""
Bearer Token Service

WHY: The Cave services need "the current caller's user id". Tokens issued
at login resolve to a User on every request.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (AUTH_TOKEN_ABSOLUTE_HOURS) and idle timeout
  (AUTH_TOKEN_IDLE_HOURS)
- Revocable on logout
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta
from flask import current_app
from ..extensions import db
from ..models import AuthToken, User
from cave.time_utils import utcnow, to_naive_utc


@dataclass
class AuthContext:
    """Identity resolved from a bearer token."""
    user: User
    token: AuthToken


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("AUTH_TOKEN_ABSOLUTE_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("AUTH_TOKEN_IDLE_HOURS", 2))


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy); never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 hex digest; tokens are high-entropy so no salt/bcrypt."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def issue_token(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[AuthToken, str]:
    """
    Create a bearer token for user.

    Returns (token_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.

    Raises ValueError if the user is missing or inactive.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise ValueError("User not found or inactive")

    plaintext_token = generate_token()
    now = utcnow()

    record = AuthToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(record)
    db.session.commit()

    return record, plaintext_token


def validate_token(token: str) -> AuthContext | None:
    """
    Resolve a bearer token to its user.

    Returns None if the token is unknown, revoked, past its absolute
    timeout, idle for too long, or belongs to a deactivated user.
    Idle and deactivated-user cases also revoke the token.
    """
    now = utcnow()

    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not record:
        return None

    if to_naive_utc(record.expires_at) < now:
        return None

    if now - to_naive_utc(record.last_used_at) > _idle_timeout():
        _revoke(record, "Idle timeout")
        return None

    user = record.user
    if not user or not user.is_active:
        _revoke(record, "User account deactivated")
        return None

    record.last_used_at = now
    db.session.commit()

    return AuthContext(user=user, token=record)


def _revoke(record: AuthToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason
    db.session.commit()


def revoke_token(token: str, reason: str = "User logout") -> bool:
    """Revoke a token. Returns False if it was unknown or already revoked."""
    record = db.session.query(AuthToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not record:
        return False

    _revoke(record, reason)
    return True
