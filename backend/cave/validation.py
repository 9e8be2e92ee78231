from __future__ import annotations
from datetime import datetime
from cave.time_utils import parse_iso_datetime, to_naive_utc

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from cave.models.events import EVENT_KINDS, ALLOWED_PAY_OPTIONS
from cave.models.orders import PAID_WITH_OPTIONS
from cave.services.errors import (
    ValidationError,
    EventValidationError,
    TicketValidationError,
    OrderValidationError,
)


MIN_TITLE_LENGTH = 3
MIN_TICKET_CODE_LENGTH = 3


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return to_naive_utc(value)
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _require_min(fields: dict, key: str, minimum: int, error_cls) -> None:
    value = fields.get(key)
    if value is None:
        return
    if value < minimum:
        raise error_cls(f"{key} must be >= {minimum}")


def enforce_rules_event(fields: dict) -> None:
    """
    Event rules not captured by column metadata. `fields` is the full
    post-merge state of the event, not just the patch.
    """
    title = fields.get("title")
    if title is not None and len(title.strip()) < MIN_TITLE_LENGTH:
        raise EventValidationError(f"title must be at least {MIN_TITLE_LENGTH} characters")

    kind = fields.get("kind")
    if kind is not None and kind not in EVENT_KINDS:
        raise EventValidationError(f"kind must be one of: {', '.join(EVENT_KINDS)}")

    allowed_pay = fields.get("allowed_pay")
    if allowed_pay is not None and allowed_pay not in ALLOWED_PAY_OPTIONS:
        raise EventValidationError(f"allowed_pay must be one of: {', '.join(ALLOWED_PAY_OPTIONS)}")

    start_time = to_naive_utc(fields.get("start_time"))
    end_time = to_naive_utc(fields.get("end_time"))
    if start_time is None or end_time is None:
        raise EventValidationError("start_time and end_time are required")
    if end_time <= start_time:
        raise EventValidationError("end_time must be after start_time")

    _require_min(fields, "max_concurrent", 1, EventValidationError)
    _require_min(fields, "user_time_limit", 1, EventValidationError)
    _require_min(fields, "purchase_cap", 0, EventValidationError)
    _require_min(fields, "max_participations_per_user", 1, EventValidationError)


def enforce_rules_ticket(fields: dict) -> None:
    """Ticket rules; `fields` is the full post-merge state."""
    code = fields.get("code")
    if code is None or len(code.strip()) < MIN_TICKET_CODE_LENGTH:
        raise TicketValidationError(f"code must be at least {MIN_TICKET_CODE_LENGTH} characters")

    _require_min(fields, "max_use", 1, TicketValidationError)
    _require_min(fields, "per_user_limit", 1, TicketValidationError)

    if fields.get("is_personal") and fields.get("owner_user_id") is None:
        raise TicketValidationError("owner_user_id is required for personal tickets")


def enforce_rules_order(fields: dict) -> None:
    amount = fields.get("amount")
    if amount is None or isinstance(amount, bool) or not isinstance(amount, int):
        raise OrderValidationError("amount must be an integer")
    if amount < 0:
        raise OrderValidationError("amount must be >= 0")

    paid_with = fields.get("paid_with")
    if paid_with not in PAID_WITH_OPTIONS:
        raise OrderValidationError(f"paid_with must be one of: {', '.join(PAID_WITH_OPTIONS)}")
