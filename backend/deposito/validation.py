from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .money import MAX_PRICE_CENTS
from .time_utils import parse_iso_datetime


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a client may send, and which a create must include."""
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer parsing: rejects floats, bools, decimals, and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
        raise ValidationError(f"{col.key} must be a date")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def _check_length(col, key: str, value) -> None:
    if not isinstance(value, str):
        return
    if value == "" and not col.nullable and isinstance(col.type, (String, Text)):
        raise ValidationError(f"{key} cannot be blank", details={"field": key})
    limit = getattr(col.type, "length", None)
    if limit and len(value) > limit:
        raise ValidationError(f"{key} exceeds max length {limit}", details={"field": key, "max_length": limit})


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Clean a create (partial=False) or patch (partial=True) body for `model`.

    Every key must be both a mapped column and in policy.writable_fields;
    values are coerced to the column type and checked against nullability
    and String length. stock_quantity is never writable, so catalog edits
    cannot move stock outside the ledger.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    if not partial:
        missing = sorted((policy.required_on_create or set()) - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"missing": missing})

    columns = _columns_by_key(model)
    rejected = sorted(k for k in payload if k not in policy.writable_fields or k not in columns)
    if rejected:
        raise ValidationError(f"Field not allowed: {rejected[0]}", details={"fields": rejected})

    cleaned: dict = {}
    for key, raw in payload.items():
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null", details={"field": key})
            cleaned[key] = None
            continue
        value = _coerce_value(col, raw)
        _check_length(col, key, value)
        cleaned[key] = value
    return cleaned


def enforce_rules_product(patch: dict) -> None:
    """Price/cost bounds and a non-negative reorder level."""
    for key in ("price_cents", "cost_cents"):
        if key in patch and patch[key] is not None:
            value = patch[key]
            if value < 0:
                raise ValidationError(f"{key} must be >= 0")
            if value > MAX_PRICE_CENTS:
                raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (R${MAX_PRICE_CENTS / 100:,.2f})")

    if "min_stock_quantity" in patch and patch["min_stock_quantity"] is not None:
        if patch["min_stock_quantity"] < 0:
            raise ValidationError("min_stock_quantity must be >= 0")


def enforce_rules_employee(patch: dict) -> None:
    if "role" in patch and patch["role"] not in ("gestor", "funcionario"):
        raise ValidationError("role must be gestor or funcionario")
    if "email" in patch and patch["email"] and "@" not in patch["email"]:
        raise ValidationError("email is not valid")


def require_cents(payload: dict, key: str, *, required: bool = True) -> int | None:
    """
    Read an amount in integer cents from a JSON payload.

    The HTTP boundary only accepts whole cents: 6.99 or "6.99" is rejected,
    699 is accepted.
    """
    if payload is None or key not in payload or payload[key] is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    return coerce_int(key, payload[key])
