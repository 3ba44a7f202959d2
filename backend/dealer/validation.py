from __future__ import annotations
from datetime import date, datetime
from dealer.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Date, JSON
from sqlalchemy.orm import DeclarativeMeta


# Maximum money amount: R$ 99,999,999.99 (9,999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 9_999_999_999

MIN_VEHICLE_YEAR = 1900
MAX_VEHICLE_YEAR = 2100

# Upper bound for a single installment plan
MAX_INSTALLMENT_COUNT = 420


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.field:
            body["field"] = self.field
        return body


class QuotaExceededError(ValidationError):
    """400-level: the write would push stored media past the storage budget."""

    def __init__(self, *, available_bytes: int, required_bytes: int, budget_bytes: int):
        available_mb = max(available_bytes, 0) / (1024 * 1024)
        required_mb = required_bytes / (1024 * 1024)
        budget_gb = budget_bytes / (1024 * 1024 * 1024)
        super().__init__(
            f"Storage limit exceeded. Available: {available_mb:.2f}MB, "
            f"required: {required_mb:.2f}MB. Maximum: {budget_gb:.2f}GB",
            field="media_blobs",
        )
        self.available_bytes = available_bytes
        self.required_bytes = required_bytes
        self.budget_bytes = budget_bytes

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({
            "available_bytes": self.available_bytes,
            "required_bytes": self.required_bytes,
            "budget_bytes": self.budget_bytes,
        })
        return body


class NotFoundError(LookupError):
    """404-level: a referenced record does not exist."""

    def to_dict(self) -> dict:
        return {"error": str(self)}


class ConflictError(ValueError):
    """409-level: the resource changed underneath the operation; retry it whole."""

    def to_dict(self) -> dict:
        return {"error": str(self)}


class InternalError(RuntimeError):
    """500-level persistence/infrastructure failure (already rolled back)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_fields: non-column keys the caller may send (handled by the service)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


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
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer", field=col.key)
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)", field=col.key)
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)", field=col.key)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", field=col.key)
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal", field=col.key)
        # Other types
        raise ValidationError(f"{col.key} must be an integer", field=col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", field=col.key)

    # Calendar dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date", field=col.key)
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date", field=col.key)
            return d
        raise ValidationError(f"{col.key} must be a date", field=col.key)

    # JSON lists (media blobs)
    if isinstance(coltype, JSON):
        if not isinstance(value, list):
            raise ValidationError(f"{col.key} must be a list", field=col.key)
        if not all(isinstance(item, str) for item in value):
            raise ValidationError(f"{col.key} must contain only strings", field=col.key)
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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

    Keys listed in policy.extra_fields are passed through untouched.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    cols = _columns_by_key(model)
    extra = policy.extra_fields or set()

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in extra:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            patch[k] = raw
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", field=k)

        # Optional text: blank means "clear"
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


def require_positive_int(value: Any, field: str) -> int:
    """Coerce an id-like value (path/body) into a positive integer."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field} must be an integer", field=field)
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    return number


def enforce_rules_amounts(patch: dict) -> None:
    """All *_cents fields are non-negative and bounded."""
    for key, value in patch.items():
        if not key.endswith("_cents") or value is None:
            continue
        if value < 0:
            raise ValidationError(f"{key} must be >= 0", field=key)
        if value > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}", field=key)


def enforce_rules_stock_item(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    enforce_rules_amounts(patch)

    if "year" in patch and patch["year"] is not None:
        if not MIN_VEHICLE_YEAR <= patch["year"] <= MAX_VEHICLE_YEAR:
            raise ValidationError(
                f"year must be between {MIN_VEHICLE_YEAR} and {MAX_VEHICLE_YEAR}", field="year"
            )

    if "km" in patch and patch["km"] is not None and patch["km"] < 0:
        raise ValidationError("km must be >= 0", field="km")


def enforce_rules_installment_plan(patch: dict) -> None:
    enforce_rules_amounts(patch)

    count = patch.get("installment_count")
    if count is not None:
        if count < 0:
            raise ValidationError("installment_count must be >= 0", field="installment_count")
        if count > MAX_INSTALLMENT_COUNT:
            raise ValidationError(
                f"installment_count cannot exceed {MAX_INSTALLMENT_COUNT}", field="installment_count"
            )
