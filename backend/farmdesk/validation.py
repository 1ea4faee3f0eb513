from __future__ import annotations
from datetime import datetime
from farmdesk.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

SALE_STATUSES = ("unpaid", "paid", "pending_shipment", "shipped", "completed")
PLATFORM_SOURCES = ("tiktok", "facebook", "whatsapp", "shopee", "walk_in", "others")
INVOICE_STATUSES = ("draft", "sent", "paid", "overdue", "cancelled")
PRODUCT_STATUSES = ("active", "inactive")


class ServiceError(Exception):
    """Base for failures raised by the service layer; carries structured details."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(ServiceError, ValueError):
    """400-level input problem."""


class NotFoundError(ServiceError, LookupError):
    """404-level: the referenced record does not exist in this account."""


class ConflictError(ServiceError):
    """409-level business rule conflict (duplicate SKU, stock shortfall, already invoiced)."""


class AccountAccessError(ServiceError):
    """403-level: the record belongs to a different business account."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: per-field closed vocabularies
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    choices: dict[str, tuple[str, ...]] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer", {"field": col.key})
            if 'e' in stripped.lower():
                raise ValidationError(
                    f"{col.key} must be a plain integer (scientific notation not allowed)",
                    {"field": col.key},
                )
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)", {"field": col.key})
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", {"field": col.key})
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal", {"field": col.key})
        raise ValidationError(f"{col.key} must be an integer", {"field": col.key})

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", {"field": col.key})
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", {"field": col.key})
            return dt
        raise ValidationError(f"{col.key} must be a datetime", {"field": col.key})

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
    - a policy allowlist (writable_fields) and closed vocabularies (choices)
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
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                {"missing": missing},
            )

    cols = _columns_by_key(model)
    choices = policy.choices or {}

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", {"field": k})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", {"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", {"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", {"field": k})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", {"field": k})

        if k in choices and val not in choices[k]:
            raise ValidationError(
                f"{k} must be one of: {', '.join(choices[k])}",
                {"field": k, "allowed": list(choices[k])},
            )

        patch[k] = val

    return patch


def enforce_amount(patch: dict, field: str, *, allow_negative: bool = False) -> None:
    """Range check for a cents field already coerced to int."""
    if field not in patch or patch[field] is None:
        return
    amount = patch[field]
    if not allow_negative and amount < 0:
        raise ValidationError(f"{field} must be >= 0", {"field": field})
    if abs(amount) > MAX_AMOUNT_CENTS:
        raise ValidationError(
            f"{field} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})",
            {"field": field},
        )


def enforce_rules_product(patch: dict) -> None:
    enforce_amount(patch, "cost_price_cents")
    enforce_amount(patch, "selling_price_cents")
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0", {"field": "stock"})


def enforce_rules_sale_line(line: dict, *, prefix: str = "") -> None:
    """
    A sale line needs a positive quantity and a discount that never exceeds
    the unit price it applies to. prefix names the line in error messages,
    e.g. "lines[1].".
    """
    quantity = line.get("quantity")
    if quantity is None or quantity <= 0:
        raise ValidationError(f"{prefix}quantity must be > 0", {"field": f"{prefix}quantity"})
    for amount_field in ("unit_price_cents", "discount_cents"):
        try:
            enforce_amount(line, amount_field)
        except ValidationError as e:
            raise ValidationError(f"{prefix}{e}", {"field": f"{prefix}{amount_field}"})
    unit_price = line.get("unit_price_cents")
    discount = line.get("discount_cents") or 0
    if unit_price is not None and discount > unit_price:
        raise ValidationError(
            f"{prefix}discount_cents cannot exceed unit_price_cents",
            {"field": f"{prefix}discount_cents"},
        )


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion for values that do not map onto a model column."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", {"field": field})
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer", {"field": field})
