from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer for schema-less documents:
    - writable_fields: what clients are allowed to set (security boundary)
    - required: fields that must be present
    """
    writable_fields: frozenset[str]
    required: frozenset[str] = frozenset()


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion; rejects floats, bools and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_text(key: str, value: Any, *, max_length: int = 255) -> str:
    if value is None:
        raise ValidationError(f"{key} cannot be null")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    text = value.strip()
    if not text:
        raise ValidationError(f"{key} cannot be blank")
    if len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text


def parse_price_cents(key: str, value: Any) -> int:
    """
    Parse a decimal money amount ("12.50", 12.5, 12) into integer cents.

    Rejects negatives, non-finite values and sub-cent precision.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{key} must be a decimal amount")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be a decimal amount")
    if not amount.is_finite():
        raise ValidationError(f"{key} must be a finite amount")
    if amount < 0:
        raise ValidationError(f"{key} must be >= 0")
    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValidationError(f"{key} cannot have more than two decimal places")
    cents = int(cents)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
    return cents


def format_cents(cents: int) -> str:
    """Two-decimal display string for an integer cents amount."""
    return f"{Decimal(cents) / 100:.2f}"


def validate_payload(*, payload: Any, policy: PayloadPolicy) -> dict:
    """
    Validates an incoming JSON object against a PayloadPolicy.

    Returns a shallow copy holding only writable fields. Values are not
    coerced here; callers apply coerce_* per field.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required if payload.get(f) in (None, ""))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    return dict(payload)


def enforce_positive_quantity(key: str, value: Any) -> int:
    quantity = coerce_int(key, value)
    if quantity <= 0:
        raise ValidationError(f"{key} must be > 0")
    return quantity
