"""Utility functions for storefront."""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

PHONE_PATTERN = re.compile(r"^\+91[6-9]\d{9}$")


def to_decimal(value: object) -> Decimal:
    """
    Convert a stored or user-supplied amount to Decimal.

    Floats go through ``str`` so that 0.1 stays 0.1.
    """
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Not a valid amount: {value!r}")


def q2(value: object) -> Decimal:
    """Quantize to 2 decimal places with HALF_UP. Presentation only."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_inr(value: object) -> str:
    """Format an amount as rupees, e.g. ``₹2,124.00``."""
    return f"₹{q2(value):,.2f}"


def to_minor_units(amount: object) -> int:
    """Convert rupees to paise (integer), rounding half up."""
    return int((q2(amount) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def normalize_phone(phone: str) -> str:
    """
    Normalize an Indian mobile number to E.164 (``+91XXXXXXXXXX``).

    Accepts "98765 43210", "919876543210" and "+919876543210".

    Raises:
        ValidationError: If the number is not a valid Indian mobile number.
    """
    digits = re.sub(r"[\s\-()]", "", phone or "")
    if digits.startswith("+"):
        candidate = digits
    elif len(digits) == 12 and digits.startswith("91"):
        candidate = f"+{digits}"
    else:
        candidate = f"+91{digits}"

    if not PHONE_PATTERN.match(candidate):
        raise ValidationError("Invalid Indian phone number", fields=["phone"])
    return candidate
