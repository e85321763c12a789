import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from flask import request

from .errors import ValidationError


def json_body():
    """The request JSON as a dict; an absent or unparsable body counts as empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(
            "Request body must be a JSON object",
            code="invalid_field",
            details={"received": type(data).__name__},
        )
    return data


def require_fields(data, *names):
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise ValidationError(
            "Missing required fields",
            code="missing_fields",
            details={"required": list(names), "missing": missing},
        )


def require_text(data, *names):
    """Fields that are present must be strings."""
    for name in names:
        value = data.get(name)
        if value is not None and not isinstance(value, str):
            raise ValidationError(
                f"Invalid {name}",
                code="invalid_field",
                details={name: value, "expected": "String"},
            )


def parse_calendar_date(value, field="date"):
    """Accept ``YYYY-MM-DD`` (or a full ISO timestamp) and return a ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(
            f"Missing required field {field}",
            code="missing_fields",
            details={"required": [field]},
        )
    try:
        text = value.strip()
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except (AttributeError, ValueError):
        raise ValidationError(
            f"Invalid {field} format",
            code="invalid_date",
            details={"received": value, "example": "2025-04-28"},
        )


def parse_quantity(value, field="quantity"):
    """Non-negative integer; numeric strings such as ``"3"`` are accepted."""
    if isinstance(value, bool):
        value = None
    try:
        quantity = int(value)
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
    except (TypeError, ValueError):
        quantity = -1
    if quantity < 0:
        raise ValidationError(
            f"Invalid {field}",
            code="invalid_quantity",
            details={"error": f"{field} must be a non-negative integer", "received": value},
        )
    return quantity


def parse_amount(value):
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        value = None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        amount = None
    if amount is None or not amount.is_finite() or amount <= 0:
        raise ValidationError(
            "Invalid amount",
            code="invalid_amount",
            details={"received": value, "expected": "Positive number"},
        )
    return amount.quantize(Decimal("0.01"))


def check_identifier(value, prefix, field):
    """Ids look like ``B12``: the prefix followed by a positive integer."""
    if not isinstance(value, str) or not re.fullmatch(rf"{prefix}\d+", value) or int(value[len(prefix):]) <= 0:
        raise ValidationError(
            f"Invalid {field} format",
            code="invalid_identifier",
            details={"received": value, "expected": f"Format like {prefix}1, {prefix}2, etc."},
        )
    return value
