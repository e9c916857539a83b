from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


TWO_PLACES = Decimal("0.01")
FOUR_PLACES = Decimal("0.0001")


class PMSError(Exception):
    """
    Base for every domain failure the services raise.

    kind is the stable machine-readable label returned to API clients,
    status_code the HTTP status routes answer with.
    """
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(PMSError):
    """400-level input problem."""
    kind = "validation_error"
    status_code = 400


class NotFoundError(PMSError):
    """Referenced entity does not exist."""
    kind = "not_found"
    status_code = 404


class ConfigurationMissing(PMSError):
    """No plan-share configuration applies; an operator must add one."""
    kind = "configuration_missing"
    status_code = 422


class ConflictError(PMSError):
    """409-level business rule conflict (duplicate plan, locked score, ...)."""
    kind = "conflict"
    status_code = 409


class AuthorizationError(PMSError):
    """Actor lacks the role or position the action requires."""
    kind = "authorization_error"
    status_code = 403


class NoPlanFound(PMSError):
    """KPI scoring was requested for a staff member with no staff plan."""
    kind = "no_plan_found"
    status_code = 404


def to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        # spreadsheet cells hand account numbers back as floats
        value = int(value)
    text = str(value).strip()
    return text if text else None


def to_decimal(value: Any, field: str = "value") -> Decimal | None:
    """
    Parse money / numeric input into Decimal.

    Accepts ints, floats, Decimal and strings with thousands separators.
    Empty values return None; anything unparseable raises ValidationError.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def require_decimal(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result is None:
        raise ValidationError(f"{field} is required")
    return result


def require_text(value: Any, field: str) -> str:
    result = to_text(value)
    if result is None:
        raise ValidationError(f"{field} is required")
    return result


def to_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def round2(value: Decimal) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round4(value: Decimal) -> Decimal:
    return Decimal(value).quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)


def as_number(value: Decimal | None) -> float | None:
    """JSON-friendly rendering of stored Decimals."""
    if value is None:
        return None
    return float(value)
