"""Helpers for comparing and shaping property values."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Final

MAX_DATETIME_PRECISION: Final[int] = 6

_ZERO_VALUES: Final[dict[type, Any]] = {
    bool: False,
    int: 0,
    float: 0.0,
    Decimal: Decimal(0),
}


def zero_value(python_type: type) -> Any:
    """Return the value an unassigned property of ``python_type`` holds.

    Numeric types have a zero; everything else (strings, dates, UUIDs, objects)
    is unassigned when ``None``.
    """

    for candidate, zero in _ZERO_VALUES.items():
        if python_type is candidate:
            return zero
    for candidate, zero in _ZERO_VALUES.items():
        if candidate is not bool and issubclass(python_type, candidate):
            try:
                return python_type(zero)
            except (TypeError, ValueError):
                # enums without a zero member
                return zero
    return None


def is_unset(value: Any, python_type: type) -> bool:
    """Whether ``value`` is ``None`` or the zero value for ``python_type``."""

    if value is None:
        return True
    zero = zero_value(python_type)
    if zero is None:
        return False
    return bool(value == zero)


def is_numeric_identity_type(python_type: type, *, allow_decimal: bool = False) -> bool:
    if python_type is bool:
        return False
    if issubclass(python_type, int):
        return True
    return allow_decimal and issubclass(python_type, Decimal)


def coerce_identity(value: int, python_type: type) -> Any:
    """Convert a placeholder counter into the identity property's own type."""

    if issubclass(python_type, Decimal):
        return Decimal(value)
    if issubclass(python_type, int) and python_type is not bool:
        return python_type(value)
    return value


def is_uuid_type(python_type: type) -> bool:
    return issubclass(python_type, uuid.UUID)


def round_datetime(value: datetime | None, precision: int) -> datetime | None:
    """Round ``value`` to ``precision`` fractional-second digits.

    Loaders truncate sub-precision fractions, so values are rounded in memory
    before they are transferred.
    """

    if value is None or precision >= MAX_DATETIME_PRECISION:
        return value
    if precision < 0:
        raise ValueError(f"precision must not be negative, got {precision}")
    step = 10 ** (MAX_DATETIME_PRECISION - precision)
    remainder = value.microsecond % step
    floored = value - timedelta(microseconds=remainder)
    if remainder * 2 >= step:
        return floored + timedelta(microseconds=step)
    return floored
