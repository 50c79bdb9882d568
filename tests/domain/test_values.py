from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from enum import IntEnum

import pytest

from bulkmap.domain.values import (
    coerce_identity,
    is_numeric_identity_type,
    is_unset,
    is_uuid_type,
    round_datetime,
    zero_value,
)


class Level(IntEnum):
    NONE = 0
    HIGH = 2


class Small(IntEnum):
    ONE = 1


def test_zero_values_per_type() -> None:
    assert zero_value(int) == 0
    assert zero_value(bool) is False
    assert zero_value(Decimal) == Decimal(0)
    assert zero_value(float) == 0.0
    assert zero_value(str) is None
    assert zero_value(uuid.UUID) is None
    assert zero_value(Level) is Level.NONE
    assert zero_value(Small) == 0


def test_is_unset_treats_none_and_zero_as_unset() -> None:
    assert is_unset(None, int)
    assert is_unset(0, int)
    assert not is_unset(-1, int)
    assert not is_unset("", str)
    assert is_unset(None, str)
    assert not is_unset(True, bool)


def test_numeric_identity_types() -> None:
    assert is_numeric_identity_type(int)
    assert not is_numeric_identity_type(bool)
    assert not is_numeric_identity_type(Decimal)
    assert is_numeric_identity_type(Decimal, allow_decimal=True)
    assert not is_numeric_identity_type(str, allow_decimal=True)


def test_coerce_identity_keeps_identity_type() -> None:
    assert coerce_identity(-3, Decimal) == Decimal(-3)
    assert isinstance(coerce_identity(-3, Decimal), Decimal)
    assert coerce_identity(-3, int) == -3


def test_uuid_type_detection() -> None:
    assert is_uuid_type(uuid.UUID)
    assert not is_uuid_type(str)


def test_round_datetime_rounds_half_up_to_precision() -> None:
    value = datetime(2024, 1, 1, 12, 0, 0, 123_456)

    assert round_datetime(value, 3) == datetime(2024, 1, 1, 12, 0, 0, 123_000)
    assert round_datetime(value.replace(microsecond=123_500), 3) == datetime(
        2024, 1, 1, 12, 0, 0, 124_000
    )
    assert round_datetime(value.replace(microsecond=999_999), 0) == datetime(2024, 1, 1, 12, 0, 1)
    assert round_datetime(value, 7) is value
    assert round_datetime(None, 3) is None


def test_round_datetime_rejects_negative_precision() -> None:
    with pytest.raises(ValueError, match="must not be negative"):
        round_datetime(datetime(2024, 1, 1), -1)
