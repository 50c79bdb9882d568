"""Key values used to correlate caller entities with returned rows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from .accessors import AccessorTable

DEFAULT_DELIMITER: Final[str] = "_"
NULL_TOKEN: Final[str] = "null"

_ARRAY_TYPES: Final[tuple[type, ...]] = (list, tuple, bytes, bytearray, memoryview)


def key_signature(values: Iterable[Any], delimiter: str = DEFAULT_DELIMITER) -> str:
    """Join ``values`` into one string key.

    Array values contribute their elements back to back, and ``None`` renders as
    ``"null"``. Different inputs can render identically, e.g. ``(1, "2")`` and
    ``(12, "")`` with an empty delimiter or ``("a_b", "c")`` and ``("a", "b_c")``
    with the default one; use :class:`CompositeKey` for lookups.
    """

    parts: list[str] = []
    for value in values:
        if isinstance(value, _ARRAY_TYPES):
            parts.append("".join(_render(element) for element in value))
        else:
            parts.append(_render(value))
    return delimiter.join(parts)


def _render(value: Any) -> str:
    return NULL_TOKEN if value is None else str(value)


@dataclass(frozen=True, slots=True)
class CompositeKey:
    """Ordered key values with structural equality, usable as a dict key."""

    values: tuple[Any, ...]

    @classmethod
    def of(cls, values: Iterable[Any]) -> CompositeKey:
        return cls(tuple(_hashable(value) for value in values))

    @classmethod
    def from_entity(
        cls,
        entity: object,
        names: Sequence[str],
        accessors: AccessorTable,
    ) -> CompositeKey:
        return cls.of(accessors.get_value(entity, name) for name in names)

    @classmethod
    def from_row(cls, row: Any, columns: Sequence[str]) -> CompositeKey:
        return cls.of(row[column] for column in columns)

    def signature(self, delimiter: str = DEFAULT_DELIMITER) -> str:
        return key_signature(self.values, delimiter)


def _hashable(value: Any) -> Any:
    if isinstance(value, (list, bytearray, memoryview)):
        return tuple(value) if isinstance(value, list) else bytes(value)
    return value
