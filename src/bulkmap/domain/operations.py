"""Bulk operation kinds."""

from __future__ import annotations

from enum import StrEnum


class OperationType(StrEnum):
    """Set-based operation requested by the caller."""

    INSERT = "insert"
    INSERT_OR_UPDATE = "insert_or_update"
    INSERT_OR_UPDATE_OR_DELETE = "insert_or_update_or_delete"
    UPDATE = "update"
    DELETE = "delete"
    READ = "read"
    TRUNCATE = "truncate"

    @property
    def is_update_family(self) -> bool:
        """Operations whose staging output lists pre-existing rows before new ones."""

        return self in _UPDATE_FAMILY

    @property
    def requires_key(self) -> bool:
        return self in _KEYED

    @property
    def loads_only_key(self) -> bool:
        """Only the join key is transmitted; a bulk read narrows its mapping separately."""

        return self is OperationType.DELETE


_UPDATE_FAMILY = frozenset(
    {
        OperationType.UPDATE,
        OperationType.INSERT_OR_UPDATE,
        OperationType.INSERT_OR_UPDATE_OR_DELETE,
    }
)
_KEYED = frozenset({OperationType.DELETE, OperationType.READ})
