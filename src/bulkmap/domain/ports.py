"""Protocols the reconciler uses to read what a bulk write left behind."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

OutputRow: TypeAlias = "Mapping[str, Any]"


class OutputReader(Protocol):
    """Blocking access to the staging output relation.

    Rows are keyed by column name and come back pre-existing rows first (in key
    order), then newly inserted rows in insertion order.
    """

    def read_output_rows(self) -> Sequence[OutputRow]: ...

    def count_updated(self) -> int: ...

    def count_deleted(self) -> int: ...


class AsyncOutputReader(Protocol):
    async def read_output_rows(self) -> Sequence[OutputRow]: ...

    async def count_updated(self) -> int: ...

    async def count_deleted(self) -> int: ...
