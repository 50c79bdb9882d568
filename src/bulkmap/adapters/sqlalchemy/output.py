"""Readers for the staging output relation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

from sqlalchemy import Integer, column, func, select, table

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import Select, Table, TableClause
    from sqlalchemy.engine import Connection
    from sqlalchemy.ext.asyncio import AsyncConnection

    from bulkmap.domain.mapping import ResolvedMapping
    from bulkmap.domain.ports import AsyncOutputReader, OutputReader, OutputRow

IS_UPDATE_COLUMN: Final[str] = "IsUpdate"
IS_DELETE_COLUMN: Final[str] = "IsDelete"


def output_table(mapping: ResolvedMapping, target: Table) -> TableClause:
    """Lightweight table construct for ``{staging}Output``.

    Column types are taken from ``target`` so result processing (type decorators
    included) matches a read from the target itself.
    """

    wanted = dict.fromkeys(mapping.output_set.values())
    columns = [
        column(target_column.name, target_column.type)
        for target_column in target.columns
        if target_column.name in wanted
    ]
    columns.append(column(IS_UPDATE_COLUMN, Integer()))
    columns.append(column(IS_DELETE_COLUMN, Integer()))
    staging = mapping.staging
    schema = None if staging.session_local else staging.output_schema
    return table(staging.output_table_name, *columns, schema=schema)


def _select_rows(mapping: ResolvedMapping, output: TableClause) -> Select[Any]:
    names = [name for name in dict.fromkeys(mapping.output_set.values()) if name in output.c]
    order_by = [output.c[name] for name in mapping.primary_key.values() if name in output.c]
    if not order_by:
        order_by = [output.c[name] for name in mapping.key.column_names if name in output.c]
    return select(*(output.c[name] for name in names)).order_by(*order_by)


def _count_flagged(output: TableClause, flag: str) -> Select[Any]:
    return select(func.count()).select_from(output).where(output.c[flag] == 1)


class SqlAlchemyOutputReader:
    """Reads the output relation over a blocking connection."""

    def __init__(self, connection: Connection, mapping: ResolvedMapping, target: Table) -> None:
        self.connection = connection
        self.mapping = mapping
        self.output = output_table(mapping, target)

    def read_output_rows(self) -> Sequence[OutputRow]:
        result = self.connection.execute(_select_rows(self.mapping, self.output))
        return result.mappings().all()

    def count_updated(self) -> int:
        result = self.connection.execute(_count_flagged(self.output, IS_UPDATE_COLUMN))
        return int(result.scalar_one())

    def count_deleted(self) -> int:
        result = self.connection.execute(_count_flagged(self.output, IS_DELETE_COLUMN))
        return int(result.scalar_one())


class AsyncSqlAlchemyOutputReader:
    """Same queries as :class:`SqlAlchemyOutputReader` over an ``AsyncConnection``."""

    def __init__(
        self,
        connection: AsyncConnection,
        mapping: ResolvedMapping,
        target: Table,
    ) -> None:
        self.connection = connection
        self.mapping = mapping
        self.output = output_table(mapping, target)

    async def read_output_rows(self) -> Sequence[OutputRow]:
        result = await self.connection.execute(_select_rows(self.mapping, self.output))
        return result.mappings().all()

    async def count_updated(self) -> int:
        result = await self.connection.execute(_count_flagged(self.output, IS_UPDATE_COLUMN))
        return int(result.scalar_one())

    async def count_deleted(self) -> int:
        result = await self.connection.execute(_count_flagged(self.output, IS_DELETE_COLUMN))
        return int(result.scalar_one())


if TYPE_CHECKING:
    _reader_check: type[OutputReader] = SqlAlchemyOutputReader
    _async_reader_check: type[AsyncOutputReader] = AsyncSqlAlchemyOutputReader
