"""SQLAlchemy-backed units of work for bulk operations.

A unit of work owns one connection and one transaction. Mappings resolved
through it know that a transaction is open, so session-local staging tables
are allowed for every operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine

from bulkmap.config.storage import get_database_config
from bulkmap.domain.mapping import resolve_mapping

from .metadata import SqlAlchemyMetadataProvider
from .output import AsyncSqlAlchemyOutputReader, SqlAlchemyOutputReader

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from sqlalchemy import MetaData, Table
    from sqlalchemy.engine import Connection, Engine, RootTransaction
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction

    from bulkmap.config.bulk import BulkConfig
    from bulkmap.domain.mapping import ResolvedMapping
    from bulkmap.domain.operations import OperationType

log = logging.getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _async_engine: AsyncEngine | None = None
    _provider: SqlAlchemyMetadataProvider | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call bulkmap.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._provider = None
        self._engine = value

    @property
    def async_engine(self) -> AsyncEngine:
        if self._async_engine is None:
            raise StartupError(
                "No async engine configured. Pass async_engine to startup() first."
            )
        return self._async_engine

    @async_engine.setter
    def async_engine(self, value: AsyncEngine | None) -> None:
        self._async_engine = value

    @property
    def provider(self) -> SqlAlchemyMetadataProvider:
        if self._provider is None:
            engine = self._engine if self._engine is not None else self.async_engine.sync_engine
            self._provider = SqlAlchemyMetadataProvider(engine.dialect)
        return self._provider

    @property
    def is_started(self) -> bool:
        return self._engine is not None or self._async_engine is not None

    @property
    def current_engine(self) -> Engine | None:
        return self._engine

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        if self._async_engine is not None:
            self._async_engine.sync_engine.dispose()
        self.engine = None
        self.async_engine = None


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    async_engine: AsyncEngine | None = None,
    metadata: MetaData | None = None,
    force: bool = False,
) -> None:
    """Initialise the engines used by units of work.

    ``metadata`` tables are created on the blocking engine when given.
    """

    if _STATE.is_started and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    if engine is None and async_engine is None:
        config = get_database_config(uri=database_uri)
        engine = create_engine(config.uri, echo=config.echo)
    if metadata is not None and engine is not None:
        metadata.create_all(engine, checkfirst=True)

    _STATE.engine = engine
    _STATE.async_engine = async_engine
    log.info("SQLAlchemy bulk adapter started (dialect=%s)", _STATE.provider.provider_name)


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.current_engine


def is_started() -> bool:
    return _STATE.is_started


def shutdown() -> None:
    """Dispose the managed engines and reset state (primarily for tests)."""

    _STATE.dispose()


class SqlAlchemyBulkUnitOfWork:
    """Connection and transaction scope for blocking bulk operations."""

    def __init__(self) -> None:
        self.engine: Engine = _STATE.engine
        self.provider = _STATE.provider
        self._connection: Connection | None = None
        self._transaction: RootTransaction | None = None

    def __enter__(self) -> SqlAlchemyBulkUnitOfWork:
        if self._connection is not None:
            raise StartupError("Unit of work connection already initialised")
        self._connection = self.engine.connect()
        self._transaction = self._connection.begin()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        if self._connection is not None:
            self._connection.close()
        self._connection = None
        self._transaction = None
        return False

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise StartupError("Unit of work connection not initialised")
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None and self._transaction.is_active

    def commit(self) -> None:
        if self._transaction is not None and self._transaction.is_active:
            self._transaction.commit()
        self._transaction = self.connection.begin()

    def rollback(self) -> None:
        if self._transaction is not None and self._transaction.is_active:
            self._transaction.rollback()

    def resolve(
        self,
        entity_type: type | None,
        entities: Sequence[Any],
        operation: OperationType,
        config: BulkConfig | None = None,
    ) -> ResolvedMapping:
        return resolve_mapping(
            self.provider,
            entity_type,
            entities,
            operation,
            config,
            in_transaction=self.in_transaction,
        )

    def output_reader(self, mapping: ResolvedMapping, target: Table) -> SqlAlchemyOutputReader:
        return SqlAlchemyOutputReader(self.connection, mapping, target)


class AsyncSqlAlchemyBulkUnitOfWork:
    """``async with`` counterpart of :class:`SqlAlchemyBulkUnitOfWork`."""

    def __init__(self) -> None:
        self.engine: AsyncEngine = _STATE.async_engine
        self.provider = _STATE.provider
        self._connection: AsyncConnection | None = None
        self._transaction: AsyncTransaction | None = None

    async def __aenter__(self) -> AsyncSqlAlchemyBulkUnitOfWork:
        if self._connection is not None:
            raise StartupError("Unit of work connection already initialised")
        self._connection = await self.engine.connect()
        self._transaction = await self._connection.begin()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            await self.rollback()
        if self._connection is not None:
            await self._connection.close()
        self._connection = None
        self._transaction = None
        return False

    @property
    def connection(self) -> AsyncConnection:
        if self._connection is None:
            raise StartupError("Unit of work connection not initialised")
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None and self._transaction.is_active

    async def commit(self) -> None:
        if self._transaction is not None and self._transaction.is_active:
            await self._transaction.commit()
        self._transaction = await self.connection.begin()

    async def rollback(self) -> None:
        if self._transaction is not None and self._transaction.is_active:
            await self._transaction.rollback()

    def resolve(
        self,
        entity_type: type | None,
        entities: Sequence[Any],
        operation: OperationType,
        config: BulkConfig | None = None,
    ) -> ResolvedMapping:
        return resolve_mapping(
            self.provider,
            entity_type,
            entities,
            operation,
            config,
            in_transaction=self.in_transaction,
        )

    def output_reader(
        self,
        mapping: ResolvedMapping,
        target: Table,
    ) -> AsyncSqlAlchemyOutputReader:
        return AsyncSqlAlchemyOutputReader(self.connection, mapping, target)
