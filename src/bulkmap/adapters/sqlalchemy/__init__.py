"""SQLAlchemy adapter package for bulkmap."""

from __future__ import annotations

from .metadata import OWNED_INFO_KEY, SqlAlchemyMetadataProvider
from .output import (
    IS_DELETE_COLUMN,
    IS_UPDATE_COLUMN,
    AsyncSqlAlchemyOutputReader,
    SqlAlchemyOutputReader,
    output_table,
)
from .unit_of_work import (
    AsyncSqlAlchemyBulkUnitOfWork,
    SqlAlchemyBulkUnitOfWork,
    StartupError,
    shutdown,
    startup,
)

__all__ = [
    "IS_DELETE_COLUMN",
    "IS_UPDATE_COLUMN",
    "OWNED_INFO_KEY",
    "AsyncSqlAlchemyBulkUnitOfWork",
    "AsyncSqlAlchemyOutputReader",
    "SqlAlchemyBulkUnitOfWork",
    "SqlAlchemyMetadataProvider",
    "SqlAlchemyOutputReader",
    "StartupError",
    "output_table",
    "shutdown",
    "startup",
]
