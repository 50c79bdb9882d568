"""Application configuration helpers."""

from __future__ import annotations

from .bulk import DEFAULT_BATCH_SIZE, DEFAULT_TEMPORAL_COLUMNS, BulkConfig, get_bulk_config
from .env import optional_env_bool, optional_env_int, require_env_vars
from .errors import (
    ConfigurationError,
    InvalidBulkConfigError,
    MissingConfigurationError,
    MultiplePropertyListSetError,
    UnknownPropertyError,
)
from .logging import configure_logging
from .storage import DatabaseConfig, get_database_config

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_TEMPORAL_COLUMNS",
    "BulkConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "InvalidBulkConfigError",
    "MissingConfigurationError",
    "MultiplePropertyListSetError",
    "UnknownPropertyError",
    "configure_logging",
    "get_bulk_config",
    "get_database_config",
    "optional_env_bool",
    "optional_env_int",
    "require_env_vars",
]
