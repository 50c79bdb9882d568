"""Database connection configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_env_bool, require_env_vars


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str
    echo: bool = False


def get_database_config(*, uri: str | None = None) -> DatabaseConfig:
    """Return the database configuration, preferring an explicit ``uri``.

    Falls back to ``DATABASE_URI``; ``DATABASE_ECHO`` toggles SQL echoing.
    """

    echo = optional_env_bool("DATABASE_ECHO") or False
    if uri:
        return DatabaseConfig(uri=uri, echo=echo)
    values = require_env_vars(("DATABASE_URI",))
    return DatabaseConfig(uri=values["DATABASE_URI"], echo=echo)
