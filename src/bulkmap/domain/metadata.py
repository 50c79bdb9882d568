"""Metadata provider port.

The introspector never talks to an ORM directly. A provider reports raw facts
about a mapped type using the structures below; the SQLAlchemy adapter is the
production implementation and tests build these values by hand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable


class ValueGeneration(StrEnum):
    """When the database assigns a value to a column."""

    NEVER = "never"
    ON_ADD = "on_add"
    ON_ADD_OR_UPDATE = "on_add_or_update"


class ProviderName(StrEnum):
    """Engine identities that change identity detection."""

    SQLSERVER = "mssql"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"
    MYSQL = "mysql"

    @property
    def has_native_identity_strategy(self) -> bool:
        return self in (ProviderName.SQLSERVER, ProviderName.POSTGRESQL)


@dataclass(frozen=True, slots=True, kw_only=True)
class PropertyMetadata:
    """Raw facts about one property as reported by the provider.

    ``column_name`` is ``None`` for properties that are not mapped to a column of
    the relation. ``native_identity`` carries the engine's generation strategy
    when the provider knows it, ``None`` otherwise.
    """

    name: str
    column_name: str | None
    python_type: type = object
    store_type: str = ""
    is_key: bool = False
    is_shadow: bool = False
    is_foreign_key: bool = False
    is_nullable: bool = True
    is_concurrency_token: bool = False
    value_generation: ValueGeneration = ValueGeneration.NEVER
    computed_expression: str | None = None
    default_expression: str | None = None
    default_value: Any = None
    converter: Any = None
    native_identity: bool | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class NavigationMetadata:
    """A reference from one mapped type to another.

    Owned members are value objects persisted with their owner; ``same_relation``
    tells whether their columns live in the owner's relation.
    """

    name: str
    is_collection: bool = False
    is_owned: bool = False
    same_relation: bool = False
    target: TypeMetadata | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class TypeMetadata:
    name: str
    python_type: type
    table_name: str | None
    schema: str | None = None
    properties: tuple[PropertyMetadata, ...] = ()
    primary_key: tuple[str, ...] = ()
    navigations: tuple[NavigationMetadata, ...] = ()
    is_abstract: bool = False
    derived_types: tuple[TypeMetadata, ...] = ()
    factory: Callable[[], Any] | None = None

    def property_named(self, name: str) -> PropertyMetadata | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def new_instance(self) -> Any:
        if self.factory is not None:
            return self.factory()
        return self.python_type.__new__(self.python_type)


class MetadataProvider(Protocol):
    """Source of mapping facts for entity types."""

    @property
    def provider_name(self) -> str: ...

    def find_type(self, python_type: type) -> TypeMetadata | None: ...


@dataclass(slots=True)
class StaticMetadataProvider:
    """Provider backed by a fixed set of hand-built type descriptions."""

    provider_name: str = ProviderName.SQLITE.value
    types: dict[type, TypeMetadata] = field(default_factory=dict[type, TypeMetadata])

    def register(self, metadata: TypeMetadata) -> TypeMetadata:
        self.types[metadata.python_type] = metadata
        return metadata

    def find_type(self, python_type: type) -> TypeMetadata | None:
        return self.types.get(python_type)
