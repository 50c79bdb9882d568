"""Normalised relation facts produced by schema introspection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .metadata import ValueGeneration
from .values import is_uuid_type

if TYPE_CHECKING:
    from collections.abc import Callable

    from .metadata import NavigationMetadata, TypeMetadata


@dataclass(frozen=True, slots=True, kw_only=True)
class ColumnFact:
    """One mapped property and the column that stores it."""

    property_name: str
    column_name: str
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

    @property
    def has_computed_expression(self) -> bool:
        return self.computed_expression is not None

    @property
    def has_database_default(self) -> bool:
        """A default the database fills in when the column is omitted on insert."""

        if self.is_shadow:
            return False
        if self.default_expression is not None:
            return True
        # client-generated UUID defaults are never filled in by the database
        return (
            self.default_value is not None
            and self.value_generation is not ValueGeneration.NEVER
            and not is_uuid_type(self.python_type)
        )


@dataclass(frozen=True, slots=True)
class IdentitySpec:
    property_name: str
    column_name: str
    python_type: type = int


@dataclass(frozen=True, slots=True)
class TimestampSpec:
    property_name: str
    column_name: str


@dataclass(frozen=True, slots=True)
class RelationName:
    table: str
    schema: str | None = None

    @classmethod
    def parse(cls, value: str, *, default_schema: str | None = None) -> RelationName:
        """Split an optional ``schema.table`` name."""

        if "." in value:
            schema, table = value.split(".", 1)
            return cls(table=table, schema=schema)
        return cls(table=value, schema=default_schema)

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}" if self.schema else self.table


@dataclass(frozen=True, slots=True)
class OwnedMember:
    """A value object stored inline in the owner's relation."""

    name: str
    navigation: NavigationMetadata
    facts: tuple[ColumnFact, ...]
    nested: tuple[OwnedMember, ...] = ()

    @property
    def factory(self) -> Callable[[], Any] | None:
        target = self.navigation.target
        return target.new_instance if target is not None else None


@dataclass(frozen=True, slots=True, kw_only=True)
class RelationFacts:
    """Everything introspection learned about the target relation."""

    metadata: TypeMetadata
    provider_name: str
    relation: RelationName
    columns: tuple[ColumnFact, ...]
    primary_key: tuple[ColumnFact, ...]
    navigations: tuple[NavigationMetadata, ...] = ()
    owned_members: tuple[OwnedMember, ...] = ()
    identity: IdentitySpec | None = None
    timestamp: TimestampSpec | None = None
    datetime_precision: dict[str, int] = field(default_factory=dict[str, int])
    has_abstract_list: bool = False
    has_temporal_columns: bool = False

    @property
    def entity_type(self) -> type:
        return self.metadata.python_type

    def column_for(self, property_name: str) -> ColumnFact | None:
        for fact in self.columns:
            if fact.property_name == property_name:
                return fact
        return None

    def navigation_named(self, name: str) -> NavigationMetadata | None:
        for navigation in self.navigations:
            if navigation.name == name:
                return navigation
        return None
