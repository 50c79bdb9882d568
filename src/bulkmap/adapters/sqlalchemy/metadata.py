"""Metadata provider backed by SQLAlchemy mapper inspection."""

from __future__ import annotations

import dataclasses
import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from sqlalchemy import TypeDecorator, inspect
from sqlalchemy.exc import CompileError
from sqlalchemy.orm import Mapper

from bulkmap.domain.metadata import (
    NavigationMetadata,
    PropertyMetadata,
    ProviderName,
    TypeMetadata,
    ValueGeneration,
)

if TYPE_CHECKING:
    from sqlalchemy import Column
    from sqlalchemy.engine import Dialect
    from sqlalchemy.orm import CompositeProperty, RelationshipProperty

log = logging.getLogger(__name__)

OWNED_INFO_KEY = "owned"


class SqlAlchemyMetadataProvider:
    """Describe mapped classes through ``sqlalchemy.inspect``.

    - column attributes become properties; unmapped table columns become shadow
      properties
    - composites are owned members stored in the owner's table
    - relationships flagged ``info={"owned": True}`` are owned members stored in
      another table
    - a single-table inheritance base without a polymorphic identity is abstract
    """

    def __init__(self, dialect: Dialect) -> None:
        self._dialect = dialect
        self._cache: dict[type, TypeMetadata] = {}
        self._building: set[type] = set()

    @property
    def provider_name(self) -> str:
        return self._dialect.name

    def find_type(self, python_type: type) -> TypeMetadata | None:
        cached = self._cache.get(python_type)
        if cached is not None:
            return cached
        mapper = inspect(python_type, raiseerr=False)
        if not isinstance(mapper, Mapper):
            return None
        return self._describe(mapper)

    def _describe(self, mapper: Mapper[Any]) -> TypeMetadata:
        cls = mapper.class_
        cached = self._cache.get(cls)
        if cached is not None:
            return cached

        self._building.add(cls)
        try:
            metadata = self._build(mapper)
        finally:
            self._building.discard(cls)
        self._cache[cls] = metadata
        log.debug(
            "Described mapped type %s (%d properties)", cls.__name__, len(metadata.properties)
        )
        return metadata

    def _build(self, mapper: Mapper[Any]) -> TypeMetadata:
        table = mapper.local_table
        composite_columns = {
            column for composite in mapper.composites for column in composite.columns
        }

        properties: list[PropertyMetadata] = []
        for attr in mapper.column_attrs:
            column = attr.columns[0]
            if column in composite_columns or column.table is not table:
                continue
            properties.append(self._property(attr.key, column, mapper))
        properties.extend(
            self._property(column.key, column, mapper, is_shadow=True)
            for column in _shadow_columns(mapper)
        )

        navigations = [
            self._composite_navigation(composite, mapper) for composite in mapper.composites
        ]
        navigations.extend(
            self._relationship_navigation(relationship, mapper)
            for relationship in mapper.relationships
        )

        primary_key = tuple(
            mapper.get_property_by_column(column).key for column in mapper.primary_key
        )
        is_abstract = mapper.polymorphic_on is not None and mapper.polymorphic_identity is None
        derived = tuple(
            self._describe(sub)
            for sub in mapper.self_and_descendants
            if sub.inherits is mapper and sub.local_table is table
        )

        return TypeMetadata(
            name=mapper.class_.__name__,
            python_type=mapper.class_,
            table_name=getattr(table, "name", None),
            schema=getattr(table, "schema", None),
            properties=tuple(properties),
            primary_key=primary_key,
            navigations=tuple(navigations),
            is_abstract=is_abstract,
            derived_types=derived,
            factory=mapper.class_manager.new_instance,
        )

    def _property(
        self,
        name: str,
        column: Column[Any],
        mapper: Mapper[Any],
        *,
        is_shadow: bool = False,
    ) -> PropertyMetadata:
        is_concurrency_token = mapper.version_id_col is column
        return PropertyMetadata(
            name=name,
            column_name=column.name,
            python_type=_python_type(column),
            store_type=self._store_type(column),
            is_key=column.primary_key,
            is_shadow=is_shadow,
            is_foreign_key=bool(column.foreign_keys),
            is_nullable=bool(column.nullable),
            is_concurrency_token=is_concurrency_token,
            value_generation=_value_generation(column),
            computed_expression=_computed_expression(column),
            default_expression=_default_expression(column),
            default_value=column.default.arg if column.default is not None else None,
            converter=column.type if isinstance(column.type, TypeDecorator) else None,
            native_identity=self._native_identity(column),
        )

    def _store_type(self, column: Column[Any]) -> str:
        try:
            return str(column.type.compile(dialect=self._dialect))
        except CompileError:
            return ""

    def _native_identity(self, column: Column[Any]) -> bool | None:
        try:
            provider = ProviderName(self._dialect.name)
        except ValueError:
            return None
        if not provider.has_native_identity_strategy:
            return None
        return _is_generated_key(column)

    def _composite_navigation(
        self,
        composite: CompositeProperty[Any],
        owner: Mapper[Any],
    ) -> NavigationMetadata:
        value_type = composite.composite_class
        columns = list(composite.columns)
        if dataclasses.is_dataclass(value_type):
            names = [field.name for field in dataclasses.fields(value_type)]
        else:
            names = [column.key for column in columns]
        target = TypeMetadata(
            name=value_type.__name__,
            python_type=value_type,
            table_name=None,
            properties=tuple(
                self._property(name, column, owner)
                for name, column in zip(names, columns, strict=False)
            ),
            factory=partial(value_type, *([None] * len(columns))),
        )
        return NavigationMetadata(
            name=composite.key,
            is_owned=True,
            same_relation=True,
            target=target,
        )

    def _relationship_navigation(
        self,
        relationship: RelationshipProperty[Any],
        owner: Mapper[Any],
    ) -> NavigationMetadata:
        is_owned = bool(relationship.info.get(OWNED_INFO_KEY, False))
        target_mapper = relationship.mapper
        target = None
        if is_owned and target_mapper.class_ not in self._building:
            target = self._describe(target_mapper)
        return NavigationMetadata(
            name=relationship.key,
            is_collection=bool(relationship.uselist),
            is_owned=is_owned,
            same_relation=target_mapper.local_table is owner.local_table,
            target=target,
        )


def _shadow_columns(mapper: Mapper[Any]) -> list[Column[Any]]:
    """Table columns that no mapper of the inheritance hierarchy maps."""

    mapped: set[Column[Any]] = set()
    for member in mapper.base_mapper.self_and_descendants:
        for attr in member.column_attrs:
            mapped.update(attr.columns)
        for composite in member.composites:
            mapped.update(composite.columns)
    return [column for column in mapper.local_table.columns if column not in mapped]


def _python_type(column: Column[Any]) -> type:
    column_type = column.type
    if isinstance(column_type, TypeDecorator):
        column_type = column_type.impl_instance
    try:
        return column_type.python_type
    except NotImplementedError:
        return object


def _is_generated_key(column: Column[Any]) -> bool:
    if column.identity is not None:
        return True
    return column.primary_key and column.table.autoincrement_column is column


def _value_generation(column: Column[Any]) -> ValueGeneration:
    if column.computed is not None or column.server_onupdate is not None:
        return ValueGeneration.ON_ADD_OR_UPDATE
    if column.server_default is not None or _is_generated_key(column):
        return ValueGeneration.ON_ADD
    if column.primary_key and column.default is not None:
        return ValueGeneration.ON_ADD
    return ValueGeneration.NEVER


def _default_expression(column: Column[Any]) -> str | None:
    server_default = column.server_default
    if server_default is None or column.computed is not None or column.identity is not None:
        return None
    arg = getattr(server_default, "arg", None)
    if arg is None:
        # FetchedValue: the database fills it in without a declared expression
        return type(server_default).__name__
    return arg if isinstance(arg, str) else str(arg)


def _computed_expression(column: Column[Any]) -> str | None:
    if column.computed is None:
        return None
    return str(column.computed.sqltext)
