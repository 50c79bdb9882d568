"""Schema introspection.

Queries the metadata provider once per operation and normalises what it reports
into a :class:`RelationFacts` value. Everything here is a pure function of the
provider's answers and the configuration, so all failures surface before any
database I/O happens.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any, Final

from bulkmap.config.errors import InvalidBulkConfigError

from .facts import ColumnFact, IdentitySpec, OwnedMember, RelationFacts, RelationName, TimestampSpec
from .metadata import ProviderName, ValueGeneration
from .operations import OperationType
from .values import is_numeric_identity_type

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from bulkmap.config.bulk import BulkConfig

    from .metadata import MetadataProvider, NavigationMetadata, PropertyMetadata, TypeMetadata

log = logging.getLogger(__name__)

DEFAULT_SCHEMA_BY_PROVIDER: Final[dict[str, str]] = {ProviderName.SQLSERVER.value: "dbo"}
FULL_DATETIME2_PRECISION: Final[int] = 7

_DATETIME2_PATTERN = re.compile(r"datetime2\s*\(\s*(\d+)\s*\)")


class DataShapeError(ValueError):
    """Raised when the batch cannot be matched to a mapped entity type."""


def introspect(
    provider: MetadataProvider,
    entity_type: type | None,
    entities: Sequence[Any],
    operation: OperationType,
    config: BulkConfig,
    *,
    in_transaction: bool = False,
) -> RelationFacts:
    """Collect the relation facts for ``entity_type`` (or the batch's concrete type)."""

    check_staging_transaction(operation, config, in_transaction=in_transaction)
    metadata, has_abstract_list = _resolve_type(provider, entity_type, entities)
    provider_name = provider.provider_name
    relation = _relation_name(metadata, config, provider_name)

    columns, has_temporal_columns = _column_facts(_all_properties(metadata), config)
    by_name = {fact.property_name: fact for fact in columns}
    primary_key = tuple(by_name[name] for name in metadata.primary_key if name in by_name)

    identity = detect_identity(columns, provider_name)
    timestamp = None if config.ignore_row_version else detect_timestamp(columns)
    owned_members = tuple(_owned_members(metadata.navigations))
    datetime_precision = (
        _datetime_precision(columns) if config.datetime2_precision_force_round else {}
    )

    log.debug(
        "Introspected %s as %s: %d columns, identity=%s, timestamp=%s, owned=%s",
        metadata.name,
        relation,
        len(columns),
        identity.column_name if identity else None,
        timestamp.column_name if timestamp else None,
        [member.name for member in owned_members],
    )

    return RelationFacts(
        metadata=metadata,
        provider_name=provider_name,
        relation=relation,
        columns=columns,
        primary_key=primary_key,
        navigations=metadata.navigations,
        owned_members=owned_members,
        identity=identity,
        timestamp=timestamp,
        datetime_precision=datetime_precision,
        has_abstract_list=has_abstract_list,
        has_temporal_columns=has_temporal_columns,
    )


def check_staging_transaction(
    operation: OperationType,
    config: BulkConfig,
    *,
    in_transaction: bool,
) -> None:
    """Refuse session-local staging that would be dropped before the operation ends."""

    uses_temp_db = config.use_temp_db and config.custom_source_table_name is None
    if not uses_temp_db or in_transaction:
        return
    if operation is OperationType.INSERT and not config.set_output_identity:
        return
    raise InvalidBulkConfigError(
        "When 'use_temp_db' is set the bulk operation has to run inside a transaction. "
        "Otherwise the staging table is dropped before the operation is finished."
    )


def detect_identity(columns: Iterable[ColumnFact], provider_name: str) -> IdentitySpec | None:
    """Find the single engine-generated insert column, if there is one."""

    columns = tuple(columns)
    native = provider_name in {
        name.value for name in ProviderName if name.has_native_identity_strategy
    }
    if native and any(fact.native_identity is not None for fact in columns):
        for fact in columns:
            if fact.native_identity:
                return IdentitySpec(fact.property_name, fact.column_name, fact.python_type)
        return None

    allow_decimal = provider_name == ProviderName.SQLSERVER.value
    candidates = [
        fact
        for fact in columns
        if fact.is_key
        and fact.value_generation is ValueGeneration.ON_ADD
        and is_numeric_identity_type(fact.python_type, allow_decimal=allow_decimal)
    ]
    if len(candidates) != 1:
        return None
    fact = candidates[0]
    return IdentitySpec(fact.property_name, fact.column_name, fact.python_type)


def detect_timestamp(columns: Iterable[ColumnFact]) -> TimestampSpec | None:
    for fact in columns:
        if fact.is_concurrency_token and fact.value_generation is ValueGeneration.ON_ADD_OR_UPDATE:
            return TimestampSpec(fact.property_name, fact.column_name)
    return None


def _resolve_type(
    provider: MetadataProvider,
    entity_type: type | None,
    entities: Sequence[Any],
) -> tuple[TypeMetadata, bool]:
    metadata = provider.find_type(entity_type) if entity_type is not None else None
    if metadata is not None:
        return metadata, False

    if not entities or entities[0] is None:
        raise DataShapeError(
            "Cannot infer the entity type: no mapped type was given and the batch is empty"
        )
    concrete_type = type(entities[0])
    metadata = provider.find_type(concrete_type)
    if metadata is None:
        raise DataShapeError(f"No mapping registered for type: {concrete_type.__name__}")
    return metadata, True


def _relation_name(metadata: TypeMetadata, config: BulkConfig, provider_name: str) -> RelationName:
    if metadata.table_name is None:
        raise DataShapeError(f"Entity type {metadata.name} is not mapped to a table")
    default_schema = metadata.schema or DEFAULT_SCHEMA_BY_PROVIDER.get(provider_name)
    if config.custom_destination_table_name is not None:
        return RelationName.parse(config.custom_destination_table_name, default_schema=default_schema)
    return RelationName(table=metadata.table_name, schema=default_schema)


def _all_properties(metadata: TypeMetadata) -> list[PropertyMetadata]:
    """Own properties plus, for abstract types, those of directly derived types."""

    properties = list(metadata.properties)
    if not metadata.is_abstract:
        return properties
    seen = {prop.name for prop in properties}
    for derived in metadata.derived_types:
        for prop in derived.properties:
            if prop.name not in seen:
                seen.add(prop.name)
                properties.append(prop)
    return properties


def _column_facts(
    properties: Iterable[PropertyMetadata],
    config: BulkConfig,
) -> tuple[tuple[ColumnFact, ...], bool]:
    facts: list[ColumnFact] = []
    has_temporal_columns = False
    for prop in properties:
        if prop.column_name is None:
            continue
        is_temporal = (
            prop.is_shadow
            and issubclass(prop.python_type, datetime)
            and prop.column_name in config.temporal_columns
        )
        if is_temporal:
            has_temporal_columns = True
            continue
        facts.append(_fact_from_property(prop, prop.column_name))
    return tuple(facts), has_temporal_columns


def _fact_from_property(prop: PropertyMetadata, column_name: str) -> ColumnFact:
    return ColumnFact(
        property_name=prop.name,
        column_name=column_name,
        python_type=prop.python_type,
        store_type=prop.store_type,
        is_key=prop.is_key,
        is_shadow=prop.is_shadow,
        is_foreign_key=prop.is_foreign_key,
        is_nullable=prop.is_nullable,
        is_concurrency_token=prop.is_concurrency_token,
        value_generation=prop.value_generation,
        computed_expression=prop.computed_expression,
        default_expression=prop.default_expression,
        default_value=prop.default_value,
        converter=prop.converter,
        native_identity=prop.native_identity,
    )


def _owned_members(navigations: Iterable[NavigationMetadata]) -> Iterable[OwnedMember]:
    for navigation in navigations:
        if not navigation.is_owned or navigation.is_collection:
            continue
        if not navigation.same_relation or navigation.target is None:
            continue
        target = navigation.target
        facts = tuple(
            _fact_from_property(prop, prop.column_name)
            for prop in target.properties
            if prop.column_name is not None and not prop.is_key
        )
        yield OwnedMember(
            name=navigation.name,
            navigation=navigation,
            facts=facts,
            nested=tuple(_owned_members(target.navigations)),
        )


def _datetime_precision(columns: Iterable[ColumnFact]) -> dict[str, int]:
    precision_by_property: dict[str, int] = {}
    for fact in columns:
        match = _DATETIME2_PATTERN.fullmatch(fact.store_type.strip().lower())
        if match is None:
            continue
        precision = int(match.group(1))
        if precision < FULL_DATETIME2_PRECISION:
            precision_by_property[fact.property_name] = precision
    return precision_by_property
