"""Resolved mapping for one bulk operation.

Aggregates introspection and classification into a single frozen value that SQL
builders, transfer channels and the reconciler consume. None of those
collaborators re-derive mapping facts on their own.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final

from bulkmap.config.bulk import BulkConfig

from .accessors import build_accessor_table
from .classify import classify
from .introspect import introspect
from .metadata import ProviderName
from .operations import OperationType

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from sqlalchemy.engine import Dialect

    from .accessors import AccessorTable
    from .classify import KeySpec
    from .facts import ColumnFact, IdentitySpec, OwnedMember, RelationName, TimestampSpec
    from .metadata import MetadataProvider, TypeMetadata

log = logging.getLogger(__name__)

STAGING_SUFFIX: Final[str] = "Temp"
OUTPUT_SUFFIX: Final[str] = "Output"
UNIQUE_TOKEN_LENGTH: Final[int] = 8
SESSION_LOCAL_PREFIX: Final[str] = "#"


@dataclass(frozen=True, slots=True, kw_only=True)
class StagingNames:
    """Names of the staging relation and its output relation."""

    name: str
    schema: str | None = None
    output_schema: str | None = None
    session_local: bool = False
    prefix: str = ""

    @property
    def table_name(self) -> str:
        return f"{self.prefix}{self.name}"

    @property
    def output_table_name(self) -> str:
        return f"{self.prefix}{self.name}{OUTPUT_SUFFIX}"

    def qualified(self, dialect: Dialect, *, output: bool = False) -> str:
        """Quote the staging (or output) name for ``dialect``."""

        preparer = dialect.identifier_preparer
        table = preparer.quote(self.output_table_name if output else self.table_name)
        schema = self.output_schema if output else self.schema
        if schema is None or self.session_local:
            return table
        return f"{preparer.quote_schema(schema)}.{table}"


def resolve_staging_names(
    relation: RelationName,
    config: BulkConfig,
    provider_name: str,
) -> StagingNames:
    """Staging name = target name + suffix, unless a custom source table is given."""

    if config.custom_source_table_name is not None:
        source = type(relation).parse(config.custom_source_table_name)
        return StagingNames(
            name=source.table,
            schema=source.schema or relation.schema,
            output_schema=relation.schema,
        )

    suffix = STAGING_SUFFIX
    if config.unique_table_name_temp_db:
        # avoid collisions between concurrent operations on the same table
        suffix += uuid.uuid4().hex[:UNIQUE_TOKEN_LENGTH]
    session_local = config.use_temp_db
    prefix = (
        SESSION_LOCAL_PREFIX
        if session_local and provider_name == ProviderName.SQLSERVER.value
        else ""
    )
    return StagingNames(
        name=f"{relation.table}{suffix}",
        schema=relation.schema,
        output_schema=relation.schema,
        session_local=session_local,
        prefix=prefix,
    )


@dataclass(frozen=True, slots=True, kw_only=True)
class ResolvedMapping:
    entity_type: type
    metadata: TypeMetadata
    operation: OperationType
    config: BulkConfig
    provider_name: str
    relation: RelationName
    staging: StagingNames
    load_to_staging: bool
    columns: Mapping[str, ColumnFact]
    load_set: Mapping[str, str]
    insert_set: Mapping[str, str]
    compare_set: Mapping[str, str]
    update_set: Mapping[str, str]
    output_set: Mapping[str, str]
    key: KeySpec
    primary_key: Mapping[str, str]
    identity: IdentitySpec | None
    timestamp: TimestampSpec | None
    default_value_properties: frozenset[str]
    shadow_columns: frozenset[str]
    converters: Mapping[str, Any]
    datetime_precision: Mapping[str, int]
    owned_members: tuple[OwnedMember, ...]
    accessors: AccessorTable
    entity_count: int
    key_is_nullable: bool = False
    has_abstract_list: bool = False
    has_temporal_columns: bool = False

    @property
    def use_temp_db(self) -> bool:
        return self.staging.session_local

    @property
    def has_identity(self) -> bool:
        return self.identity is not None

    @property
    def has_single_primary_key(self) -> bool:
        return len(self.primary_key) == 1

    @property
    def has_owned_types(self) -> bool:
        return bool(self.owned_members)

    @property
    def creates_output_table(self) -> bool:
        return self.config.creates_output_table

    def property_for_column(self, column_name: str) -> str | None:
        for property_name, column in self.output_set.items():
            if column == column_name:
                return property_name
        return None

    def iter_output_columns(self) -> Iterator[tuple[str, str]]:
        yield from self.output_set.items()

    def new_entity(self) -> Any:
        return self.metadata.new_instance()


def resolve_mapping(
    provider: MetadataProvider,
    entity_type: type | None,
    entities: Sequence[Any],
    operation: OperationType,
    config: BulkConfig | None = None,
    *,
    in_transaction: bool = False,
) -> ResolvedMapping:
    """Introspect, classify and package the mapping for one bulk operation."""

    config = config or BulkConfig()
    facts = introspect(
        provider,
        entity_type,
        entities,
        operation,
        config,
        in_transaction=in_transaction,
    )
    classification = classify(facts, config, entities=entities, operation=operation)
    staging = resolve_staging_names(facts.relation, config, facts.provider_name)
    accessors = build_accessor_table(facts)

    columns: dict[str, ColumnFact] = {fact.column_name: fact for fact in facts.columns}
    converters: dict[str, Any] = {
        fact.column_name: fact.converter for fact in facts.columns if fact.converter is not None
    }
    for member in facts.owned_members:
        for fact in member.facts:
            if fact.converter is not None:
                converters.setdefault(fact.column_name, fact.converter)

    mapping = ResolvedMapping(
        entity_type=facts.entity_type,
        metadata=facts.metadata,
        operation=operation,
        config=config,
        provider_name=facts.provider_name,
        relation=facts.relation,
        staging=staging,
        load_to_staging=_loads_to_staging(operation, config),
        columns=MappingProxyType(columns),
        load_set=MappingProxyType(classification.load_set),
        insert_set=MappingProxyType(classification.insert_set),
        compare_set=MappingProxyType(classification.compare_set),
        update_set=MappingProxyType(classification.update_set),
        output_set=MappingProxyType(classification.output_set),
        key=classification.key,
        primary_key=MappingProxyType(classification.primary_key),
        identity=facts.identity,
        timestamp=facts.timestamp,
        default_value_properties=classification.default_value_properties,
        shadow_columns=classification.shadow_columns,
        converters=MappingProxyType(converters),
        datetime_precision=MappingProxyType(dict(facts.datetime_precision)),
        owned_members=facts.owned_members,
        accessors=accessors,
        entity_count=len(entities),
        key_is_nullable=classification.key_is_nullable,
        has_abstract_list=facts.has_abstract_list,
        has_temporal_columns=facts.has_temporal_columns,
    )
    log.debug(
        "Resolved mapping for %s on %s (staging=%s, load_to_staging=%s)",
        operation.value,
        facts.relation,
        staging.table_name,
        mapping.load_to_staging,
    )
    return mapping


def _loads_to_staging(operation: OperationType, config: BulkConfig) -> bool:
    """A plain insert without output capture writes straight into the target."""

    if operation is OperationType.TRUNCATE:
        return False
    return operation is not OperationType.INSERT or config.creates_output_table
