"""Property classification.

Partitions the introspected columns into the role sets a bulk operation needs:

- load: columns transmitted into the staging relation
- insert: columns written into the target on insert (no identity, no timestamp,
  no default-valued columns)
- compare: columns compared to detect changed rows
- update: columns assigned on update (the join key only when listed explicitly)
- output: columns read back from the staging output relation, timestamp last

plus the join :class:`KeySpec`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

from bulkmap.config.errors import InvalidBulkConfigError, UnknownPropertyError

from .values import is_unset, is_uuid_type

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from bulkmap.config.bulk import BulkConfig

    from .facts import ColumnFact, OwnedMember, RelationFacts
    from .operations import OperationType

log = logging.getLogger(__name__)

RoleSet: TypeAlias = "dict[str, str]"


@dataclass(frozen=True, slots=True)
class KeySpec:
    """Ordered property → column join key for set operations."""

    columns: dict[str, str] = field(default_factory=dict[str, str])
    is_match_by: bool = False

    @property
    def property_names(self) -> tuple[str, ...]:
        return tuple(self.columns)

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(self.columns.values())

    def __bool__(self) -> bool:
        return bool(self.columns)

    def __contains__(self, property_name: object) -> bool:
        return property_name in self.columns


@dataclass(frozen=True, slots=True, kw_only=True)
class Classification:
    load_set: RoleSet
    insert_set: RoleSet
    compare_set: RoleSet
    update_set: RoleSet
    output_set: RoleSet
    key: KeySpec
    primary_key: RoleSet
    default_value_properties: frozenset[str]
    shadow_columns: frozenset[str]
    key_is_nullable: bool
    properties_to_include: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class _RoleFilter:
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()

    @property
    def is_set(self) -> bool:
        return bool(self.include or self.exclude)

    def allows(self, name: str) -> bool:
        if self.include:
            return name in self.include
        if self.exclude:
            return name not in self.exclude
        return True


def classify(
    facts: RelationFacts,
    config: BulkConfig,
    *,
    entities: Sequence[Any] = (),
    operation: OperationType,
) -> Classification:
    """Build the role sets and join key for one operation."""

    config.validate()
    key = _key_spec(facts, config)
    if operation.requires_key and not key:
        raise InvalidBulkConfigError(
            "If no primary key is defined the operation requires 'update_by_properties'."
        )

    _validate_configured_names(facts, config)

    timestamp_name = facts.timestamp.property_name if facts.timestamp else None
    identity_name = facts.identity.property_name if facts.identity else None
    non_timestamp = [fact for fact in facts.columns if fact.property_name != timestamp_name]
    candidates = [fact for fact in non_timestamp if not fact.has_computed_expression]

    include = _effective_include(config, key)
    global_filter = _RoleFilter(include, config.properties_to_exclude)
    compare_filter = _RoleFilter(
        config.properties_to_include_on_compare, config.properties_to_exclude_on_compare
    )
    update_filter = _RoleFilter(
        config.properties_to_include_on_update, config.properties_to_exclude_on_update
    )

    writable = [fact for fact in candidates if global_filter.allows(fact.property_name)]
    if compare_filter.is_set:
        compare = [fact for fact in candidates if compare_filter.allows(fact.property_name)]
    else:
        compare = writable
    # an explicit update list is taken as given, the default leaves out the join key
    if update_filter.is_set:
        update = [fact for fact in candidates if update_filter.allows(fact.property_name)]
    else:
        update = [fact for fact in writable if fact.property_name not in key]

    default_values = _default_value_properties(non_timestamp, key, entities)

    if operation.loads_only_key:
        load = [fact for fact in writable if fact.property_name in key]
    else:
        load = writable
    insert = [
        fact
        for fact in load
        if fact.property_name != identity_name and fact.property_name not in default_values
    ]

    load_set = _role_set(load)
    insert_set = _role_set(insert)
    compare_set = _role_set(compare)
    update_set = _role_set(update)
    output_set = _role_set(non_timestamp)

    if not operation.loads_only_key:
        for path, column in _owned_entries(facts.owned_members):
            if not global_filter.allows(path):
                continue
            load_set[path] = column
            insert_set[path] = column
            output_set[path] = column
            if compare_filter.allows(path):
                compare_set[path] = column
            if update_filter.allows(path):
                update_set[path] = column

    if facts.timestamp is not None:
        output_set[facts.timestamp.property_name] = facts.timestamp.column_name

    shadow_columns = frozenset(
        fact.column_name for fact in load if fact.is_shadow and not fact.is_foreign_key
    )
    key_is_nullable = any(fact.is_nullable for fact in candidates if fact.property_name in key)

    log.debug(
        "Classified %s: insert=%s compare=%s update=%s key=%s defaults=%s",
        facts.metadata.name,
        list(insert_set),
        list(compare_set),
        list(update_set),
        list(key.columns),
        sorted(default_values),
    )

    return Classification(
        load_set=load_set,
        insert_set=insert_set,
        compare_set=compare_set,
        update_set=update_set,
        output_set=output_set,
        key=key,
        primary_key=_role_set(facts.primary_key),
        default_value_properties=frozenset(default_values),
        shadow_columns=shadow_columns,
        key_is_nullable=key_is_nullable,
        properties_to_include=include,
    )


def known_property_names(facts: RelationFacts) -> frozenset[str]:
    """Names a configuration list may refer to."""

    names = {fact.property_name for fact in facts.columns}
    names.update(navigation.name for navigation in facts.navigations)
    names.update(path for path, _column in _owned_entries(facts.owned_members))
    if facts.timestamp is not None:
        names.add(facts.timestamp.property_name)
    return frozenset(names)


def _key_spec(facts: RelationFacts, config: BulkConfig) -> KeySpec:
    if not config.update_by_properties:
        return KeySpec({fact.property_name: fact.column_name for fact in facts.primary_key})

    columns: dict[str, str] = {}
    for name in config.update_by_properties:
        fact = facts.column_for(name)
        if fact is None:
            raise UnknownPropertyError(name, "update_by_properties")
        columns[name] = fact.column_name
    return KeySpec(columns, is_match_by=True)


def _effective_include(config: BulkConfig, key: KeySpec) -> tuple[str, ...]:
    """The include list with the join key merged in; a key is always transmitted."""

    if not config.properties_to_include:
        return ()
    include = list(config.properties_to_include)
    include.extend(name for name in key.property_names if name not in include)
    return tuple(include)


def _validate_configured_names(facts: RelationFacts, config: BulkConfig) -> None:
    known = known_property_names(facts)
    for list_name in (
        "properties_to_include",
        "properties_to_exclude",
        "properties_to_include_on_compare",
        "properties_to_exclude_on_compare",
        "properties_to_include_on_update",
        "properties_to_exclude_on_update",
    ):
        names: tuple[str, ...] = getattr(config, list_name)
        for name in names:
            if name in known or name in config.temporal_columns:
                continue
            if name == "" and list_name == "properties_to_include_on_update":
                # an empty name turns the update into a no-op
                continue
            if "." in name and _is_external_owned_path(facts, name):
                continue
            raise UnknownPropertyError(name, list_name)


def _is_external_owned_path(facts: RelationFacts, name: str) -> bool:
    navigation = facts.navigation_named(name.split(".", 1)[0])
    if navigation is None or not navigation.is_owned:
        return False
    return navigation.is_collection or not navigation.same_relation


def _default_value_properties(
    facts: Iterable[ColumnFact],
    key: KeySpec,
    entities: Sequence[Any],
) -> set[str]:
    """Properties the database should fill in for this batch.

    All or nothing: a property is left out of the insert only when every entity
    holds its unset value, since one statement cannot mix both shapes. UUID keys
    with a database default are always left out.
    """

    default_values: set[str] = set()
    for fact in facts:
        if not fact.has_database_default:
            continue
        name = fact.property_name
        if name in key and is_uuid_type(fact.python_type):
            default_values.add(name)
            continue
        if all(is_unset(getattr(entity, name, None), fact.python_type) for entity in entities):
            default_values.add(name)
    return default_values


def _owned_entries(
    members: Iterable[OwnedMember],
    prefix: str = "",
) -> Iterable[tuple[str, str]]:
    for member in members:
        path = f"{prefix}{member.name}"
        for fact in member.facts:
            yield f"{path}.{fact.property_name}", fact.column_name
        yield from _owned_entries(member.nested, prefix=f"{path}.")


def _role_set(facts: Iterable[ColumnFact]) -> RoleSet:
    return {fact.property_name: fact.column_name for fact in facts}
