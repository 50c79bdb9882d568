"""Bulk read: load keys into staging, join back and copy fetched values onto entities."""

from __future__ import annotations

import logging
from dataclasses import replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from .keys import CompositeKey
from .metadata import ProviderName

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .mapping import ResolvedMapping

log = logging.getLogger(__name__)


def configure_bulk_read(mapping: ResolvedMapping) -> ResolvedMapping:
    """Return a copy of ``mapping`` that loads only the key into staging."""

    key_columns = dict(mapping.key.columns)
    config = mapping.config.with_changes(
        properties_to_include=mapping.key.property_names,
        properties_to_exclude=(),
    )
    return replace(
        mapping,
        config=config,
        load_to_staging=True,
        load_set=MappingProxyType(key_columns),
        insert_set=MappingProxyType(dict(key_columns)),
    )


def read_property_names(mapping: ResolvedMapping) -> list[str]:
    """Properties copied on read; owned members travel as whole values."""

    owned = {member.name for member in mapping.owned_members}
    names = [
        name
        for name in mapping.load_set
        if name.split(".", 1)[0] not in owned and name in mapping.accessors
    ]
    names.extend(member.name for member in mapping.owned_members)
    return names


def update_read_entities(
    mapping: ResolvedMapping,
    entities: Sequence[Any],
    existing: Sequence[Any],
) -> int:
    """Copy fetched values from ``existing`` onto the matching caller ``entities``.

    Entities are matched on the join key. PostgreSQL's binary copy keeps the load
    order, so there an unmatched entity falls back to the row at its position.
    Returns how many entities were updated.
    """

    accessors = mapping.accessors
    key_names = mapping.key.property_names
    names = read_property_names(mapping)

    fetched: dict[CompositeKey, Any] = {}
    for row in existing:
        fetched.setdefault(CompositeKey.from_entity(row, key_names, accessors), row)

    positional = mapping.provider_name == ProviderName.POSTGRESQL.value
    updated = 0
    for index, entity in enumerate(entities):
        source = fetched.get(CompositeKey.from_entity(entity, key_names, accessors))
        if source is None and positional and index < len(existing):
            source = existing[index]
        if source is None:
            continue
        accessors.copy_values(source, entity, names)
        updated += 1

    log.debug("Bulk read matched %d of %d entities", updated, len(entities))
    return updated
