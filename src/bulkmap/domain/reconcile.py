"""Merge database-assigned values back into the caller's entities.

Runs after the bulk write. With ``preserve_insert_order`` the returned rows are
walked against the caller's list (or the recorded upsert ordering) and the
identity, the concurrency token and every database-computed column are written
onto the matching entity. Without it the caller's list is replaced by entities
materialised from the returned rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from .keys import CompositeKey
from .operations import OperationType
from .values import coerce_identity, is_unset, zero_value

if TYPE_CHECKING:
    from collections.abc import Iterable, MutableSequence, Sequence

    from .mapping import ResolvedMapping
    from .ports import AsyncOutputReader, OutputReader, OutputRow

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReconciliationRecord:
    """Where one returned row landed in the caller's list."""

    original_index: int
    key: CompositeKey
    generated_identity: Any = None
    generated_timestamp: Any = None


@dataclass(frozen=True, slots=True)
class SkipInfo:
    """Rows the database elided, e.g. on a concurrency token mismatch.

    The returned rows are exposed as-is since positions can no longer be matched.
    """

    skipped: int
    rows: tuple[OutputRow, ...] = ()


@dataclass(frozen=True, slots=True)
class StatsInfo:
    inserted: int
    updated: int
    deleted: int

    @classmethod
    def from_counts(cls, total: int, updated: int, deleted: int) -> StatsInfo:
        return cls(inserted=total - updated - deleted, updated=updated, deleted=deleted)


@dataclass(frozen=True, slots=True)
class OperationResult:
    rows_read: int = 0
    records: tuple[ReconciliationRecord, ...] = ()
    skip_info: SkipInfo | None = None
    stats: StatsInfo | None = None

    @property
    def is_partial(self) -> bool:
        return self.skip_info is not None


class OutputReconciler:
    """Order and identity reconciliation for one resolved mapping."""

    def __init__(self, mapping: ResolvedMapping) -> None:
        self._mapping = mapping
        self._ordering: list[Any] | None = None
        self._placeholder_name: str | None = None
        self._placeholders: set[int] = set()

    @property
    def mapping(self) -> ResolvedMapping:
        return self._mapping

    @property
    def ordering(self) -> list[Any] | None:
        """Entities in the order the staging output returns them, when recorded."""

        return self._ordering

    @property
    def identifier_property(self) -> str | None:
        """The identity property, else the first primary key property."""

        mapping = self._mapping
        if mapping.identity is not None:
            return mapping.property_for_column(mapping.identity.column_name)
        return next(iter(mapping.primary_key), None)

    @property
    def should_load_output(self) -> bool:
        mapping = self._mapping
        if not mapping.config.set_output_identity:
            return False
        identity = mapping.identity
        if identity is not None and identity.column_name in mapping.output_set.values():
            return True
        if not mapping.has_single_primary_key:
            return False
        return next(iter(mapping.primary_key)) in mapping.default_value_properties

    # placeholders

    def prepare_identities(self, entities: Sequence[Any]) -> None:
        """Give unset identities distinct negative placeholders ``-n .. -1``.

        For an upsert with output capture the order the staging output will use
        is recorded as well: pre-existing entities by identity, then new ones.
        """

        name = self._placeholder_property(entities)
        if name is None:
            return
        mapping = self._mapping
        python_type = mapping.accessors[name].python_type
        get_value = mapping.accessors[name].get
        set_value = mapping.accessors[name].set
        self._placeholder_name = name
        self._placeholders = set()

        record_order = mapping.config.set_output_identity and mapping.operation.is_update_family
        existing: list[tuple[Any, Any]] = []
        new: list[Any] = []
        placeholder = -len(entities)
        for entity in entities:
            value = get_value(entity)
            if is_unset(value, python_type):
                set_value(entity, coerce_identity(placeholder, python_type))
                self._placeholders.add(id(entity))
                placeholder += 1
                new.append(entity)
            else:
                existing.append((value, entity))

        if record_order:
            existing.sort(key=lambda pair: pair[0])
            self._ordering = [entity for _value, entity in existing] + new

    def reset_identities(self, entities: Sequence[Any]) -> None:
        """Return negative placeholders to the identity type's zero value.

        After :meth:`prepare_identities` only the entities it gave a placeholder are
        touched; explicit identities set by the caller are kept.
        """

        if self._placeholder_name is not None:
            name: str | None = self._placeholder_name
            targets = [entity for entity in entities if id(entity) in self._placeholders]
        else:
            name = self._placeholder_property(entities)
            targets = list(entities)
        if name is None:
            return
        accessor = self._mapping.accessors[name]
        zero = zero_value(accessor.python_type)
        for entity in targets:
            value = accessor.get(entity)
            if value is not None and value < 0:
                accessor.set(entity, zero)

    def _placeholder_property(self, entities: Sequence[Any]) -> str | None:
        mapping = self._mapping
        identity = mapping.identity
        if identity is None or not mapping.config.preserve_insert_order or len(entities) <= 1:
            return None
        if list(mapping.primary_key.values()) != [identity.column_name]:
            return None
        if identity.property_name not in mapping.accessors:
            return None
        if mapping.operation is OperationType.INSERT and self._has_explicit_identities(
            identity.property_name, entities
        ):
            log.debug("All %d entities carry explicit identities, keeping them", len(entities))
            return None
        return identity.property_name

    def _has_explicit_identities(self, name: str, entities: Sequence[Any]) -> bool:
        accessor = self._mapping.accessors[name]
        return not any(is_unset(accessor.get(entity), accessor.python_type) for entity in entities)

    # reconciliation

    def reconcile(
        self,
        entities: MutableSequence[Any],
        rows: Iterable[OutputRow],
    ) -> OperationResult:
        rows = tuple(rows)
        if not self._mapping.config.preserve_insert_order:
            entities[:] = [self.materialize(row) for row in rows]
            return OperationResult(rows_read=len(rows))

        skipped = len(entities) - len(rows)
        if skipped > 0:
            log.warning(
                "%d of %d rows were not written to %s, output values are not merged",
                skipped,
                len(entities),
                self._mapping.relation,
            )
            return OperationResult(rows_read=len(rows), skip_info=SkipInfo(skipped, rows))

        targets = self._ordering if self._ordering is not None else list(entities)
        positions = {id(entity): index for index, entity in enumerate(entities)}
        lookup = self._key_lookup(targets)
        key_names = self._mapping.key.property_names
        key_columns = self._mapping.key.column_names

        records: list[ReconciliationRecord] = []
        for index, row in enumerate(rows[: len(targets)]):
            if lookup is not None:
                entity = lookup.get(CompositeKey.from_row(row, key_columns))
                if entity is None:
                    log.warning("Output row has no matching entity by %s", list(key_names))
                    continue
            else:
                entity = targets[index]
            self._merge(entity, row)
            records.append(self._record(positions.get(id(entity), index), entity, row))
        return OperationResult(rows_read=len(rows), records=tuple(records))

    def materialize(self, row: OutputRow) -> Any:
        """Build a fresh entity from one output row."""

        mapping = self._mapping
        entity = mapping.new_entity()
        for property_name, column in mapping.output_set.items():
            if column in row and property_name in mapping.accessors:
                mapping.accessors.set_value(entity, property_name, row[column])
        return entity

    def _key_lookup(self, targets: Sequence[Any]) -> dict[CompositeKey, Any] | None:
        """Lookup by join key when the key differs from the identity during an upsert."""

        mapping = self._mapping
        identifier = self.identifier_property
        if identifier is None or not mapping.key or identifier in mapping.key:
            return None
        if not mapping.operation.is_update_family:
            return None
        names = mapping.key.property_names
        lookup: dict[CompositeKey, Any] = {}
        for entity in targets:
            key = CompositeKey.from_entity(entity, names, mapping.accessors)
            if key in lookup:
                log.warning(
                    "Duplicate %s value %s, only the first entity receives output values",
                    list(names),
                    key.values,
                )
                continue
            lookup[key] = entity
        return lookup

    def _merge(self, entity: Any, row: OutputRow) -> None:
        mapping = self._mapping
        identifier = self.identifier_property
        timestamp = mapping.timestamp.property_name if mapping.timestamp else None
        for property_name, column in mapping.output_set.items():
            if column not in row or property_name not in mapping.accessors:
                continue
            generated = (
                property_name in (identifier, timestamp)
                or property_name in mapping.default_value_properties
                or property_name not in mapping.insert_set
            )
            if generated:
                mapping.accessors.set_value(entity, property_name, row[column])

    def _record(self, index: int, entity: Any, row: OutputRow) -> ReconciliationRecord:
        mapping = self._mapping
        key = CompositeKey.from_row(row, mapping.key.column_names) if mapping.key else CompositeKey(())
        identity = mapping.identity.column_name if mapping.identity else None
        timestamp = mapping.timestamp.column_name if mapping.timestamp else None
        return ReconciliationRecord(
            original_index=index,
            key=key,
            generated_identity=row.get(identity) if identity else None,
            generated_timestamp=row.get(timestamp) if timestamp else None,
        )

    # output loading

    def load_output_data(
        self,
        reader: OutputReader,
        entities: MutableSequence[Any],
    ) -> OperationResult:
        result = OperationResult()
        total = len(entities)
        if self.should_load_output:
            rows = reader.read_output_rows()
            result = self.reconcile(entities, rows)
            total = len(rows)
        if self._mapping.config.calculate_stats:
            stats = StatsInfo.from_counts(total, reader.count_updated(), reader.count_deleted())
            result = replace(result, stats=stats)
        return result

    async def aload_output_data(
        self,
        reader: AsyncOutputReader,
        entities: MutableSequence[Any],
    ) -> OperationResult:
        result = OperationResult()
        total = len(entities)
        if self.should_load_output:
            rows = await reader.read_output_rows()
            result = self.reconcile(entities, rows)
            total = len(rows)
        if self._mapping.config.calculate_stats:
            updated = await reader.count_updated()
            deleted = await reader.count_deleted()
            result = replace(result, stats=StatsInfo.from_counts(total, updated, deleted))
        return result
