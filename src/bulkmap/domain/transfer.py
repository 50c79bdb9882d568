"""Settings handed to the native bulk-transfer channel, plus progress reporting."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final, TypeAlias

from .values import round_datetime

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping

    from .mapping import ResolvedMapping

PROGRESS_QUANTUM: Final[Decimal] = Decimal("0.0001")

ProgressCallback: TypeAlias = "Callable[[Decimal], None]"


def progress_fraction(total: int, copied: int) -> Decimal:
    """Completed share of ``total`` rounded half-to-even to four places."""

    if total <= 0:
        return Decimal(1).quantize(PROGRESS_QUANTUM)
    return (Decimal(copied) / Decimal(total)).quantize(PROGRESS_QUANTUM, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True, slots=True, kw_only=True)
class TransferSettings:
    table_name: str
    schema: str | None
    batch_size: int
    notify_after: int
    timeout: int | None
    enable_streaming: bool
    column_mappings: Mapping[str, str]

    @classmethod
    def from_mapping(cls, mapping: ResolvedMapping) -> TransferSettings:
        config = mapping.config
        if mapping.load_to_staging:
            table_name = mapping.staging.table_name
            schema = None if mapping.staging.session_local else mapping.staging.schema
            columns = mapping.load_set
        else:
            table_name = mapping.relation.table
            schema = mapping.relation.schema
            columns = mapping.insert_set
        return cls(
            table_name=table_name,
            schema=schema,
            batch_size=config.batch_size,
            notify_after=config.notify_after or config.batch_size,
            timeout=config.bulk_copy_timeout,
            enable_streaming=config.enable_streaming,
            column_mappings=MappingProxyType(dict(columns)),
        )


class ProgressReporter:
    """Invokes ``callback`` every ``notify_after`` rows and once at the end."""

    def __init__(self, total: int, notify_after: int, callback: ProgressCallback | None) -> None:
        self.total = total
        self.notify_after = notify_after
        self.callback = callback
        self.copied = 0

    def advance(self, rows: int = 1) -> None:
        before = self.copied // self.notify_after
        self.copied += rows
        if self.callback is not None and self.copied // self.notify_after > before:
            self.callback(progress_fraction(self.total, self.copied))

    def finish(self) -> None:
        if self.callback is not None and self.copied % self.notify_after:
            self.callback(progress_fraction(self.total, self.copied))


def iter_transfer_rows(
    mapping: ResolvedMapping,
    entities: Iterable[Any],
    *,
    progress: ProgressReporter | None = None,
) -> Iterator[dict[str, Any]]:
    """Yield one ``column -> value`` dict per entity for the transfer channel.

    Datetimes in reduced-precision columns are rounded in memory because the
    loader would otherwise truncate them.
    """

    settings = TransferSettings.from_mapping(mapping)
    accessors = mapping.accessors
    precision = mapping.datetime_precision
    for entity in entities:
        row: dict[str, Any] = {}
        for property_name, column in settings.column_mappings.items():
            if property_name not in accessors:
                # shadow columns are filled by the database
                continue
            value = accessors.get_value(entity, property_name)
            if property_name in precision:
                value = round_datetime(value, precision[property_name])
            row[column] = value
        yield row
        if progress is not None:
            progress.advance()
    if progress is not None:
        progress.finish()
