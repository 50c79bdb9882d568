"""Bulk operation configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, Final

from .env import optional_env_bool, optional_env_int
from .errors import InvalidBulkConfigError, MultiplePropertyListSetError

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_BATCH_SIZE: Final[int] = 2000
DEFAULT_TEMPORAL_COLUMNS: Final[tuple[str, ...]] = ("PeriodStart", "PeriodEnd")

_PROPERTY_LIST_FIELDS: Final[tuple[str, ...]] = (
    "properties_to_include",
    "properties_to_exclude",
    "properties_to_include_on_compare",
    "properties_to_exclude_on_compare",
    "properties_to_include_on_update",
    "properties_to_exclude_on_update",
    "update_by_properties",
    "temporal_columns",
)


def _as_names(values: Iterable[str] | None) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(dict.fromkeys(values))


@dataclass(frozen=True, slots=True, kw_only=True)
class BulkConfig:
    """Immutable options for one bulk operation.

    Property lists are normalised to de-duplicated tuples on construction, and the
    include/exclude mutual exclusion is checked for every role before the value
    can be used anywhere.
    """

    use_temp_db: bool = False
    unique_table_name_temp_db: bool = True
    preserve_insert_order: bool = True
    set_output_identity: bool = False
    calculate_stats: bool = False
    ignore_row_version: bool = False
    properties_to_include: tuple[str, ...] = ()
    properties_to_exclude: tuple[str, ...] = ()
    properties_to_include_on_compare: tuple[str, ...] = ()
    properties_to_exclude_on_compare: tuple[str, ...] = ()
    properties_to_include_on_update: tuple[str, ...] = ()
    properties_to_exclude_on_update: tuple[str, ...] = ()
    update_by_properties: tuple[str, ...] = ()
    custom_source_table_name: str | None = None
    custom_destination_table_name: str | None = None
    temporal_columns: tuple[str, ...] = field(default=DEFAULT_TEMPORAL_COLUMNS)
    datetime2_precision_force_round: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    bulk_copy_timeout: int | None = None
    notify_after: int | None = None
    enable_streaming: bool = False

    def __post_init__(self) -> None:
        for name in _PROPERTY_LIST_FIELDS:
            object.__setattr__(self, name, _as_names(getattr(self, name)))
        self.validate()

    def validate(self) -> None:
        """Check invariants that hold independently of any entity type."""

        for include_name, exclude_name in (
            ("properties_to_include", "properties_to_exclude"),
            ("properties_to_include_on_compare", "properties_to_exclude_on_compare"),
            ("properties_to_include_on_update", "properties_to_exclude_on_update"),
        ):
            if getattr(self, include_name) and getattr(self, exclude_name):
                raise MultiplePropertyListSetError(include_name, exclude_name)

        if self.batch_size <= 0:
            raise InvalidBulkConfigError(f"batch_size must be positive, got {self.batch_size}")
        if self.notify_after is not None and self.notify_after <= 0:
            raise InvalidBulkConfigError(
                f"notify_after must be positive when set, got {self.notify_after}"
            )
        if self.bulk_copy_timeout is not None and self.bulk_copy_timeout < 0:
            raise InvalidBulkConfigError(
                f"bulk_copy_timeout must not be negative, got {self.bulk_copy_timeout}"
            )

    @property
    def creates_output_table(self) -> bool:
        return self.set_output_identity or self.calculate_stats

    def with_changes(self, **changes: Any) -> BulkConfig:
        """Return a copy with ``changes`` applied and re-validated."""

        return replace(self, **changes)


def get_bulk_config(**overrides: Any) -> BulkConfig:
    """Build a :class:`BulkConfig` from environment defaults and explicit overrides.

    Recognised variables: ``BULKMAP_BATCH_SIZE``, ``BULKMAP_BULK_COPY_TIMEOUT`` and
    ``BULKMAP_USE_TEMP_DB``. Keyword overrides always win over the environment.
    """

    known = {item.name for item in fields(BulkConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise InvalidBulkConfigError(f"Unknown bulk config options: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    batch_size = optional_env_int("BULKMAP_BATCH_SIZE")
    if batch_size is not None:
        values["batch_size"] = batch_size
    timeout = optional_env_int("BULKMAP_BULK_COPY_TIMEOUT")
    if timeout is not None:
        values["bulk_copy_timeout"] = timeout
    use_temp_db = optional_env_bool("BULKMAP_USE_TEMP_DB")
    if use_temp_db is not None:
        values["use_temp_db"] = use_temp_db

    values.update(overrides)
    return BulkConfig(**values)
