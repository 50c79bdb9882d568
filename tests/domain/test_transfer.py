from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from bulkmap.config import BulkConfig
from bulkmap.domain.mapping import resolve_mapping
from bulkmap.domain.operations import OperationType
from bulkmap.domain.transfer import (
    ProgressReporter,
    TransferSettings,
    iter_transfer_rows,
    progress_fraction,
)
from tests.helpers.entities import EVENT_METADATA, Event, Order, make_orders, make_provider


def test_progress_fraction_rounds_half_to_even() -> None:
    assert progress_fraction(3, 1) == Decimal("0.3333")
    assert progress_fraction(3, 2) == Decimal("0.6667")
    assert progress_fraction(20000, 1) == Decimal("0.0000")
    assert progress_fraction(20000, 3) == Decimal("0.0002")
    assert progress_fraction(4, 4) == Decimal("1.0000")


def test_progress_fraction_of_empty_batch_is_complete() -> None:
    assert progress_fraction(0, 0) == Decimal("1.0000")


def test_progress_reporter_notifies_every_interval_and_at_the_end() -> None:
    seen: list[Decimal] = []
    reporter = ProgressReporter(total=5, notify_after=2, callback=seen.append)

    for _ in range(5):
        reporter.advance()
    reporter.finish()

    assert seen == [Decimal("0.4000"), Decimal("0.8000"), Decimal("1.0000")]


def test_progress_reporter_skips_final_call_on_exact_interval() -> None:
    seen: list[Decimal] = []
    reporter = ProgressReporter(total=4, notify_after=2, callback=seen.append)

    reporter.advance(4)
    reporter.finish()

    assert seen == [Decimal("1.0000")]


def test_transfer_settings_target_staging_when_loading_to_staging() -> None:
    config = BulkConfig(batch_size=10, bulk_copy_timeout=30)
    mapping = resolve_mapping(
        make_provider(), Order, make_orders(2, start_id=1), OperationType.UPDATE, config
    )

    settings = TransferSettings.from_mapping(mapping)

    assert settings.table_name == mapping.staging.table_name
    assert settings.batch_size == 10
    assert settings.notify_after == 10
    assert settings.timeout == 30
    assert settings.column_mappings["id"] == "Id"
    assert settings.column_mappings["address.city"] == "Address_City"


def test_transfer_settings_target_relation_for_direct_insert() -> None:
    mapping = resolve_mapping(make_provider(), Order, make_orders(2), OperationType.INSERT)

    settings = TransferSettings.from_mapping(mapping)

    assert settings.table_name == "Orders"
    assert "id" not in settings.column_mappings
    assert "status" not in settings.column_mappings


def test_iter_transfer_rows_rounds_reduced_precision_datetimes() -> None:
    events = [Event(id=1, at=datetime(2024, 1, 1, 12, 0, 0, 123500))]
    mapping = resolve_mapping(
        make_provider(EVENT_METADATA),
        Event,
        events,
        OperationType.UPDATE,
        BulkConfig(datetime2_precision_force_round=True),
    )
    seen: list[Decimal] = []
    progress = ProgressReporter(total=1, notify_after=5, callback=seen.append)

    rows = list(iter_transfer_rows(mapping, events, progress=progress))

    assert rows == [{"Id": 1, "At": datetime(2024, 1, 1, 12, 0, 0, 124000)}]
    assert seen == [Decimal("1.0000")]


def test_iter_transfer_rows_skips_shadow_columns() -> None:
    orders = make_orders(1, start_id=5)
    mapping = resolve_mapping(make_provider(), Order, orders, OperationType.UPDATE)

    (row,) = iter_transfer_rows(mapping, orders)

    assert row["Id"] == 5
    assert row["Address_Street"] == "Street 0"
    assert "Tenant" not in row
    assert "CustomerId" not in row
