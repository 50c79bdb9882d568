from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from bulkmap.config import BulkConfig, InvalidBulkConfigError
from bulkmap.domain.facts import (
    ColumnFact,
    IdentitySpec,
    RelationFacts,
    RelationName,
    TimestampSpec,
)
from bulkmap.domain.introspect import DataShapeError, detect_identity, introspect
from bulkmap.domain.metadata import ProviderName, StaticMetadataProvider, ValueGeneration
from bulkmap.domain.operations import OperationType
from tests.helpers.entities import (
    ANIMAL_METADATA,
    DOG_METADATA,
    EVENT_METADATA,
    Animal,
    Dog,
    Event,
    Order,
    make_orders,
    make_provider,
    order_metadata,
)


def _facts(
    provider: StaticMetadataProvider | None = None,
    entity_type: type | None = Order,
    entities: list[Any] | None = None,
    operation: OperationType = OperationType.INSERT,
    **config: Any,
) -> RelationFacts:
    return introspect(
        provider or make_provider(),
        entity_type,
        entities if entities is not None else make_orders(2),
        operation,
        BulkConfig(**config),
    )


def test_introspect_collects_mapped_columns() -> None:
    facts = _facts()

    names = [fact.column_name for fact in facts.columns]
    assert names == ["Id", "Code", "Amount", "Status", "Total", "CustomerId", "Tenant", "Version"]
    assert [fact.property_name for fact in facts.primary_key] == ["id"]
    assert facts.relation == RelationName("Orders")
    assert facts.entity_type is Order
    assert not facts.has_abstract_list


def test_introspect_detects_identity_and_timestamp() -> None:
    facts = _facts()

    assert facts.identity == IdentitySpec("id", "Id", int)
    assert facts.timestamp == TimestampSpec("version", "Version")


def test_introspect_ignores_row_version_when_configured() -> None:
    facts = _facts(ignore_row_version=True)

    assert facts.timestamp is None


def test_introspect_uses_default_schema_for_sqlserver() -> None:
    provider = make_provider(provider_name=ProviderName.SQLSERVER.value)

    facts = _facts(provider)

    assert facts.relation == RelationName("Orders", "dbo")
    assert str(facts.relation) == "dbo.Orders"


def test_introspect_prefers_custom_destination_table() -> None:
    facts = _facts(custom_destination_table_name="sales.OrdersArchive")

    assert facts.relation == RelationName("OrdersArchive", "sales")


def test_introspect_collects_same_relation_owned_members() -> None:
    facts = _facts()

    assert [member.name for member in facts.owned_members] == ["address"]
    member = facts.owned_members[0]
    assert [fact.column_name for fact in member.facts] == ["Address_Street", "Address_City"]


def test_introspect_unions_properties_of_derived_types() -> None:
    provider = make_provider(ANIMAL_METADATA, DOG_METADATA)

    facts = _facts(provider, entity_type=Animal, entities=[Dog(name="Rex")])

    assert [fact.column_name for fact in facts.columns] == ["Id", "Name", "GoodBoy"]


def test_introspect_falls_back_to_first_entity_type() -> None:
    provider = make_provider(ANIMAL_METADATA, DOG_METADATA)

    facts = _facts(provider, entity_type=None, entities=[Dog(name="Rex")])

    assert facts.entity_type is Dog
    assert facts.has_abstract_list


def test_introspect_rejects_empty_batch_without_type() -> None:
    with pytest.raises(DataShapeError, match="Cannot infer the entity type"):
        _facts(entity_type=None, entities=[])


def test_introspect_rejects_unmapped_type() -> None:
    with pytest.raises(DataShapeError, match="No mapping registered"):
        _facts(entity_type=None, entities=[object()])


def test_introspect_skips_temporal_shadow_columns() -> None:
    provider = make_provider(EVENT_METADATA)

    facts = _facts(provider, entity_type=Event, entities=[Event(at=datetime(2024, 1, 1))])

    assert [fact.column_name for fact in facts.columns] == ["Id", "At"]
    assert facts.has_temporal_columns


def test_introspect_records_reduced_datetime_precision() -> None:
    provider = make_provider(EVENT_METADATA)

    facts = _facts(
        provider,
        entity_type=Event,
        entities=[Event()],
        datetime2_precision_force_round=True,
    )

    assert facts.datetime_precision == {"at": 3}


def test_native_identity_strategy_decides_on_postgresql() -> None:
    provider = make_provider(
        order_metadata(native_identity=False),
        provider_name=ProviderName.POSTGRESQL.value,
    )

    assert _facts(provider).identity is None

    provider = make_provider(
        order_metadata(native_identity=True),
        provider_name=ProviderName.POSTGRESQL.value,
    )

    assert _facts(provider).identity == IdentitySpec("id", "Id", int)


def test_detect_identity_skips_bool_and_ambiguous_keys() -> None:
    flag = ColumnFact(
        property_name="flag",
        column_name="Flag",
        python_type=bool,
        is_key=True,
        value_generation=ValueGeneration.ON_ADD,
    )
    first = ColumnFact(
        property_name="a",
        column_name="A",
        python_type=int,
        is_key=True,
        value_generation=ValueGeneration.ON_ADD,
    )
    second = ColumnFact(
        property_name="b",
        column_name="B",
        python_type=int,
        is_key=True,
        value_generation=ValueGeneration.ON_ADD,
    )

    assert detect_identity([flag], ProviderName.SQLITE.value) is None
    assert detect_identity([first, second], ProviderName.SQLITE.value) is None
    assert detect_identity([first], ProviderName.SQLITE.value) == IdentitySpec("a", "A", int)


def test_temp_staging_requires_transaction_for_updates() -> None:
    with pytest.raises(InvalidBulkConfigError, match="inside a transaction"):
        _facts(operation=OperationType.INSERT_OR_UPDATE, use_temp_db=True)


def test_temp_staging_allowed_for_plain_insert_or_open_transaction() -> None:
    _facts(operation=OperationType.INSERT, use_temp_db=True)
    _facts(operation=OperationType.UPDATE, use_temp_db=True, custom_source_table_name="Src")
    introspect(
        make_provider(),
        Order,
        make_orders(1),
        OperationType.UPDATE,
        BulkConfig(use_temp_db=True),
        in_transaction=True,
    )

    with pytest.raises(InvalidBulkConfigError):
        _facts(operation=OperationType.INSERT, use_temp_db=True, set_output_identity=True)
