from __future__ import annotations

from decimal import Decimal

from bulkmap.config import BulkConfig
from bulkmap.domain.mapping import resolve_mapping
from bulkmap.domain.metadata import ProviderName
from bulkmap.domain.operations import OperationType
from bulkmap.domain.read import configure_bulk_read, read_property_names, update_read_entities
from tests.helpers.entities import Address, Order, make_orders, make_provider


def _read_mapping(entities: list[Order], provider_name: str = ProviderName.SQLITE.value):
    provider = make_provider(provider_name=provider_name)
    return resolve_mapping(provider, Order, entities, OperationType.READ)


def test_configure_bulk_read_loads_only_the_key() -> None:
    mapping = _read_mapping([Order(id=1)])

    configured = configure_bulk_read(mapping)

    assert configured.load_to_staging
    assert dict(configured.load_set) == {"id": "Id"}
    assert dict(configured.insert_set) == {"id": "Id"}
    assert configured.config.properties_to_include == ("id",)
    assert "code" in mapping.load_set


def test_configure_bulk_read_uses_match_by_properties() -> None:
    provider = make_provider()
    mapping = resolve_mapping(
        provider,
        Order,
        [Order(code="A")],
        OperationType.READ,
        BulkConfig(update_by_properties=("code",)),
    )

    configured = configure_bulk_read(mapping)

    assert dict(configured.load_set) == {"code": "Code"}


def test_read_property_names_keep_owned_members_whole() -> None:
    names = read_property_names(_read_mapping([Order(id=1)]))

    assert "address" in names
    assert "address.street" not in names
    assert "tenant" not in names
    assert {"id", "code", "amount"} <= set(names)


def test_update_read_entities_copies_matched_values() -> None:
    entities = [Order(id=2), Order(id=1), Order(id=9)]
    existing = make_orders(2, start_id=1)

    updated = update_read_entities(_read_mapping(entities), entities, existing)

    assert updated == 2
    assert entities[0].code == "O-1"
    assert entities[0].amount == Decimal(1)
    assert entities[1].address == Address(street="Street 0", city="Vienna")
    assert entities[2].code is None


def test_update_read_entities_falls_back_to_position_on_postgresql() -> None:
    entities = [Order(id=7)]
    existing = [Order(id=8, code="fetched")]
    mapping = _read_mapping(entities, ProviderName.POSTGRESQL.value)

    assert update_read_entities(mapping, entities, existing) == 1
    assert entities[0].code == "fetched"


def test_update_read_entities_without_match_leaves_entities_alone() -> None:
    entities = [Order(id=7)]
    existing = [Order(id=8, code="fetched")]

    assert update_read_entities(_read_mapping(entities), entities, existing) == 0
    assert entities[0].code is None
