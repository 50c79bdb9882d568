from __future__ import annotations

from bulkmap.domain.accessors import AccessorTable, attribute_accessor
from bulkmap.domain.keys import CompositeKey, key_signature
from tests.helpers.entities import Order


def test_key_signature_joins_values_with_delimiter() -> None:
    assert key_signature([1, "x"]) == "1_x"
    assert key_signature([1, "x", None]) == "1_x_null"


def test_key_signature_flattens_arrays() -> None:
    assert key_signature([[1, 2, 3], "a"]) == "123_a"
    assert key_signature([b"\x01\x02"], delimiter="|") == "12"


def test_key_signature_collisions_are_kept() -> None:
    assert key_signature(["a_b", "c"]) == key_signature(["a", "b_c"])
    assert CompositeKey.of(["a_b", "c"]) != CompositeKey.of(["a", "b_c"])


def test_composite_key_uses_structural_equality() -> None:
    lookup = {CompositeKey.of([1, "2"]): "first"}

    assert lookup[CompositeKey.of((1, "2"))] == "first"
    assert CompositeKey.of([12, ""]) not in lookup
    assert CompositeKey.of([[1, 2]]) == CompositeKey.of([(1, 2)])


def test_composite_key_from_entity_and_row_match() -> None:
    accessors = AccessorTable([attribute_accessor("id", int), attribute_accessor("code", str)])
    order = Order(id=3, code="C")

    from_entity = CompositeKey.from_entity(order, ["id", "code"], accessors)
    from_row = CompositeKey.from_row({"Id": 3, "Code": "C", "Other": 1}, ["Id", "Code"])

    assert from_entity == from_row
    assert from_row.signature() == "3_C"
