from __future__ import annotations

import pytest

from bulkmap.config import (
    DEFAULT_BATCH_SIZE,
    BulkConfig,
    InvalidBulkConfigError,
    MultiplePropertyListSetError,
    get_bulk_config,
)


def test_property_lists_are_normalised_to_unique_tuples() -> None:
    config = BulkConfig(
        properties_to_include=["code", "amount", "code"],  # type: ignore[arg-type]
        update_by_properties="code",  # type: ignore[arg-type]
    )

    assert config.properties_to_include == ("code", "amount")
    assert config.update_by_properties == ("code",)


def test_include_and_exclude_for_one_role_are_exclusive() -> None:
    with pytest.raises(MultiplePropertyListSetError) as excinfo:
        BulkConfig(
            properties_to_include_on_compare=("code",),
            properties_to_exclude_on_compare=("amount",),
        )

    assert excinfo.value.include_name == "properties_to_include_on_compare"


def test_different_roles_may_mix_include_and_exclude() -> None:
    config = BulkConfig(properties_to_include=("code",), properties_to_exclude_on_update=("code",))

    assert config.properties_to_exclude_on_update == ("code",)


@pytest.mark.parametrize(
    "changes",
    [{"batch_size": 0}, {"notify_after": 0}, {"bulk_copy_timeout": -1}],
)
def test_invalid_numbers_are_rejected(changes: dict[str, int]) -> None:
    with pytest.raises(InvalidBulkConfigError):
        BulkConfig(**changes)  # type: ignore[arg-type]


def test_with_changes_revalidates() -> None:
    config = BulkConfig(properties_to_include=("code",))

    assert config.with_changes(set_output_identity=True).creates_output_table
    with pytest.raises(MultiplePropertyListSetError):
        config.with_changes(properties_to_exclude=("amount",))


def test_get_bulk_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BULKMAP_BATCH_SIZE", "500")
    monkeypatch.setenv("BULKMAP_USE_TEMP_DB", "yes")
    monkeypatch.delenv("BULKMAP_BULK_COPY_TIMEOUT", raising=False)

    config = get_bulk_config(calculate_stats=True)

    assert config.batch_size == 500
    assert config.use_temp_db
    assert config.bulk_copy_timeout is None
    assert config.calculate_stats


def test_get_bulk_config_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BULKMAP_BATCH_SIZE", "500")

    assert get_bulk_config(batch_size=7).batch_size == 7


def test_get_bulk_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("BULKMAP_BATCH_SIZE", "BULKMAP_USE_TEMP_DB", "BULKMAP_BULK_COPY_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)

    assert get_bulk_config().batch_size == DEFAULT_BATCH_SIZE


def test_get_bulk_config_rejects_unknown_options() -> None:
    with pytest.raises(InvalidBulkConfigError, match="batchsize"):
        get_bulk_config(batchsize=1)
