"""Mapping resolution and output reconciliation for bulk operations."""

from __future__ import annotations

from .accessors import AccessorTable, PropertyAccessor, build_accessor_table
from .classify import Classification, KeySpec, classify, known_property_names
from .facts import ColumnFact, IdentitySpec, OwnedMember, RelationFacts, RelationName, TimestampSpec
from .introspect import DataShapeError, check_staging_transaction, introspect
from .keys import CompositeKey, key_signature
from .mapping import ResolvedMapping, StagingNames, resolve_mapping, resolve_staging_names
from .metadata import (
    MetadataProvider,
    NavigationMetadata,
    PropertyMetadata,
    ProviderName,
    StaticMetadataProvider,
    TypeMetadata,
    ValueGeneration,
)
from .operations import OperationType
from .ports import AsyncOutputReader, OutputReader
from .read import configure_bulk_read, update_read_entities
from .reconcile import (
    OperationResult,
    OutputReconciler,
    ReconciliationRecord,
    SkipInfo,
    StatsInfo,
)
from .transfer import ProgressReporter, TransferSettings, iter_transfer_rows, progress_fraction

__all__ = [
    "AccessorTable",
    "AsyncOutputReader",
    "Classification",
    "ColumnFact",
    "CompositeKey",
    "DataShapeError",
    "IdentitySpec",
    "KeySpec",
    "MetadataProvider",
    "NavigationMetadata",
    "OperationResult",
    "OperationType",
    "OutputReader",
    "OutputReconciler",
    "OwnedMember",
    "ProgressReporter",
    "PropertyAccessor",
    "PropertyMetadata",
    "ProviderName",
    "ReconciliationRecord",
    "RelationFacts",
    "RelationName",
    "ResolvedMapping",
    "SkipInfo",
    "StagingNames",
    "StaticMetadataProvider",
    "StatsInfo",
    "TimestampSpec",
    "TransferSettings",
    "TypeMetadata",
    "ValueGeneration",
    "build_accessor_table",
    "check_staging_transaction",
    "classify",
    "configure_bulk_read",
    "introspect",
    "iter_transfer_rows",
    "key_signature",
    "known_property_names",
    "progress_fraction",
    "resolve_mapping",
    "resolve_staging_names",
    "update_read_entities",
]
