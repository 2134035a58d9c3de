"""Table mappings and everything derived from them."""

from .types import CanonicalKind, CanonicalType, canonical_type, convert_cell, convert_row
from .schema import CanonicalField, CanonicalSchema, SOURCE_ROWID_FIELD, build_schema
from .table_mapping import (
    MAX_PK_COLUMNS,
    ColumnMapping,
    MappingBundle,
    TableMapping,
    build_bundle,
)
from .sql import build_delta_select, build_initial_select
from .triggers import TriggerSet
from .store import MappingStore

__all__ = [
    "CanonicalKind",
    "CanonicalType",
    "canonical_type",
    "convert_cell",
    "convert_row",
    "CanonicalField",
    "CanonicalSchema",
    "SOURCE_ROWID_FIELD",
    "build_schema",
    "MAX_PK_COLUMNS",
    "ColumnMapping",
    "MappingBundle",
    "TableMapping",
    "build_bundle",
    "build_delta_select",
    "build_initial_select",
    "TriggerSet",
    "MappingStore",
]
