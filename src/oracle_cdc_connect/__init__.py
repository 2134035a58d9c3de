"""Oracle CDC Connect

Trigger based change data capture for Oracle tables: change logging setup,
initial loads and watermark driven delta polls.
"""

from .client import OracleClient, OracleConfig
from .changelog import ChangeLog
from .directory import MappingDirectory
from .models import ChangeKind, ChangeLogRow, ProducerState, TableImport
from .producer import (
    ChangeSink,
    OracleProducer,
    ProducerConfig,
    enable_change_logging,
    render_trigger_script,
)
from .mapping import (
    CanonicalSchema,
    CanonicalType,
    ColumnMapping,
    MappingBundle,
    MappingStore,
    TableMapping,
    TriggerSet,
    build_bundle,
    canonical_type,
)
from .sources.oracle import OracleDiscovery
from .discovery.base import TableSelector, TableInfo, ColumnInfo
from .exceptions import (
    ConnectorError,
    SetupError,
    UnsupportedTypeError,
    UnhandledColumnTypeError,
    ValueConversionError,
    PollError,
    InitialLoadError,
    MappingValidationError,
    MappingDefinitionError,
    DiscoveryError,
    ProducerStateError,
    ClientConnectionError,
)

__all__ = [
    # Core components
    "OracleClient",
    "OracleConfig",
    "OracleProducer",
    "ProducerConfig",
    "ChangeSink",
    "ChangeLog",
    "MappingDirectory",
    "enable_change_logging",
    "render_trigger_script",

    # Mappings
    "TableMapping",
    "ColumnMapping",
    "MappingBundle",
    "MappingStore",
    "TriggerSet",
    "CanonicalSchema",
    "CanonicalType",
    "build_bundle",
    "canonical_type",

    # Discovery and selection
    "OracleDiscovery",
    "TableSelector",
    "TableInfo",
    "ColumnInfo",

    # Data models
    "ChangeKind",
    "ChangeLogRow",
    "ProducerState",
    "TableImport",

    # Errors
    "ConnectorError",
    "SetupError",
    "UnsupportedTypeError",
    "UnhandledColumnTypeError",
    "ValueConversionError",
    "PollError",
    "InitialLoadError",
    "MappingValidationError",
    "MappingDefinitionError",
    "DiscoveryError",
    "ProducerStateError",
    "ClientConnectionError",
]

__version__ = "0.1.0"
