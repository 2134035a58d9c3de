"""Data models shared across the change capture components."""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel


class ChangeKind(str, Enum):
    """Kind of change handed to the sink."""

    INSERT = "INSERT"
    UPSERT = "UPSERT"
    DELETE = "DELETE"

    @classmethod
    def from_indicator(cls, indicator: str) -> "ChangeKind":
        """Translate the change indicator column of a generated select."""
        if indicator == "D":
            return cls.DELETE
        if indicator == "I":
            return cls.INSERT
        return cls.UPSERT


class ProducerState(str, Enum):
    """Lifecycle states of a producer."""

    UNINITIALIZED = "uninitialized"
    LOGGING_STARTED = "logging_started"
    INITIAL_LOAD_IN_FLIGHT = "initial_load_in_flight"
    POLLING_IDLE = "polling_idle"
    POLL_IN_FLIGHT = "poll_in_flight"
    CLOSED = "closed"


@dataclass(frozen=True)
class ChangeLogRow:
    """One row of the shared change log table."""
    change_ts: Optional[datetime]
    schema_name: str
    table_name: str
    change_type: str  # I, U or D
    primary_key: Tuple[Optional[str], ...]
    scn: int
    execution_order: Optional[int] = None
    processed_seq: Optional[int] = None

    @property
    def qualified_table_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


class TableImport(BaseModel):
    """A source table offered for import as a mapping."""

    owner: str
    table_name: str
    mapping_name: Optional[str] = None
    imported: bool = False

    def model_post_init(self, __context) -> None:
        if not self.mapping_name:
            self.mapping_name = f"{self.owner}_{self.table_name}"

    @property
    def qualified_name(self) -> str:
        """Get fully qualified table name."""
        return f"{self.owner}.{self.table_name}"
