"""Base classes for source catalog discovery."""

from __future__ import annotations
import fnmatch
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from ..mapping.table_mapping import TableMapping


@dataclass
class TableInfo:
    """Information about a discoverable table."""
    schema_name: str
    table_name: str

    @property
    def qualified_name(self) -> str:
        """Get fully qualified table name."""
        return f"{self.schema_name}.{self.table_name}"


@dataclass
class ColumnInfo:
    """Information about a table column."""
    column_name: str
    data_type: str  # type descriptor, e.g. NUMBER(10, 2)
    is_nullable: bool
    is_primary_key: bool = False
    ordinal_position: int = 0
    pk_position: Optional[int] = None


class TableSelector:
    """Utility for selecting tables based on patterns."""

    def __init__(self, include_all: bool = False, include_patterns: Optional[List[str]] = None,
                 exclude_patterns: Optional[List[str]] = None, specific_tables: Optional[List[str]] = None):
        self.include_all = include_all
        self.include_patterns = include_patterns or []
        self.exclude_patterns = exclude_patterns or []
        self.specific_tables = specific_tables or []

    def select_tables(self, available_tables: List[TableInfo]) -> List[TableInfo]:
        """Select tables based on configured patterns.

        Specific tables must be among the available ones, triggers can only
        be created on existing tables.
        """
        if self.specific_tables:
            selected = []
            for name in self.specific_tables:
                for table in available_tables:
                    if table.qualified_name == name or table.table_name == name:
                        selected.append(table)
                        break
            return selected

        if self.include_all:
            selected = available_tables.copy()
        else:
            selected = [
                table for table in available_tables
                if any(self._matches(table, pattern) for pattern in self.include_patterns)
            ]

        if self.exclude_patterns:
            selected = [
                table for table in selected
                if not any(self._matches(table, pattern) for pattern in self.exclude_patterns)
            ]
        return selected

    def _matches(self, table: TableInfo, pattern: str) -> bool:
        return self._matches_pattern(table.qualified_name, pattern) or self._matches_pattern(table.table_name, pattern)

    def _matches_pattern(self, name: str, pattern: str) -> bool:
        """Check if name matches pattern (supports * wildcards)."""
        return fnmatch.fnmatch(name.lower(), pattern.lower())


class DatabaseDiscovery(ABC):
    """Abstract base class for database discovery."""

    @abstractmethod
    def list_schemas(self) -> List[str]:
        """List all schemas holding user tables."""
        pass

    @abstractmethod
    def list_tables(self, schema_name: Optional[str] = None) -> List[TableInfo]:
        """List the tables triggers can be created on."""
        pass

    @abstractmethod
    def check_specific_tables(self, table_names: List[str], schema_name: Optional[str] = None) -> List[TableInfo]:
        """Check if specific tables exist and return their info.

        Args:
            table_names: List of table names to check (can include owner.table format)
            schema_name: Default owner if table names don't include one

        Returns:
            List of TableInfo for tables that exist
        """
        pass

    @abstractmethod
    def get_table_columns(self, schema_name: str, table_name: str) -> List[ColumnInfo]:
        """Get column information for a specific table."""
        pass

    @abstractmethod
    def build_table_mapping(self, schema_name: str, table_name: str,
                            mapping_name: Optional[str] = None) -> TableMapping:
        """Build a mapping with all columns and the primary key of a table."""
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test if connection to database is working."""
        pass
