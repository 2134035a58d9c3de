"""Source catalog discovery."""

from .base import ColumnInfo, DatabaseDiscovery, TableInfo, TableSelector

__all__ = ["ColumnInfo", "DatabaseDiscovery", "TableInfo", "TableSelector"]
