"""Oracle catalog discovery and table import."""

from __future__ import annotations
import logging
from typing import Dict, List, Optional

from ..client import OracleClient
from ..discovery.base import ColumnInfo, DatabaseDiscovery, TableInfo
from ..exceptions import DiscoveryError
from ..mapping.sql import quote_ident
from ..mapping.store import MappingStore
from ..mapping.table_mapping import ColumnMapping, TableMapping
from ..mapping.types import oracle_type_descriptor
from ..models import TableImport

logger = logging.getLogger(__name__)

# Tables of non Oracle maintained users. With CREATE ANY TRIGGER all owners
# qualify, with CREATE TRIGGER only the own tables.
TRIGGERABLE_TABLES_SQL = """
select owner, table_name from all_tables
where owner not in (select username from all_users where oracle_maintained = 'Y')
  and (exists (select privilege from user_sys_privs where privilege = 'CREATE ANY TRIGGER')
       or (exists (select privilege from user_sys_privs where privilege = 'CREATE TRIGGER')
           and owner = user))
""".strip()

TABLE_COLUMNS_SQL = """
select c.column_name, c.data_type, c.data_length, c.data_precision, c.data_scale,
       c.nullable, c.column_id, pc.position
from all_tab_columns c
  left outer join all_constraints p
    on (p.constraint_type = 'P' and p.owner = c.owner and p.table_name = c.table_name)
  left outer join all_cons_columns pc
    on (pc.owner = p.owner and pc.constraint_name = p.constraint_name and pc.column_name = c.column_name)
where c.owner = :owner and c.table_name = :table_name
order by c.column_id
""".strip()


class OracleDiscovery(DatabaseDiscovery):
    """Oracle database discovery implementation."""

    def __init__(self, client: OracleClient):
        self.client = client

    def _fetch(self, sql: str, params: Optional[dict], message: str) -> List[tuple]:
        try:
            return self.client.fetch_all(sql, params)
        except Exception as e:
            raise DiscoveryError(
                message,
                f"Execute the sql as Oracle user \"{self.client.user}\"",
                sql,
            ) from e

    def test_connection(self) -> bool:
        """Test database connection."""
        try:
            return self.client.fetch_one("select table_name from all_tables where rownum = 1") is not None
        except Exception as e:
            logger.error(f"Connection test failed: {e}")
            return False

    def list_schemas(self) -> List[str]:
        """List all schemas in the database."""
        sql = """
            select username from all_users
            where oracle_maintained = 'N'
            order by username
        """
        return [row[0] for row in self._fetch(sql, None, "Reading the ALL_USERS view failed")]

    def list_tables(self, schema_name: Optional[str] = None) -> List[TableInfo]:
        """List the tables the connected user may create triggers on."""
        sql = TRIGGERABLE_TABLES_SQL
        params = None
        if schema_name:
            sql += "\n  and owner = :owner"
            params = {"owner": schema_name}
        sql += "\norder by owner, table_name"
        rows = self._fetch(sql, params, "Reading all tables of the ALL_TABLES view failed")
        return [TableInfo(schema_name=row[0], table_name=row[1]) for row in rows]

    def check_specific_tables(self, table_names: List[str], schema_name: Optional[str] = None) -> List[TableInfo]:
        """Check if specific tables exist and return their info."""
        if not table_names:
            return []

        default_schema = schema_name or self.client.user.upper()
        conditions = []
        params: Dict[str, str] = {}
        for i, table_name in enumerate(table_names):
            if '.' in table_name:
                owner, table = table_name.split('.', 1)
            else:
                owner, table = default_schema, table_name
            conditions.append(f"(owner = :owner{i} and table_name = :table{i})")
            params[f"owner{i}"] = owner
            params[f"table{i}"] = table

        sql = f"""
            select owner, table_name from all_tables
            where {" or ".join(conditions)}
            order by owner, table_name
        """
        rows = self._fetch(sql, params, "Checking the tables in the ALL_TABLES view failed")
        return [TableInfo(schema_name=row[0], table_name=row[1]) for row in rows]

    def get_table_columns(self, schema_name: str, table_name: str) -> List[ColumnInfo]:
        """Get column information for a table.

        Raises:
            DiscoveryError: When the table has no visible columns
        """
        rows = self._fetch(
            TABLE_COLUMNS_SQL,
            {"owner": schema_name, "table_name": table_name},
            "Reading the table definition failed",
        )
        if not rows:
            raise DiscoveryError(
                f"Table {schema_name}.{table_name} does not seem to exist in the Oracle database itself",
                f"Execute the sql as Oracle user \"{self.client.user}\"",
                TABLE_COLUMNS_SQL,
            )
        columns = []
        for row in rows:
            pk_position = int(row[7]) if row[7] is not None else None
            columns.append(ColumnInfo(
                column_name=row[0],
                data_type=oracle_type_descriptor(row[1], row[2], row[3], row[4]),
                is_nullable=row[5] != 'N',
                is_primary_key=pk_position is not None,
                ordinal_position=int(row[6] or 0),
                pk_position=pk_position,
            ))
        return columns

    def build_table_mapping(self, schema_name: str, table_name: str,
                            mapping_name: Optional[str] = None) -> TableMapping:
        """Map every column of a table under its own name."""
        columns = self.get_table_columns(schema_name, table_name)
        column_mappings = [
            ColumnMapping(
                alias=column.column_name,
                sql=f"d.{quote_ident(column.column_name)}",
                source_data_type=column.data_type,
            )
            for column in columns
        ]
        pk_columns = sorted(
            (column for column in columns if column.is_primary_key),
            key=lambda column: column.pk_position,
        )
        mapping = TableMapping(
            name=mapping_name or f"{schema_name}_{table_name}",
            owner=schema_name,
            table_name=table_name,
            columns=tuple(column_mappings),
            primary_key_columns=tuple(column.column_name for column in pk_columns),
        )
        logger.debug(f"Built mapping {mapping.name} with {len(column_mappings)} columns")
        return mapping

    def list_table_imports(self, store: MappingStore, schema_name: Optional[str] = None) -> List[TableImport]:
        """All triggerable tables, flagged when a mapping of the default name exists."""
        imports = []
        for table in self.list_tables(schema_name):
            entry = TableImport(owner=table.schema_name, table_name=table.table_name)
            entry.imported = store.exists(entry.mapping_name)
            imports.append(entry)
        return imports

    def import_tables(self, store: MappingStore, tables: List[TableImport]) -> List[TableMapping]:
        """Build and save a mapping for each table.

        Tables flagged as imported already are skipped.
        """
        mappings = []
        for table in tables:
            if table.imported:
                logger.debug(f"Skipping {table.qualified_name}, imported already")
                continue
            mapping = self.build_table_mapping(table.owner, table.table_name, table.mapping_name)
            store.write(mapping)
            table.imported = True
            mappings.append(mapping)
        return mappings
