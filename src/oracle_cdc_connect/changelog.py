"""The shared change log table all triggers write into."""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING, List, Tuple

from .exceptions import PollError, SetupError
from .mapping.table_mapping import MAX_PK_COLUMNS
from .models import ChangeLogRow

if TYPE_CHECKING:
    from .client import OracleClient

logger = logging.getLogger(__name__)


class ChangeLog:
    """SQL access to the change log table.

    One row per changed source row, holding its primary key as text in
    PK1..PK6 and the SCN the trigger fired at.
    """

    table_exists_sql = "select 1 from all_tables where owner = :owner and table_name = :table_name"
    current_scn_sql = "select dbms_flashback.get_system_change_number from dual"
    # Changes of transactions still open must not be skipped, so read only up to
    # the oldest open transaction
    upper_bound_sql = "select nvl(min(start_scn), dbms_flashback.get_system_change_number) from gv$transaction"
    purge_sql_template = "delete from {table} where change_ts < current_timestamp - :retention_days"

    def __init__(self, owner: str, table_name: str = "PKLOG", retention_days: int = 7):
        self.owner = owner
        self.table_name = table_name
        self.retention_days = retention_days

    @property
    def qualified_name(self) -> str:
        return f'"{self.owner}".{self.table_name}'

    def ddl(self) -> str:
        """CREATE TABLE statement of the change log."""
        pk_columns = "".join(f"PK{i} nvarchar2(256), " for i in range(1, MAX_PK_COLUMNS + 1))
        return (
            f"create table {self.qualified_name} ("
            "CHANGE_TS timestamp, "
            "SCHEMA_NAME nvarchar2(256), "
            "CHANGE_TYPE varchar2(1), "
            f"{pk_columns}"
            "SCN number(19), "
            "EXECUTIONORDER number(15) GENERATED ALWAYS as IDENTITY(START with 1 INCREMENT by 1), "
            "PROCESSED_SEQ number(15), "
            "TABLE_NAME nvarchar2(256))"
        )

    def exists(self, client: "OracleClient") -> bool:
        try:
            row = client.fetch_one(self.table_exists_sql, {
                "owner": self.owner, "table_name": self.table_name})
        except Exception as e:
            raise SetupError(
                "Checking if the change log table exists failed in the database",
                f"Execute the sql as Oracle user \"{client.user}\"",
                self.table_exists_sql,
            ) from e
        return row is not None

    def create(self, client: "OracleClient") -> None:
        sql = self.ddl()
        try:
            client.execute(sql)
        except Exception as e:
            raise SetupError(
                "Creating the change log table failed in the database",
                f"Execute the sql as Oracle user \"{client.user}\"",
                sql,
            ) from e
        logger.info(f"Created the change log table: {sql}")

    def ensure(self, client: "OracleClient") -> bool:
        """Create the change log table if it is missing.

        Returns:
            True if the table got created
        """
        if self.exists(client):
            logger.debug(f"Change log table {self.qualified_name} exists")
            return False
        self.create(client)
        return True

    def current_scn(self, client: "OracleClient") -> int:
        try:
            row = client.fetch_one(self.current_scn_sql)
        except Exception as e:
            raise PollError(
                "Selecting the current SCN failed",
                "Missing permissions on dbms_flashback.get_system_change_number package?",
                self.current_scn_sql,
            ) from e
        scn = int(row[0]) if row and row[0] is not None else 0
        logger.debug(f"Current SCN in Oracle is \"{scn}\"")
        return scn

    def upper_bound_scn(self, client: "OracleClient", low_scn: int) -> int:
        """Upper bound (exclusive) of the next window, never below ``low_scn``."""
        try:
            row = client.fetch_one(self.upper_bound_sql)
        except Exception as e:
            raise PollError(
                "Selecting the upper bound SCN failed",
                "Missing permissions on Oracle dictionary view gv$transaction?",
                self.upper_bound_sql,
            ) from e
        reading = int(row[0]) if row and row[0] is not None else low_scn
        high_scn = max(reading, low_scn)
        logger.debug(f"Upper bound SCN in Oracle is \"{high_scn}\", read everything less than")
        return high_scn

    def changed_tables_sql(self) -> str:
        return (
            f"select distinct schema_name, table_name from {self.qualified_name} "
            "where scn > :low_scn and scn < :high_scn"
        )

    def changed_tables(self, client: "OracleClient", low_scn: int, high_scn: int) -> List[Tuple[str, str]]:
        """Distinct (owner, table) pairs with changes in the window."""
        rows = client.fetch_all(self.changed_tables_sql(), {
            "low_scn": low_scn, "high_scn": high_scn})
        return [(row[0], row[1]) for row in rows]

    def read_rows(self, client: "OracleClient", low_scn: int, high_scn: int) -> List[ChangeLogRow]:
        """The raw log rows of a window, in SCN order."""
        pk_columns = ", ".join(f"PK{i}" for i in range(1, MAX_PK_COLUMNS + 1))
        sql = (
            f"select change_ts, schema_name, table_name, change_type, {pk_columns}, "
            f"scn, executionorder, processed_seq from {self.qualified_name} "
            "where scn > :low_scn and scn < :high_scn order by scn, executionorder"
        )
        rows = client.fetch_all(sql, {"low_scn": low_scn, "high_scn": high_scn})
        result = []
        for row in rows:
            keys = tuple(k for k in row[4:4 + MAX_PK_COLUMNS] if k is not None)
            result.append(ChangeLogRow(
                change_ts=row[0],
                schema_name=row[1],
                table_name=row[2],
                change_type=row[3],
                primary_key=keys,
                scn=int(row[4 + MAX_PK_COLUMNS]),
                execution_order=row[5 + MAX_PK_COLUMNS],
                processed_seq=row[6 + MAX_PK_COLUMNS],
            ))
        return result

    def purge(self, client: "OracleClient") -> int:
        """Delete log rows older than the retention window.

        Returns:
            Number of deleted rows
        """
        sql = self.purge_sql_template.format(table=self.qualified_name)
        deleted = client.execute(sql, {"retention_days": self.retention_days})
        logger.debug(f"Deleted {deleted} outdated rows from {self.qualified_name}")
        return deleted
