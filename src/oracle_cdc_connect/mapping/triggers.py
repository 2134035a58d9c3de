"""Change logging triggers of a table mapping."""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Dict, List

from ..exceptions import SetupError
from .sql import quote_ident, quote_literal
from .table_mapping import TableMapping

if TYPE_CHECKING:
    from ..client import OracleClient

logger = logging.getLogger(__name__)

# Trigger name suffixes, in creation order
TRIGGER_SUFFIXES = ("i", "u", "d")

TRIGGER_PROBE_SQL = """
select substr(trigger_name, -1) from all_triggers
where table_owner = :owner and table_name = :table_name
and trigger_name like table_name || '\\_t\\__' escape '\\'
""".strip()


class TriggerSet:
    """The insert, update and delete triggers writing a table's keys into the change log."""

    def __init__(self, mapping: TableMapping, log_table: str):
        """Build the trigger bodies.

        Args:
            mapping: The mapping whose physical table gets the triggers
            log_table: Qualified change log table, e.g. ``"CDC".PKLOG``

        Raises:
            MappingValidationError: When the primary key is not fully mapped
        """
        self.mapping = mapping
        self.log_table = log_table
        self.exists: Dict[str, bool] = {suffix: False for suffix in TRIGGER_SUFFIXES}
        self.probed = False

        pk_columns = [column.source_column_name for column in mapping.primary_key_mappings()]
        self._new_keys = ", ".join(f":c.{quote_ident(c)}" for c in pk_columns)
        self._old_keys = ", ".join(f":o.{quote_ident(c)}" for c in pk_columns)
        self._key_changed = " OR ".join(
            f":o.{quote_ident(c)} <> :c.{quote_ident(c)}" for c in pk_columns)
        self._log_columns = ", ".join(f"PK{i + 1}" for i in range(len(pk_columns)))

        self.sql: Dict[str, str] = {
            "i": self._build("i", "INSERT", "REFERENCING NEW as c"),
            "u": self._build("u", "UPDATE", "REFERENCING NEW as c OLD as o"),
            "d": self._build("d", "DELETE", "REFERENCING OLD as c"),
        }

    def trigger_name(self, suffix: str) -> str:
        return f"{self.mapping.table_name}_t_{suffix}"

    @property
    def insert_sql(self) -> str:
        return self.sql["i"]

    @property
    def update_sql(self) -> str:
        return self.sql["u"]

    @property
    def delete_sql(self) -> str:
        return self.sql["d"]

    def _log_insert(self, change_type: str, keys: str, indent: str = "     ") -> str:
        return (
            f"{indent}INSERT INTO {self.log_table}\n"
            f"{indent}  (change_ts, schema_name, table_name, change_type, scn, {self._log_columns})\n"
            f"{indent}VALUES (current_timestamp, '{quote_literal(self.mapping.owner)}', "
            f"'{quote_literal(self.mapping.table_name)}', '{change_type}',\n"
            f"{indent}  dbms_flashback.get_system_change_number, {keys});\n"
        )

    def _build(self, suffix: str, event: str, referencing: str) -> str:
        change_type = suffix.upper()
        body = self._log_insert(change_type, self._new_keys)
        if suffix == "u":
            # a changed key is logged under its old value as well
            body += (
                f"     IF ({self._key_changed}) THEN\n"
                + self._log_insert(change_type, self._old_keys, indent="       ")
                + "     END IF;\n"
            )
        return (
            f"CREATE TRIGGER {quote_ident(self.trigger_name(suffix))}\n"
            f" AFTER {event} ON {self.mapping.source_identifier}\n"
            f" {referencing}\n"
            f" FOR EACH ROW\n"
            f" BEGIN\n"
            f"{body}"
            f" END;"
        )

    def probe(self, client: "OracleClient") -> Dict[str, bool]:
        """Find out which of the three triggers already exist."""
        try:
            rows = client.fetch_all(TRIGGER_PROBE_SQL, {
                "owner": self.mapping.owner,
                "table_name": self.mapping.table_name,
            })
        except Exception as e:
            raise SetupError(
                "Reading the existing triggers failed",
                f"Execute the sql as Oracle user \"{client.user}\"",
                TRIGGER_PROBE_SQL,
            ) from e
        for (suffix,) in rows:
            suffix = (suffix or "").lower()
            if suffix in self.exists:
                self.exists[suffix] = True
        self.probed = True
        return dict(self.exists)

    def missing(self) -> List[str]:
        return [suffix for suffix in TRIGGER_SUFFIXES if not self.exists[suffix]]

    def ensure(self, client: "OracleClient") -> List[str]:
        """Create the triggers that do not exist yet.

        Existing triggers are left alone, even if their body differs.

        Returns:
            Names of the triggers created
        """
        if not self.probed:
            self.probe(client)
        created = []
        for suffix in self.missing():
            sql = self.sql[suffix]
            try:
                client.execute(sql)
            except Exception as e:
                raise SetupError(
                    "Creating the Change Logging triggers failed in the database",
                    f"Execute the sql as Oracle user \"{client.user}\"",
                    sql,
                ) from e
            self.exists[suffix] = True
            created.append(self.trigger_name(suffix))
            logger.info(f"Created trigger {self.trigger_name(suffix)} on {self.mapping.qualified_table_name}")
        return created

    def sql_script(self) -> str:
        """All three trigger bodies, existing ones commented out."""
        parts = []
        for suffix in TRIGGER_SUFFIXES:
            if self.exists[suffix]:
                parts.append(
                    f"/* Trigger {self.mapping.owner}.{self.trigger_name(suffix)} exists already\n"
                    f"{self.sql[suffix]}\n*/\n"
                )
            else:
                parts.append(f"{self.sql[suffix]}\n/\n")
        return "\n".join(parts)
