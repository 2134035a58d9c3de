"""Table mappings: how one output record is built from one source table."""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..exceptions import MappingValidationError
from .schema import CanonicalSchema, build_schema
from .sql import build_delta_select, build_initial_select
from .types import KEY_KINDS, canonical_type

logger = logging.getLogger(__name__)

# The change log has the fixed key columns PK1..PK6
MAX_PK_COLUMNS = 6


class ColumnMapping(BaseModel):
    """One output field and the SQL expression it is read from."""

    model_config = ConfigDict(frozen=True)

    alias: str
    sql: str  # e.g. d."ORDERID"
    source_data_type: str  # e.g. NUMBER(10, 0)

    @property
    def source_column_name(self) -> str:
        """The table column the expression refers to, without qualifier and quotes."""
        name = self.sql.split(".")[-1].strip()
        if len(name) >= 2 and name[0] == '"' and name[-1] == '"':
            name = name[1:-1]
        return name


class TableMapping(BaseModel):
    """A named business object read from one physical table.

    The mapping is the persisted definition only; SQL statements and the
    canonical schema are derived from it by :func:`build_bundle`.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    owner: str
    table_name: str
    columns: Tuple[ColumnMapping, ...] = ()
    primary_key_columns: Tuple[Optional[str], ...] = ()

    @property
    def qualified_table_name(self) -> str:
        return f"{self.owner}.{self.table_name}"

    @property
    def source_identifier(self) -> str:
        """Quoted ``"OWNER"."TABLE"`` reference for SQL."""
        return f'"{self.owner}"."{self.table_name}"'

    def get_column(self, alias: str) -> Optional[ColumnMapping]:
        for column in self.columns:
            if column.alias == alias:
                return column
        return None

    def primary_key_mappings(self) -> List[ColumnMapping]:
        """Column mappings of the primary key, in key position order."""
        self.validate_primary_key()
        return [self.get_column(alias) for alias in self.primary_key_columns]

    def validate_primary_key(self) -> None:
        """Fail fast when the mapping cannot be used to generate SQL.

        Raises:
            MappingValidationError: When columns or primary key columns are missing,
                or a key column has a type the change log cannot hold
            UnsupportedTypeError: When a key column type is unknown
        """
        context = f"{self.table_name}: {list(self.primary_key_columns)}"
        if not self.columns:
            raise MappingValidationError(
                "The mapping does not contain any columns",
                "Re-import the table or add column mappings",
                self.name,
            )
        if not self.primary_key_columns:
            raise MappingValidationError(
                "The table has no primary key",
                "Only tables with a primary key can be change logged",
                context,
            )
        if len(self.primary_key_columns) > MAX_PK_COLUMNS:
            raise MappingValidationError(
                f"The primary key has more than {MAX_PK_COLUMNS} columns",
                f"The change log stores at most {MAX_PK_COLUMNS} key columns",
                context,
            )
        for alias in self.primary_key_columns:
            if not alias or self.get_column(alias) is None:
                raise MappingValidationError(
                    "The table is not using all primary key columns",
                    "Make sure all pk columns are mapped at least",
                    context,
                )
        for alias in self.primary_key_columns:
            column = self.get_column(alias)
            key_type = canonical_type(column.source_data_type)
            if key_type.kind not in KEY_KINDS:
                raise MappingValidationError(
                    f"Primary key column {alias} of type {column.source_data_type} cannot be change logged",
                    "The change log keeps keys as text, only character and numeric key columns are supported",
                    context,
                )

    def with_columns(self, columns: List[ColumnMapping]) -> "TableMapping":
        """Return a copy with a different column list."""
        return self.model_copy(update={"columns": tuple(columns)})

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, eq=False)
class MappingBundle:
    """Everything derived from a mapping, computed once and never changed."""
    mapping: TableMapping
    schema: CanonicalSchema
    delta_sql: str
    initial_sql: str

    @property
    def name(self) -> str:
        return self.mapping.name

    def __hash__(self) -> int:
        return hash(self.mapping.name)

    def __eq__(self, other) -> bool:
        if not isinstance(other, MappingBundle):
            return NotImplemented
        return self.mapping.name == other.mapping.name


def build_bundle(mapping: TableMapping, log_table: str) -> MappingBundle:
    """Validate a mapping and derive its schema and SQL statements.

    Args:
        mapping: The mapping definition
        log_table: Qualified name of the change log table, e.g. ``"CDC".PKLOG``
    """
    mapping.validate_primary_key()
    bundle = MappingBundle(
        mapping=mapping,
        schema=build_schema(mapping),
        delta_sql=build_delta_select(mapping, log_table),
        initial_sql=build_initial_select(mapping),
    )
    logger.debug(f"Built SQL for mapping {mapping.name}: {bundle.delta_sql}")
    return bundle
