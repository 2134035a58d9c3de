"""SQL builders for the initial and delta reads of a table mapping."""

from __future__ import annotations
from typing import List, TYPE_CHECKING

from .schema import SOURCE_ROWID_FIELD

if TYPE_CHECKING:
    from .table_mapping import TableMapping

CHANGE_TYPE_COLUMN = "_CHANGE_TYPE"
SCN_COLUMN = "_SCN"


def quote_literal(val: str) -> str:
    return val.replace("'", "''")


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _log_key_columns(mapping: "TableMapping") -> List[str]:
    return [f"PK{i + 1}" for i in range(len(mapping.primary_key_columns))]


def build_delta_select(mapping: "TableMapping", log_table: str) -> str:
    """Builds the select reconstructing the rows changed within an SCN window.

    The change log only knows primary keys, so the current row is re-read
    from the table. A key without a matching table row was deleted.

    Bind values: ``low_scn``, ``high_scn`` (both exclusive), ``schema_name``
    and ``table_name``.
    """
    pk_mappings = mapping.primary_key_mappings()
    pk_aliases = [column.alias for column in pk_mappings]
    log_columns = _log_key_columns(mapping)

    driver_keys = ", ".join(
        f"{log_column} as {quote_ident(alias)}"
        for log_column, alias in zip(log_columns, pk_aliases)
    )
    join_condition = " and ".join(
        f"l.{quote_ident(column.alias)} = d.{quote_ident(column.source_column_name)}"
        for column in pk_mappings
    )

    projection = []
    for column in mapping.columns:
        if column.alias in pk_aliases:
            # a deleted row has no table values, the key comes from the log
            projection.append(f"l.{quote_ident(column.alias)} as {quote_ident(column.alias)}")
        else:
            projection.append(f"{column.sql} as {quote_ident(column.alias)}")
    projection_clause = ",\n    ".join(projection)

    return f"""
select case when d.{quote_ident(pk_mappings[0].source_column_name)} is null then 'D' else 'A' end as {quote_ident(CHANGE_TYPE_COLUMN)},
    l.{quote_ident(SCN_COLUMN)} as {quote_ident(SCN_COLUMN)},
    d.rowid as {quote_ident(SOURCE_ROWID_FIELD)},
    {projection_clause}
from (select max(scn) as {quote_ident(SCN_COLUMN)}, {driver_keys}
      from {log_table}
      where scn > :low_scn and scn < :high_scn
        and schema_name = :schema_name and table_name = :table_name
      group by {", ".join(log_columns)}) l
left outer join {mapping.source_identifier} d
on ({join_condition})
""".strip()


def build_initial_select(mapping: "TableMapping") -> str:
    """Builds the full snapshot select of a mapping."""
    projection_clause = ",\n    ".join(
        f"{column.sql} as {quote_ident(column.alias)}" for column in mapping.columns
    )
    return f"""
select 'I' as {quote_ident(CHANGE_TYPE_COLUMN)},
    null as {quote_ident(SCN_COLUMN)},
    d.rowid as {quote_ident(SOURCE_ROWID_FIELD)},
    {projection_clause}
from {mapping.source_identifier} d
""".strip()


def delta_binds(mapping: "TableMapping", low_scn: int, high_scn: int) -> dict:
    """Bind values for the delta select of a mapping."""
    return {
        "low_scn": low_scn,
        "high_scn": high_scn,
        "schema_name": mapping.owner,
        "table_name": mapping.table_name,
    }
