"""Mapping of Oracle column types to canonical types and values.

Two directions are covered here. ``canonical_type`` turns the type
descriptor stored in a mapping (``NUMBER(10, 2)``, ``VARCHAR2(40)``, ...)
into a :class:`CanonicalType`. ``convert_cell`` turns a fetched value into
its canonical Python representation, dispatching on the type code the
driver reports for the column.
"""

from __future__ import annotations
import re
from datetime import date, datetime, timedelta
from decimal import Decimal, localcontext
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, TYPE_CHECKING

import oracledb
from pydantic import BaseModel, ConfigDict

from ..exceptions import UnhandledColumnTypeError, UnsupportedTypeError, ValueConversionError

if TYPE_CHECKING:
    from .schema import CanonicalSchema


# decimal(10,3) plus spaces anywhere, trailing qualifiers like WITH TIME ZONE ignored
_DESCRIPTOR_PATTERN = re.compile(
    r"^\s*([A-Za-z_][\w$#]*)\s*(?:\(\s*(\d+)?\s*(?:,\s*(-?\d+)\s*)?\))?.*$",
    re.DOTALL,
)

# Number of leading control columns (_CHANGE_TYPE, _SCN) in generated selects
CONTROL_COLUMN_COUNT = 2

# Oracle NUMBER holds up to 38 significant digits
MAX_NUMBER_PRECISION = 38


class CanonicalKind(str, Enum):
    """Canonical, serialization neutral data types."""

    NVARCHAR = "NVARCHAR"
    VARCHAR = "VARCHAR"
    DECIMAL = "DECIMAL"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    DATE = "DATE"
    TIMESTAMP_MICROS = "TIMESTAMP_MICROS"
    NCLOB = "NCLOB"
    BYTES = "BYTES"
    FIXED = "FIXED"
    URI = "URI"
    ST_POINT = "ST_POINT"
    ST_GEOMETRY = "ST_GEOMETRY"


_TEXT_KINDS = {
    CanonicalKind.NVARCHAR,
    CanonicalKind.VARCHAR,
    CanonicalKind.NCLOB,
    CanonicalKind.URI,
    CanonicalKind.ST_POINT,
    CanonicalKind.ST_GEOMETRY,
}

# Types a key value can be restored to from its change log text
KEY_KINDS = {
    CanonicalKind.NVARCHAR,
    CanonicalKind.VARCHAR,
    CanonicalKind.DECIMAL,
    CanonicalKind.FLOAT,
    CanonicalKind.DOUBLE,
}


class CanonicalType(BaseModel):
    """A canonical column type with its length or precision/scale."""

    model_config = ConfigDict(frozen=True)

    kind: CanonicalKind
    length: int = 0
    precision: int = 0
    scale: int = 0

    @property
    def is_text(self) -> bool:
        return self.kind in _TEXT_KINDS

    def __str__(self) -> str:
        if self.kind == CanonicalKind.DECIMAL:
            return f"DECIMAL({self.precision}, {self.scale})"
        if self.length:
            return f"{self.kind.value}({self.length})"
        return self.kind.value

    def to_avro(self, field_name: str = "value") -> Any:
        """Render as an Avro type, using logical types where Avro has them."""
        kind = self.kind
        if kind == CanonicalKind.DECIMAL:
            # unconstrained NUMBER is exported with the maximum Oracle precision
            return {
                "type": "bytes",
                "logicalType": "decimal",
                "precision": self.precision or 38,
                "scale": self.scale,
            }
        if kind == CanonicalKind.FLOAT:
            return "float"
        if kind == CanonicalKind.DOUBLE:
            return "double"
        if kind == CanonicalKind.DATE:
            return {"type": "int", "logicalType": "date"}
        if kind == CanonicalKind.TIMESTAMP_MICROS:
            return {"type": "long", "logicalType": "timestamp-micros"}
        if kind == CanonicalKind.BYTES:
            return "bytes"
        if kind == CanonicalKind.FIXED:
            return {"type": "fixed", "name": f"{field_name}_fixed", "size": self.length}
        avro_type: Dict[str, Any] = {"type": "string", "logicalType": kind.value}
        if self.length:
            avro_type["length"] = self.length
        return avro_type


def nvarchar(length: int) -> CanonicalType:
    return CanonicalType(kind=CanonicalKind.NVARCHAR, length=length)


def varchar(length: int) -> CanonicalType:
    return CanonicalType(kind=CanonicalKind.VARCHAR, length=length)


def decimal(precision: int, scale: int) -> CanonicalType:
    return CanonicalType(kind=CanonicalKind.DECIMAL, precision=precision, scale=scale)


def parse_type_descriptor(descriptor: str) -> Tuple[str, int, int]:
    """Split ``NAME[(LENGTH[,SCALE])]`` into its parts.

    Absent length and scale default to zero.
    """
    match = _DESCRIPTOR_PATTERN.match(descriptor or "")
    if not match:
        raise UnsupportedTypeError(descriptor or "", descriptor)
    name = match.group(1).upper()
    length = int(match.group(2)) if match.group(2) else 0
    scale = int(match.group(3)) if match.group(3) else 0
    return name, length, scale


def canonical_type(descriptor: str) -> CanonicalType:
    """Translate an Oracle type descriptor into its canonical type.

    Raises:
        UnsupportedTypeError: When the base type name is not known
    """
    name, length, scale = parse_type_descriptor(descriptor)
    if name in ("CHAR", "NCHAR", "VARCHAR", "VARCHAR2", "NVARCHAR2"):
        # depending on the database codepage can be any unicode character
        return nvarchar(length)
    if name == "NUMBER":
        return decimal(length, scale)
    if name in ("FLOAT", "BINARY_FLOAT", "INTERVAL"):
        return CanonicalType(kind=CanonicalKind.FLOAT)
    if name == "BINARY_DOUBLE":
        return CanonicalType(kind=CanonicalKind.DOUBLE)
    if name == "DATE":
        return CanonicalType(kind=CanonicalKind.DATE)
    if name == "TIMESTAMP":
        return CanonicalType(kind=CanonicalKind.TIMESTAMP_MICROS)
    if name in ("BLOB", "BFILE"):
        return CanonicalType(kind=CanonicalKind.BYTES)
    if name in ("LONG", "CLOB", "NCLOB", "XMLTYPE"):
        # LONG RAW parses as LONG
        return CanonicalType(kind=CanonicalKind.NCLOB)
    if name == "RAW":
        return CanonicalType(kind=CanonicalKind.FIXED, length=length)
    if name == "ROWID":
        return varchar(18)
    if name == "UROWID":
        return varchar(length)
    if name == "URITYPE":
        return CanonicalType(kind=CanonicalKind.URI)
    if name == "ST_POINT":
        return CanonicalType(kind=CanonicalKind.ST_POINT)
    if name == "ST_GEOMETRY":
        return CanonicalType(kind=CanonicalKind.ST_GEOMETRY)
    raise UnsupportedTypeError(name, descriptor)


def oracle_type_descriptor(
    data_type: str,
    length: Optional[int] = None,
    precision: Optional[int] = None,
    scale: Optional[int] = None,
) -> str:
    """Render an ``all_tab_columns`` row as a type descriptor."""
    if data_type == "NUMBER":
        # number(p, s) with p between 1..38 and scale -84..127
        if precision is None and scale is None:
            return "NUMBER"
        return f"NUMBER({precision if precision is not None else 38}, {scale or 0})"
    if data_type in ("CHAR", "NCHAR", "VARCHAR", "VARCHAR2", "NVARCHAR2", "RAW", "UROWID"):
        return f"{data_type}({length or 0})"
    return data_type


def _read_lob(value: Any) -> Any:
    if hasattr(value, "read"):
        return value.read()
    return value


def _parse_text(text: str, declared: Optional[CanonicalType]) -> Any:
    """Bring text into the declared type; keys read from the change log arrive as text.

    Raises:
        ValueError: When the text is no value of the declared type
    """
    if declared is None or declared.is_text:
        return text
    if declared.kind == CanonicalKind.DECIMAL:
        return _quantize(Decimal(text.strip()), declared)
    if declared.kind in (CanonicalKind.FLOAT, CanonicalKind.DOUBLE):
        return float(text)
    raise ValueError(f"{declared} values are not read from text")


def _quantize(value: Decimal, declared: CanonicalType) -> Decimal:
    if not value.is_finite():
        raise ValueError(f"{value} is not a number")
    if declared.precision:
        with localcontext() as ctx:
            ctx.prec = max(MAX_NUMBER_PRECISION, declared.precision)
            return value.quantize(Decimal(1).scaleb(-declared.scale))
    return value


def _convert_text(value: Any, declared: Optional[CanonicalType]) -> Any:
    text = _read_lob(value)
    if text is None or len(text) == 0:
        # empty strings and NULL are the same thing in Oracle
        return None
    return _parse_text(text, declared)


def _convert_number(value: Any, declared: Optional[CanonicalType]) -> Any:
    if declared is not None and declared.kind == CanonicalKind.DECIMAL:
        if isinstance(value, float):
            # digits are gone already, see decimal_output_type_handler
            raise TypeError(f"NUMBER value {value!r} was fetched as float")
        number = value if isinstance(value, Decimal) else Decimal(value)
        return _quantize(number, declared)
    if declared is not None and declared.kind in (CanonicalKind.FLOAT, CanonicalKind.DOUBLE):
        return float(value)
    return value


def _convert_float(value: Any, declared: Optional[CanonicalType]) -> Any:
    return float(value)


def _convert_integer(value: Any, declared: Optional[CanonicalType]) -> Any:
    return int(value)


def _convert_boolean(value: Any, declared: Optional[CanonicalType]) -> Any:
    return bool(value)


def _convert_bytes(value: Any, declared: Optional[CanonicalType]) -> Any:
    return bytes(_read_lob(value))


def _convert_date(value: Any, declared: Optional[CanonicalType]) -> Any:
    if isinstance(value, datetime):
        if declared is not None and declared.kind == CanonicalKind.TIMESTAMP_MICROS:
            return value
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Unexpected DATE value {value!r}")


def _convert_timestamp(value: Any, declared: Optional[CanonicalType]) -> Any:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise TypeError(f"Unexpected TIMESTAMP value {value!r}")


def _convert_interval(value: Any, declared: Optional[CanonicalType]) -> Any:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _convert_rowid(value: Any, declared: Optional[CanonicalType]) -> Any:
    return str(value)


Converter = Callable[[Any, Optional[CanonicalType]], Any]

# Exhaustive list of driver types the converter understands, anything else is an error
CELL_CONVERTERS: Dict[Any, Converter] = {
    oracledb.DB_TYPE_CHAR: _convert_text,
    oracledb.DB_TYPE_NCHAR: _convert_text,
    oracledb.DB_TYPE_VARCHAR: _convert_text,
    oracledb.DB_TYPE_NVARCHAR: _convert_text,
    oracledb.DB_TYPE_LONG: _convert_text,
    oracledb.DB_TYPE_CLOB: _convert_text,
    oracledb.DB_TYPE_NCLOB: _convert_text,
    oracledb.DB_TYPE_NUMBER: _convert_number,
    oracledb.DB_TYPE_BINARY_FLOAT: _convert_float,
    oracledb.DB_TYPE_BINARY_DOUBLE: _convert_float,
    oracledb.DB_TYPE_BINARY_INTEGER: _convert_integer,
    oracledb.DB_TYPE_BOOLEAN: _convert_boolean,
    oracledb.DB_TYPE_RAW: _convert_bytes,
    oracledb.DB_TYPE_LONG_RAW: _convert_bytes,
    oracledb.DB_TYPE_BLOB: _convert_bytes,
    oracledb.DB_TYPE_BFILE: _convert_bytes,
    oracledb.DB_TYPE_DATE: _convert_date,
    oracledb.DB_TYPE_TIMESTAMP: _convert_timestamp,
    oracledb.DB_TYPE_TIMESTAMP_TZ: _convert_timestamp,
    oracledb.DB_TYPE_TIMESTAMP_LTZ: _convert_timestamp,
    oracledb.DB_TYPE_INTERVAL_DS: _convert_interval,
    oracledb.DB_TYPE_ROWID: _convert_rowid,
    oracledb.DB_TYPE_UROWID: _convert_rowid,
}


def _type_name(type_code: Any) -> str:
    return getattr(type_code, "name", None) or str(type_code)


def convert_cell(
    value: Any,
    type_code: Any,
    declared: Optional[CanonicalType],
    column_name: str,
) -> Any:
    """Convert one fetched value into its canonical representation.

    Args:
        value: The value as returned by the driver
        type_code: The driver type of the column (``cursor.description[i][1]``)
        declared: The canonical type of the target field, if the schema has it
        column_name: Column label, used for error reporting

    Raises:
        UnhandledColumnTypeError: When the driver type has no converter
        ValueConversionError: When the value does not fit the declared type
    """
    converter = CELL_CONVERTERS.get(type_code)
    if converter is None:
        raise UnhandledColumnTypeError(column_name, _type_name(type_code))
    if value is None:
        return None
    try:
        return converter(value, declared)
    except (ArithmeticError, TypeError, ValueError) as e:
        type_name = str(declared) if declared is not None else _type_name(type_code)
        raise ValueConversionError(column_name, value, type_name) from e


def convert_row(
    row: Sequence[Any],
    description: Sequence[Sequence[Any]],
    schema: "CanonicalSchema",
) -> Dict[str, Any]:
    """Convert a row of a generated select into a record.

    The leading change indicator and SCN columns are not part of the record.
    """
    record: Dict[str, Any] = {}
    for i in range(CONTROL_COLUMN_COUNT, len(description)):
        column_name = description[i][0]
        type_code = description[i][1]
        field = schema.get_field(column_name)
        declared = field.type if field is not None else None
        record[column_name] = convert_cell(row[i], type_code, declared, column_name)
    return record
