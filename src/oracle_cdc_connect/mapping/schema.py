"""Canonical output schema derived from a table mapping."""

from __future__ import annotations
import re
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from ..exceptions import MappingValidationError
from .types import CanonicalType, canonical_type, varchar

if TYPE_CHECKING:
    from .table_mapping import TableMapping

# Stable row locator emitted with every record
SOURCE_ROWID_FIELD = "__source_rowid"

_AVRO_INVALID = re.compile(r"[^A-Za-z0-9_]")


def avro_name(name: str) -> str:
    """Encode a column label into a valid Avro name."""
    encoded = _AVRO_INVALID.sub(lambda m: f"_x{ord(m.group(0)):04X}", name)
    if not encoded or encoded[0].isdigit():
        encoded = f"_{encoded}"
    return encoded


class CanonicalField(BaseModel):
    """A field of a canonical record."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: CanonicalType
    primary_key: bool = False
    nullable: bool = True


class CanonicalSchema(BaseModel):
    """The schema of the records emitted for one mapping."""

    model_config = ConfigDict(frozen=True)

    name: str
    fields: Tuple[CanonicalField, ...]

    def get_field(self, name: str) -> Optional[CanonicalField]:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    @property
    def field_names(self) -> List[str]:
        return [field.name for field in self.fields]

    @property
    def primary_key_fields(self) -> List[str]:
        return [field.name for field in self.fields if field.primary_key]

    def to_avro(self) -> Dict[str, Any]:
        """Render as an Avro record schema with all fields nullable."""
        fields = []
        for field in self.fields:
            avro_type = field.type.to_avro(avro_name(field.name))
            fields.append({
                "name": avro_name(field.name),
                "type": ["null", avro_type] if field.nullable else avro_type,
                "default": None,
                "__originalname": field.name,
                "__primarykey": field.primary_key,
            })
        return {
            "type": "record",
            "name": avro_name(self.name),
            "fields": fields,
        }


def build_schema(mapping: "TableMapping") -> CanonicalSchema:
    """Derive the canonical schema of a mapping.

    Raises:
        MappingValidationError: When the mapping has no columns
        UnsupportedTypeError: When a column type cannot be translated
    """
    if not mapping.columns:
        raise MappingValidationError(
            "The schema definition does not contain any columns",
            "Something was wrong when the mapping got created, re-import the table",
            mapping.name,
        )
    primary_key = set(mapping.primary_key_columns)
    fields = [CanonicalField(name=SOURCE_ROWID_FIELD, type=varchar(18))]
    for column in mapping.columns:
        fields.append(CanonicalField(
            name=column.alias,
            type=canonical_type(column.source_data_type),
            primary_key=column.alias in primary_key,
        ))
    return CanonicalSchema(name=mapping.name, fields=tuple(fields))
