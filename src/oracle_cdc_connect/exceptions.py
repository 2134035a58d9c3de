"""Exceptions raised by the change capture engine.

Every error carries a human readable message, an optional hint telling the
operator what to do about it, and the SQL statement or other context string
that was being processed when it happened.

Exception Hierarchy:
    ConnectorError (base)
    ├── ClientConnectionError
    ├── SetupError
    ├── DiscoveryError
    ├── MappingDefinitionError
    ├── MappingValidationError
    ├── UnsupportedTypeError
    ├── UnhandledColumnTypeError
    ├── ValueConversionError
    ├── PollError
    ├── InitialLoadError
    └── ProducerStateError
"""

from __future__ import annotations
from typing import Optional


class ConnectorError(Exception):
    """Base exception for the connector.

    Attributes:
        message: What went wrong
        hint: How to fix it, if known
        context: The offending SQL statement, file name or value
    """

    def __init__(
        self,
        message: str,
        hint: Optional[str] = None,
        context: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.context = context

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


class ClientConnectionError(ConnectorError):
    """Opening the database connection failed."""
    pass


class SetupError(ConnectorError):
    """Creating the change log table or a trigger failed."""
    pass


class DiscoveryError(ConnectorError):
    """Reading the source catalog failed."""
    pass


class MappingDefinitionError(ConnectorError):
    """A persisted mapping definition cannot be found, read or written."""
    pass


class MappingValidationError(ConnectorError):
    """A table mapping is structurally invalid, e.g. its primary key is not fully mapped."""
    pass


class UnsupportedTypeError(ConnectorError):
    """A source column type has no canonical counterpart."""

    def __init__(self, type_name: str, descriptor: Optional[str] = None):
        super().__init__(
            f"Table contains a data type which is not known: {type_name}",
            "Check the source data type, newer database version?",
            descriptor or type_name,
        )
        self.type_name = type_name


class UnhandledColumnTypeError(ConnectorError):
    """The driver returned a column type the record converter cannot handle."""

    def __init__(self, column_name: str, type_name: str):
        super().__init__(
            "The select statement returns a datatype the connector cannot handle",
            "Remove the column from the mapping or change its SQL expression",
            f"{column_name}:{type_name}",
        )
        self.column_name = column_name
        self.type_name = type_name


class ValueConversionError(ConnectorError):
    """A fetched value does not fit the declared type of its field."""

    def __init__(self, column_name: str, value: object, type_name: str):
        super().__init__(
            f"Value {value!r} of column {column_name} cannot be converted to {type_name}",
            "Check the column's source data type in the mapping",
            f"{column_name}:{type_name}",
        )
        self.column_name = column_name
        self.value = value
        self.type_name = type_name


class PollError(ConnectorError):
    """Reading a delta window failed; the watermark was not advanced."""
    pass


class InitialLoadError(ConnectorError):
    """The initial load was aborted; no row count was reported."""
    pass


class ProducerStateError(ConnectorError):
    """An operation was called in a producer state that does not allow it."""
    pass
