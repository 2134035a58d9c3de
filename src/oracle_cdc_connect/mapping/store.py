"""Persisted mapping definitions, one JSON document per mapping."""

from __future__ import annotations
import logging
from pathlib import Path
from typing import List, Union
from urllib.parse import quote, unquote

from pydantic import ValidationError

from ..exceptions import MappingDefinitionError
from .table_mapping import TableMapping

logger = logging.getLogger(__name__)

_SUFFIX = ".json"


def encode_file_name(name: str) -> str:
    return quote(name, safe="") + _SUFFIX


def decode_file_name(file_name: str) -> str:
    return unquote(file_name[: -len(_SUFFIX)])


class MappingStore:
    """Reads and writes mapping definitions in a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path(self, name: str) -> Path:
        return self.directory / encode_file_name(name)

    def _check_directory(self) -> None:
        if not self.directory.exists():
            raise MappingDefinitionError(
                "Directory for the mapping definition files does not exist",
                "Import tables first or create the directory manually",
                str(self.directory),
            )
        if not self.directory.is_dir():
            raise MappingDefinitionError(
                "Specified location exists but is no directory",
                None,
                str(self.directory),
            )

    def list_names(self) -> List[str]:
        """Names of all stored mappings, sorted."""
        if not self.directory.is_dir():
            return []
        return sorted(
            decode_file_name(path.name)
            for path in self.directory.iterdir()
            if path.is_file() and path.name.endswith(_SUFFIX)
        )

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def read(self, name: str) -> TableMapping:
        """Read one mapping definition.

        Raises:
            MappingDefinitionError: When the file is missing or cannot be parsed
        """
        self._check_directory()
        path = self._path(name)
        if not path.is_file():
            raise MappingDefinitionError(
                f"No mapping definition named '{name}'",
                "Use import-tables to create it",
                str(path),
            )
        try:
            mapping = TableMapping.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise MappingDefinitionError(
                "Cannot parse the json file with the mapping definition",
                "Check filename and format",
                str(path),
            ) from e
        logger.debug(f"Mapping file {path.name} read for table {mapping.qualified_table_name}")
        return mapping

    def write(self, mapping: TableMapping) -> Path:
        """Write a mapping definition, creating the directory if needed."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(mapping.name)
        try:
            path.write_text(mapping.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise MappingDefinitionError(
                "Failed to write the json mapping definition file",
                "Check file permissions and users",
                str(path),
            ) from e
        logger.info(f"Saved mapping {mapping.name} to {path}")
        return path

    def delete(self, name: str) -> None:
        path = self._path(name)
        if not path.is_file():
            raise MappingDefinitionError(f"No mapping definition named '{name}'", None, str(path))
        path.unlink()
