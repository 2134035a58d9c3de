"""Lookup of mapping bundles by name and by physical table."""

from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Set, Tuple

from .exceptions import MappingDefinitionError
from .mapping.table_mapping import MappingBundle, TableMapping, build_bundle

logger = logging.getLogger(__name__)


def table_key(owner: str, table_name: str) -> str:
    return f"{owner}.{table_name}"


class MappingDirectory:
    """Schema directory (name to bundle) and table directory (table to bundles).

    Built once, never modified afterwards.
    """

    def __init__(self, bundles: Iterable[MappingBundle]):
        self._schema_directory: Dict[str, MappingBundle] = {}
        self._table_directory: Dict[str, List[MappingBundle]] = {}
        for bundle in bundles:
            if bundle.name in self._schema_directory:
                raise MappingDefinitionError(
                    f"Mapping '{bundle.name}' is configured more than once",
                    "Remove the duplicate from the mapping list",
                )
            self._schema_directory[bundle.name] = bundle
            key = table_key(bundle.mapping.owner, bundle.mapping.table_name)
            self._table_directory.setdefault(key, []).append(bundle)

    @classmethod
    def from_mappings(cls, mappings: Iterable[TableMapping], log_table: str) -> "MappingDirectory":
        """Build the bundles of all mappings and index them."""
        return cls(build_bundle(mapping, log_table) for mapping in mappings)

    @property
    def schema_directory(self) -> Dict[str, MappingBundle]:
        return dict(self._schema_directory)

    @property
    def table_directory(self) -> Dict[str, List[MappingBundle]]:
        return {key: list(bundles) for key, bundles in self._table_directory.items()}

    def __len__(self) -> int:
        return len(self._schema_directory)

    def __iter__(self):
        return iter(self._schema_directory.values())

    def names(self) -> List[str]:
        return list(self._schema_directory)

    def get(self, name: str) -> MappingBundle:
        bundle = self._schema_directory.get(name)
        if bundle is None:
            raise MappingDefinitionError(
                f"No mapping named '{name}' is configured for this producer",
                f"Configured mappings: {', '.join(self._schema_directory) or '(none)'}",
            )
        return bundle

    def bundles_for_table(self, owner: str, table_name: str) -> List[MappingBundle]:
        return list(self._table_directory.get(table_key(owner, table_name), []))

    def resolve(self, changed_tables: Iterable[Tuple[str, str]]) -> Set[MappingBundle]:
        """All mappings impacted by the changed tables, each one once."""
        impacted: Set[MappingBundle] = set()
        for owner, table_name in changed_tables:
            bundles = self.bundles_for_table(owner, table_name)
            if not bundles:
                logger.debug(f"Changes in {table_key(owner, table_name)} belong to no configured mapping")
            impacted.update(bundles)
        return impacted
