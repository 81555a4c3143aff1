"""
Single table inheritance merging.

Entities sharing one physical table are folded into a single canonical
TableDefinition before diffing, so no sibling can drop a column another
sibling still declares.
"""

import logging
from typing import Dict, List, Optional, Sequence

from ..exceptions import ConfigurationError
from .definitions import (
    DEFAULT_PRIMARY_KEY,
    ColumnDefinition,
    ColumnOptions,
    ColumnType,
    IndexDefinition,
    TableDefinition,
)
from .entity import Entity
from .naming import IndexNameResolver


logger = logging.getLogger(__name__)

DEFAULT_INHERITANCE_COLUMN = "type"


class STIMerger:
    """Combines every entity bound to a table into one canonical definition."""

    def __init__(
        self,
        resolver: Optional[IndexNameResolver] = None,
        inheritance_column: str = DEFAULT_INHERITANCE_COLUMN,
    ):
        self.resolver = resolver or IndexNameResolver()
        self.inheritance_column = inheritance_column

    def merge(self, entities: Sequence[Entity]) -> TableDefinition:
        """
        Merge a table group.

        Args:
            entities: Entities bound to the same table, in registration order

        Returns:
            The canonical TableDefinition with resolved index names

        Raises:
            ConfigurationError: if siblings disagree on a column, index,
                primary key or discriminator, or an index names an
                undeclared column
        """
        if not entities:
            raise ConfigurationError("Cannot merge an empty entity group")

        table_names = {e.table_name for e in entities}
        if len(table_names) > 1:
            raise ConfigurationError(
                "Entities in one group must share a table",
                {"tables": ", ".join(sorted(table_names))},
            )
        table_name = entities[0].table_name

        primary_key = self._merge_primary_key(table_name, entities)
        columns = self._merge_columns(table_name, entities)
        discriminator = self._discriminator(table_name, entities)

        if discriminator and discriminator not in columns:
            columns[discriminator] = ColumnDefinition(
                discriminator, ColumnType.STRING, ColumnOptions(null=True)
            )

        indexes = self._merge_indexes(table_name, entities)
        self._check_index_columns(table_name, indexes, set(columns) | {primary_key})

        merged = TableDefinition(
            table_name=table_name,
            primary_key=primary_key,
            columns=tuple(columns.values()),
            indexes=tuple(indexes.values()),
            inheritance_column=discriminator,
        )
        logger.debug(
            f"Merged {len(entities)} entit{'y' if len(entities) == 1 else 'ies'} "
            f"into {table_name}: columns={merged.column_names} indexes={merged.index_names}"
        )
        return merged

    def _merge_primary_key(self, table_name: str, entities: Sequence[Entity]) -> str:
        declared = {}
        for entity in entities:
            key = entity.definition.primary_key or entity.primary_key
            if key:
                declared.setdefault(key, entity.name)
        if len(declared) > 1:
            raise ConfigurationError(
                "Entities sharing a table declare different primary keys",
                {"table": table_name, "primary_keys": ", ".join(f"{k} ({e})" for k, e in declared.items())},
            )
        return next(iter(declared), DEFAULT_PRIMARY_KEY)

    def _merge_columns(self, table_name: str, entities: Sequence[Entity]) -> Dict[str, ColumnDefinition]:
        columns: Dict[str, ColumnDefinition] = {}
        owners: Dict[str, str] = {}
        for entity in entities:
            for column in entity.definition.columns:
                existing = columns.get(column.name)
                if existing is None:
                    columns[column.name] = column
                    owners[column.name] = entity.name
                elif existing != column:
                    raise ConfigurationError(
                        f"Column '{column.name}' is declared with different options "
                        f"by '{owners[column.name]}' and '{entity.name}'",
                        {"table": table_name, "first": str(existing), "second": str(column)},
                    )
        return columns

    def _discriminator(self, table_name: str, entities: Sequence[Entity]) -> Optional[str]:
        explicit = {e.inheritance_column for e in entities if e.inheritance_column}
        if len(explicit) > 1:
            raise ConfigurationError(
                "Entities sharing a table declare different inheritance columns",
                {"table": table_name, "columns": ", ".join(sorted(explicit))},
            )
        if explicit:
            return explicit.pop()
        if len(entities) > 1:
            return self.inheritance_column
        return None

    def _merge_indexes(self, table_name: str, entities: Sequence[Entity]) -> Dict[str, IndexDefinition]:
        indexes: Dict[str, IndexDefinition] = {}
        for entity in entities:
            for spec in entity.definition.indexes:
                index = spec.resolved(self.resolver, table_name)
                existing = indexes.get(index.name)
                if existing is None:
                    indexes[index.name] = index
                elif not existing.matches(index):
                    raise ConfigurationError(
                        f"Index '{index.name}' is declared with different definitions",
                        {"table": table_name, "first": str(existing), "second": str(index)},
                    )
        return indexes

    @staticmethod
    def _check_index_columns(table_name: str, indexes: Dict[str, IndexDefinition], known: set) -> None:
        for index in indexes.values():
            missing: List[str] = [c for c in index.columns if c not in known]
            if missing:
                raise ConfigurationError(
                    f"Index '{index.name}' references undeclared columns",
                    {"table": table_name, "columns": ", ".join(missing)},
                )
