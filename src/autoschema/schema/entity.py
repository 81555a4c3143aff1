"""
Entity descriptors and the registry that groups them by table.

An entity binds an identity to a table name and to its locally declared
TableDefinition fragment. Entities that share a table name form a single
table inheritance group and are merged before diffing.
"""

import re
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from ..exceptions import ConfigurationError
from .definitions import ColumnType, SchemaBuilder, TableDefinition


def default_table_name(entity_name: str) -> str:
    """``AutomobileMakeModel`` -> ``automobile_make_model``."""
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", entity_name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


class Entity:
    """A declared entity and its current schema fragment."""

    def __init__(
        self,
        name: str,
        table_name: Optional[str] = None,
        primary_key: Optional[str] = None,
        inheritance_column: Optional[str] = None,
    ):
        if not name:
            raise ConfigurationError("Entity name is required")
        self.name = name
        self.table_name = table_name or default_table_name(name)
        self.primary_key = primary_key
        self.inheritance_column = inheritance_column
        self._definition = TableDefinition(self.table_name, primary_key)

    def __repr__(self) -> str:
        return f"Entity({self.name!r}, table_name={self.table_name!r})"

    @property
    def definition(self) -> TableDefinition:
        return self._definition

    @contextmanager
    def schema(self) -> Iterator[SchemaBuilder]:
        """
        Replace the whole declaration with the block's contents.

        Columns left out of the block are no longer declared and will be
        dropped by the next reconciliation::

            with people.schema() as t:
                t.string("name")
        """
        builder = SchemaBuilder(self.table_name, self.primary_key)
        yield builder
        self._definition = builder.build()

    def define(self, definition: TableDefinition) -> "Entity":
        """Replace the fragment with a prebuilt definition."""
        if definition.table_name != self.table_name:
            raise ConfigurationError(
                "Definition belongs to a different table",
                {"entity": self.name, "expected": self.table_name, "got": definition.table_name},
            )
        self._definition = definition
        return self

    def _extend(self) -> SchemaBuilder:
        return SchemaBuilder.from_definition(self._definition)

    def col(self, *names: str, as_: Union[str, ColumnType] = ColumnType.STRING, **options: Any) -> "Entity":
        """Add columns to the current declaration."""
        self._definition = self._extend().col(*names, as_=as_, **options).build()
        return self

    key = col

    def column(self, name: str, type: Union[str, ColumnType] = ColumnType.STRING, **options: Any) -> "Entity":
        self._definition = self._extend().column(name, type, **options).build()
        return self

    def add_index(
        self,
        columns: Union[str, Sequence[str]],
        unique: bool = False,
        name: Optional[str] = None,
    ) -> "Entity":
        self._definition = self._extend().index(columns, unique=unique, name=name).build()
        return self

    def remove_index(self, name_or_columns: Union[str, Sequence[str]], resolver: Any = None) -> "Entity":
        self._definition = self._definition.without_index(name_or_columns, resolver)
        return self

    def reset_table_definition(self) -> "Entity":
        """Clear the declaration so the next one replaces rather than extends it."""
        self._definition = TableDefinition(self.table_name, self.primary_key)
        return self


class EntityRegistry:
    """Maps table names to the entities bound to them, in registration order."""

    def __init__(self, entities: Optional[Iterable[Entity]] = None):
        self._tables: Dict[str, List[Entity]] = {}
        self._order: List[Entity] = []
        for entity in entities or ():
            self.register(entity)

    def register(self, entity: Entity) -> Entity:
        """Add ``entity`` to its table group; entity names are unique across the registry."""
        for existing in self._order:
            if existing is entity:
                return entity
            if existing.name == entity.name:
                raise ConfigurationError(
                    f"Entity '{entity.name}' is already registered",
                    {"table": existing.table_name},
                )
        self._tables.setdefault(entity.table_name, []).append(entity)
        self._order.append(entity)
        return entity

    def unregister(self, entity: Entity) -> None:
        group = self._tables.get(entity.table_name, [])
        if entity in group:
            group.remove(entity)
            self._order.remove(entity)
        if not group:
            self._tables.pop(entity.table_name, None)

    def group(self, table_name: str) -> List[Entity]:
        return list(self._tables.get(table_name, []))

    def get(self, name: str) -> Entity:
        for entity in self:
            if entity.name == name:
                return entity
        raise ConfigurationError(f"Entity '{name}' is not registered")

    def tables(self) -> List[str]:
        return list(self._tables)

    def __contains__(self, entity: object) -> bool:
        return any(entity is e for e in self)

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._order))

    def __len__(self) -> int:
        return len(self._order)
