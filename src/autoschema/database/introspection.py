"""
Database schema introspection for autoschema.

Builds a LiveSchema snapshot of a table through the driver capability
interface. Snapshots are never cached: every call reads the database.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import AutoSchemaError, DriverError
from ..schema.definitions import ColumnDefinition, IndexDefinition


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveSchema:
    """The actual shape of a table at the time it was inspected."""

    table_name: str
    exists: bool
    primary_key: Optional[str] = None
    columns: Tuple[ColumnDefinition, ...] = ()
    indexes: Tuple[IndexDefinition, ...] = ()

    @classmethod
    def missing(cls, table_name: str) -> "LiveSchema":
        return cls(table_name=table_name, exists=False)

    @property
    def column_map(self) -> Dict[str, ColumnDefinition]:
        return {c.name: c for c in self.columns}

    @property
    def index_map(self) -> Dict[str, IndexDefinition]:
        return {i.name: i for i in self.indexes}

    @property
    def column_names(self) -> List[str]:
        return sorted(c.name for c in self.columns)

    @property
    def index_names(self) -> List[str]:
        return sorted(i.name for i in self.indexes)

    def has_column(self, column_name: str) -> bool:
        return column_name in self.column_map

    def get_column(self, column_name: str) -> Optional[ColumnDefinition]:
        return self.column_map.get(column_name)

    def has_index(self, index_name: str) -> bool:
        return index_name in self.index_map


class SchemaIntrospector:
    """Database schema introspection utilities."""

    def __init__(self, driver: Any):
        self.driver = driver

    def table_exists(self, table: str) -> bool:
        return self.driver.table_exists(table)

    def inspect(self, table: str) -> LiveSchema:
        """
        Read the live shape of a table.

        Returns:
            LiveSchema; ``exists`` is False when the table is absent

        Raises:
            DriverError: when the driver fails while reading
        """
        try:
            if not self.driver.table_exists(table):
                return LiveSchema.missing(table)

            columns = tuple(self.driver.columns(table))
            indexes = tuple(self.driver.indexes(table))
            primary_key = self.driver.primary_key(table)
        except AutoSchemaError:
            raise
        except Exception as e:
            logger.error(f"Error inspecting table {table}: {e}")
            raise DriverError(f"Failed to inspect table {table}", cause=e) from e

        return LiveSchema(
            table_name=table,
            exists=True,
            primary_key=primary_key,
            columns=columns,
            indexes=indexes,
        )
