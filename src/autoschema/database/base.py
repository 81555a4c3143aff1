"""
Database driver capability interface.

The reconciler only talks to the database through these methods. Drivers
translate native errors into DriverError / ConstraintViolation.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..schema.definitions import ColumnDefinition, ColumnOptions, ColumnType, IndexDefinition


logger = logging.getLogger(__name__)

_NUMBER_PATTERN = re.compile(r"^[+-]?\d+(\.\d+)?([eE][+-]?\d+)?$")


def parse_default(raw: Optional[str]) -> Any:
    """Turn a SQL default literal back into a Python value."""
    if raw is None:
        return None
    value = raw.strip()
    while value.startswith("(") and value.endswith(")"):
        value = value[1:-1].strip()
    if value.upper() == "NULL":
        return None
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1].replace("''", "'")
    if value.upper() in ("TRUE", "FALSE"):
        return value.upper() == "TRUE"
    if _NUMBER_PATTERN.match(value):
        return float(value) if any(ch in value for ch in ".eE") else int(value)
    return value


class DatabaseDriver(ABC):
    """Abstract database driver used by the inspector and the operation executor."""

    dialect = "generic"
    default_max_identifier_length = 63

    def __init__(self, max_identifier_length: Optional[int] = None):
        self.max_identifier_length = max_identifier_length or self.default_max_identifier_length

    def __enter__(self) -> "DatabaseDriver":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # Introspection

    @abstractmethod
    def table_exists(self, table: str) -> bool:
        """Check if a table exists."""

    @abstractmethod
    def columns(self, table: str) -> List[ColumnDefinition]:
        """Live columns in table order."""

    @abstractmethod
    def indexes(self, table: str) -> List[IndexDefinition]:
        """Live secondary indexes, excluding the primary key index."""

    @abstractmethod
    def primary_key(self, table: str) -> Optional[str]:
        """Primary key column name, or None."""

    # DDL

    @abstractmethod
    def create_table(self, table: str, columns: Sequence[ColumnDefinition], primary_key: str) -> None:
        """Create a table with the primary key constraint inline."""

    @abstractmethod
    def add_column(self, table: str, column: ColumnDefinition) -> None:
        pass

    @abstractmethod
    def change_column(self, table: str, column: ColumnDefinition) -> None:
        pass

    @abstractmethod
    def drop_column(self, table: str, column_name: str) -> None:
        pass

    def add_index(self, table: str, index: IndexDefinition) -> None:
        self.execute(self.create_index_sql(table, index))

    def drop_index(self, table: str, index_name: str) -> None:
        self.execute(f"DROP INDEX {self.quote_identifier(index_name)}")

    def drop_table(self, table: str) -> None:
        self.execute(f"DROP TABLE IF EXISTS {self.table_sql(table)}")

    # Data access

    @abstractmethod
    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        pass

    @abstractmethod
    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    # SQL rendering

    @staticmethod
    def quote_identifier(name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def table_sql(self, table: str) -> str:
        """Table reference as it appears in DDL."""
        return self.quote_identifier(table)

    @abstractmethod
    def type_sql(self, column: ColumnDefinition) -> str:
        """SQL type for an abstract column."""

    def literal(self, value: Any) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return repr(value)
        return "'" + str(value).replace("'", "''") + "'"

    def column_sql(self, column: ColumnDefinition) -> str:
        parts = [self.quote_identifier(column.name), self.type_sql(column)]
        if not column.nullable:
            parts.append("NOT NULL")
        if column.default is not None:
            parts.append(f"DEFAULT {self.literal(column.default)}")
        return " ".join(parts)

    def primary_key_column_sql(self, column: ColumnDefinition) -> str:
        return f"{self.quote_identifier(column.name)} {self.type_sql(column)} NOT NULL PRIMARY KEY"

    def create_table_sql(self, table: str, columns: Sequence[ColumnDefinition], primary_key: str) -> str:
        columns = list(columns)
        if not any(c.name == primary_key for c in columns):
            columns.insert(0, ColumnDefinition(primary_key, ColumnType.INTEGER, ColumnOptions(null=False)))

        parts = [
            self.primary_key_column_sql(c) if c.name == primary_key else self.column_sql(c)
            for c in columns
        ]
        body = ",\n    ".join(parts)
        return f"CREATE TABLE {self.table_sql(table)} (\n    {body}\n)"

    def create_index_sql(self, table: str, index: IndexDefinition) -> str:
        kind = "UNIQUE INDEX" if index.unique else "INDEX"
        columns = ", ".join(self.quote_identifier(c) for c in index.columns)
        return (
            f"CREATE {kind} {self.quote_identifier(index.name)} "
            f"ON {self.table_sql(table)} ({columns})"
        )
