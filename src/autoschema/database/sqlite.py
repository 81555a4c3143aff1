"""
SQLite driver for autoschema.

SQLite cannot alter a column in place, so ``change_column`` and
``drop_column`` rebuild the table inside a single transaction: create a copy
with the new shape and the primary key inline, copy the rows, drop the
original, rename the copy and recreate the surviving indexes.
"""

import logging
import re
import sqlite3
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..exceptions import ConstraintViolation, DatabaseConnectionError, DriverError
from ..schema.definitions import ColumnDefinition, ColumnOptions, ColumnType, IndexDefinition
from .base import DatabaseDriver, parse_default


logger = logging.getLogger(__name__)

REBUILD_PREFIX = "_autoschema_rebuild_"

_TYPE_SQL = {
    ColumnType.STRING: "VARCHAR",
    ColumnType.TEXT: "TEXT",
    ColumnType.INTEGER: "INTEGER",
    ColumnType.BIGINT: "BIGINT",
    ColumnType.FLOAT: "FLOAT",
    ColumnType.DECIMAL: "DECIMAL",
    ColumnType.BOOLEAN: "BOOLEAN",
    ColumnType.DATE: "DATE",
    ColumnType.DATETIME: "DATETIME",
    ColumnType.TIME: "TIME",
    ColumnType.BINARY: "BLOB",
    ColumnType.UNKNOWN: "TEXT",
}

_SQL_TYPES = {
    "VARCHAR": ColumnType.STRING,
    "CHARACTER VARYING": ColumnType.STRING,
    "NVARCHAR": ColumnType.STRING,
    "TEXT": ColumnType.TEXT,
    "CLOB": ColumnType.TEXT,
    "INTEGER": ColumnType.INTEGER,
    "INT": ColumnType.INTEGER,
    "SMALLINT": ColumnType.INTEGER,
    "BIGINT": ColumnType.BIGINT,
    "FLOAT": ColumnType.FLOAT,
    "REAL": ColumnType.FLOAT,
    "DOUBLE": ColumnType.FLOAT,
    "DOUBLE PRECISION": ColumnType.FLOAT,
    "DECIMAL": ColumnType.DECIMAL,
    "NUMERIC": ColumnType.DECIMAL,
    "BOOLEAN": ColumnType.BOOLEAN,
    "DATE": ColumnType.DATE,
    "DATETIME": ColumnType.DATETIME,
    "TIMESTAMP": ColumnType.DATETIME,
    "TIME": ColumnType.TIME,
    "BLOB": ColumnType.BINARY,
}

_TYPE_PATTERN = re.compile(
    r"^\s*([A-Za-z][A-Za-z ]*?)\s*(?:\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\))?\s*$"
)


def parse_sql_type(declared: Optional[str]) -> Tuple[ColumnType, Optional[int], Optional[int]]:
    """``VARCHAR(100)`` -> ``(STRING, 100, None)``; unknown types map to UNKNOWN."""
    match = _TYPE_PATTERN.match(declared or "")
    if not match:
        return ColumnType.UNKNOWN, None, None
    base, size, scale = match.groups()
    column_type = _SQL_TYPES.get(" ".join(base.upper().split()), ColumnType.UNKNOWN)
    return (
        column_type,
        int(size) if size is not None else None,
        int(scale) if scale is not None else None,
    )


class SQLiteDriver(DatabaseDriver):
    """Driver backed by the standard library sqlite3 module, in autocommit mode."""

    dialect = "sqlite"
    default_max_identifier_length = 64

    def __init__(
        self,
        database: str = ":memory:",
        timeout: float = 5.0,
        max_identifier_length: Optional[int] = None,
    ):
        super().__init__(max_identifier_length)
        self.database = database
        try:
            self._connection = sqlite3.connect(database, timeout=timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to open SQLite database: {e}", {"database": database}, e
            ) from e
        self._connection.row_factory = sqlite3.Row

    def __repr__(self) -> str:
        return f"SQLiteDriver({self.database!r})"

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        logger.debug(f"SQL: {sql}")
        try:
            return self._connection.execute(sql, tuple(params))
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(f"Constraint violated: {e}", cause=e, sql=sql) from e
        except sqlite3.Error as e:
            raise DriverError(f"SQLite error: {e}", cause=e, sql=sql) from e

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        self._execute(sql, params)

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._execute(sql, params).fetchall()]

    def close(self) -> None:
        self._connection.close()

    # Introspection

    def table_exists(self, table: str) -> bool:
        row = self._execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        ).fetchone()
        return row is not None

    def _table_info(self, table: str) -> List[sqlite3.Row]:
        return self._execute(f"PRAGMA table_info({self.quote_identifier(table)})").fetchall()

    def columns(self, table: str) -> List[ColumnDefinition]:
        return [self._column_from_row(row) for row in self._table_info(table)]

    @staticmethod
    def _column_from_row(row: sqlite3.Row) -> ColumnDefinition:
        column_type, size, scale = parse_sql_type(row["type"])
        options: Dict[str, Any] = {
            "null": not row["notnull"],
            "default": parse_default(row["dflt_value"]),
        }
        if column_type == ColumnType.STRING and size:
            options["limit"] = size
        elif column_type == ColumnType.DECIMAL and size:
            options["precision"] = size
            options["scale"] = scale
        return ColumnDefinition(row["name"], column_type, ColumnOptions(**options))

    def indexes(self, table: str) -> List[IndexDefinition]:
        result = []
        for row in self._execute(f"PRAGMA index_list({self.quote_identifier(table)})").fetchall():
            # 'pk' and 'u' indexes back constraints, only 'c' comes from CREATE INDEX
            if row["origin"] != "c":
                continue
            info = self._execute(f"PRAGMA index_info({self.quote_identifier(row['name'])})").fetchall()
            columns = [r["name"] for r in sorted(info, key=lambda r: r["seqno"])]
            if not columns or any(c is None for c in columns):
                logger.debug(f"Skipping expression index {row['name']} on {table}")
                continue
            result.append(IndexDefinition(tuple(columns), bool(row["unique"]), row["name"]))
        return sorted(result, key=lambda i: i.name)

    def primary_key(self, table: str) -> Optional[str]:
        return self._primary_key_from(self._table_info(table))

    @staticmethod
    def _primary_key_from(rows: Sequence[sqlite3.Row]) -> Optional[str]:
        keys = sorted((row for row in rows if row["pk"]), key=lambda row: row["pk"])
        if len(keys) > 1:
            logger.warning(f"Composite primary key ({', '.join(r['name'] for r in keys)}) is not supported")
        return keys[0]["name"] if keys else None

    # SQL rendering

    def type_sql(self, column: ColumnDefinition) -> str:
        if column.type == ColumnType.STRING:
            return f"VARCHAR({column.limit})"
        if column.type == ColumnType.DECIMAL and column.precision is not None:
            return f"DECIMAL({column.precision},{column.scale})"
        try:
            return _TYPE_SQL[column.type]
        except KeyError:
            raise DriverError(f"Column type {column.type.value} cannot be created directly") from None

    def literal(self, value: Any) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return super().literal(value)

    def primary_key_column_sql(self, column: ColumnDefinition) -> str:
        if column.type == ColumnType.INTEGER:
            return f"{self.quote_identifier(column.name)} INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL"
        return super().primary_key_column_sql(column)

    # DDL

    def create_table(self, table: str, columns: Sequence[ColumnDefinition], primary_key: str) -> None:
        self.execute(self.create_table_sql(table, columns, primary_key))

    def add_column(self, table: str, column: ColumnDefinition) -> None:
        if not column.nullable and column.default is None:
            # ALTER TABLE ADD COLUMN refuses NOT NULL without a default
            self._rebuild_table(table, append=column)
            return
        self.execute(
            f"ALTER TABLE {self.quote_identifier(table)} ADD COLUMN {self.column_sql(column)}"
        )

    def change_column(self, table: str, column: ColumnDefinition) -> None:
        self._rebuild_table(table, replace={column.name: column})

    def drop_column(self, table: str, column_name: str) -> None:
        self._rebuild_table(table, replace={column_name: None})

    def _raw_column_sql(self, row: sqlite3.Row, primary_key: Optional[str], autoincrement: bool) -> str:
        """Recreate an untouched column from its PRAGMA row, keeping the declared type verbatim."""
        name = self.quote_identifier(row["name"])
        declared_type = row["type"] or ""
        if row["name"] == primary_key:
            if declared_type.upper() == "INTEGER":
                suffix = " AUTOINCREMENT" if autoincrement else ""
                return f"{name} INTEGER PRIMARY KEY{suffix} NOT NULL"
            return " ".join(p for p in (name, declared_type, "NOT NULL PRIMARY KEY") if p)
        parts = [name]
        if declared_type:
            parts.append(declared_type)
        if row["notnull"]:
            parts.append("NOT NULL")
        if row["dflt_value"] is not None:
            parts.append(f"DEFAULT {row['dflt_value']}")
        return " ".join(parts)

    def _uses_autoincrement(self, table: str) -> bool:
        row = self._execute(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        ).fetchone()
        return bool(row and row["sql"] and "AUTOINCREMENT" in row["sql"].upper())

    def _rebuild_table(
        self,
        table: str,
        replace: Optional[Dict[str, Optional[ColumnDefinition]]] = None,
        append: Optional[ColumnDefinition] = None,
    ) -> None:
        """
        Rebuild ``table`` with some columns replaced, dropped (mapped to None)
        or appended. Rows are copied for every surviving column.
        """
        replace = replace or {}
        rows = self._table_info(table)
        if not rows:
            raise DriverError(f"Table {table} does not exist")
        existing = {row["name"] for row in rows}
        unknown = [name for name in replace if name not in existing]
        if unknown:
            raise DriverError(
                f"Column(s) {', '.join(unknown)} not found in {table}", {"table": table}
            )

        primary_key = self._primary_key_from(rows)
        autoincrement = self._uses_autoincrement(table)
        indexes = self.indexes(table)

        definitions: List[str] = []
        copied: List[str] = []
        for row in rows:
            name = row["name"]
            if name in replace:
                new_column = replace[name]
                if new_column is None:
                    continue
                if name == primary_key:
                    definitions.append(self.primary_key_column_sql(new_column))
                else:
                    definitions.append(self.column_sql(new_column))
            else:
                definitions.append(self._raw_column_sql(row, primary_key, autoincrement))
            copied.append(name)
        if append is not None:
            definitions.append(self.column_sql(append))

        surviving = set(copied) | ({append.name} if append is not None else set())
        kept_indexes = [i for i in indexes if all(c in surviving for c in i.columns)]
        for index in indexes:
            if index not in kept_indexes:
                logger.info(f"Index {index.name} on {table} dropped with its column(s)")

        quoted_table = self.quote_identifier(table)
        temporary = self.quote_identifier(f"{REBUILD_PREFIX}{table}")
        column_list = ", ".join(self.quote_identifier(c) for c in copied)
        body = ",\n    ".join(definitions)

        statements = [
            f"CREATE TABLE {temporary} (\n    {body}\n)",
            f"INSERT INTO {temporary} ({column_list}) SELECT {column_list} FROM {quoted_table}",
            f"DROP TABLE {quoted_table}",
            f"ALTER TABLE {temporary} RENAME TO {quoted_table}",
        ]
        statements.extend(self.create_index_sql(table, index) for index in kept_indexes)

        logger.debug(f"Rebuilding {table} ({len(copied)} column(s) copied)")
        self._run_in_transaction(statements)

    def _run_in_transaction(self, statements: Sequence[str]) -> None:
        foreign_keys = self._execute("PRAGMA foreign_keys").fetchone()[0]
        if foreign_keys:
            self._execute("PRAGMA foreign_keys = OFF")
        try:
            self._execute("BEGIN")
            try:
                for statement in statements:
                    self._execute(statement)
            except DriverError:
                self._connection.execute("ROLLBACK")
                raise
            self._execute("COMMIT")
        finally:
            if foreign_keys:
                self._execute("PRAGMA foreign_keys = ON")
