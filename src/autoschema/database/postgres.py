"""
PostgreSQL driver for autoschema.

The reconciler is synchronous, so the driver owns a private event loop and
runs every asyncpg call to completion on it.
"""

import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import asyncpg

from ..exceptions import AutoSchemaError, ConstraintViolation, DriverError
from ..schema.definitions import ColumnDefinition, ColumnOptions, ColumnType, IndexDefinition
from .base import DatabaseDriver, parse_default
from .connection import ConnectionConfig, ConnectionPool


logger = logging.getLogger(__name__)

T = TypeVar("T")

_TYPE_SQL = {
    ColumnType.STRING: "character varying",
    ColumnType.TEXT: "text",
    ColumnType.INTEGER: "integer",
    ColumnType.BIGINT: "bigint",
    ColumnType.FLOAT: "double precision",
    ColumnType.DECIMAL: "numeric",
    ColumnType.BOOLEAN: "boolean",
    ColumnType.DATE: "date",
    ColumnType.DATETIME: "timestamp",
    ColumnType.TIME: "time",
    ColumnType.BINARY: "bytea",
    ColumnType.UNKNOWN: "text",
}

_DATA_TYPES = {
    "character varying": ColumnType.STRING,
    "character": ColumnType.STRING,
    "text": ColumnType.TEXT,
    "integer": ColumnType.INTEGER,
    "smallint": ColumnType.INTEGER,
    "bigint": ColumnType.BIGINT,
    "double precision": ColumnType.FLOAT,
    "real": ColumnType.FLOAT,
    "numeric": ColumnType.DECIMAL,
    "boolean": ColumnType.BOOLEAN,
    "date": ColumnType.DATE,
    "timestamp without time zone": ColumnType.DATETIME,
    "timestamp with time zone": ColumnType.DATETIME,
    "time without time zone": ColumnType.TIME,
    "time with time zone": ColumnType.TIME,
    "bytea": ColumnType.BINARY,
}

_CAST_SUFFIX = re.compile(r"::[a-z_ ]+(\(\d+(,\s*\d+)?\))?(\[\])?$", re.IGNORECASE)


def parse_column_default(raw: Optional[str]) -> Any:
    """``'draft'::character varying`` -> ``'draft'``; function defaults stay strings."""
    if raw is None:
        return None
    value = raw.strip()
    while True:
        stripped = _CAST_SUFFIX.sub("", value)
        if stripped == value:
            break
        value = stripped.strip()
    return parse_default(value)


class PostgresDriver(DatabaseDriver):
    """Driver backed by an asyncpg connection pool."""

    dialect = "postgresql"
    default_max_identifier_length = 63

    def __init__(
        self,
        config: ConnectionConfig,
        schema_name: str = "public",
        max_identifier_length: Optional[int] = None,
    ):
        super().__init__(max_identifier_length)
        self.config = config
        self.schema_name = schema_name
        self._loop = asyncio.new_event_loop()
        self.pool = ConnectionPool(config)

    @classmethod
    def from_url(cls, url: str, schema_name: str = "public", **kwargs: Any) -> "PostgresDriver":
        max_identifier_length = kwargs.pop("max_identifier_length", None)
        return cls(ConnectionConfig.from_url(url, **kwargs), schema_name, max_identifier_length)

    def __repr__(self) -> str:
        return (
            f"PostgresDriver({self.config.host}:{self.config.port}/"
            f"{self.config.database}, schema={self.schema_name!r})"
        )

    def connect(self) -> "PostgresDriver":
        """Open the pool; other calls connect lazily."""
        self._loop.run_until_complete(self.pool.initialize())
        return self

    def _run(self, method: Callable[..., Awaitable[T]], *args: Any, sql: Optional[str] = None) -> T:
        if self._loop.is_closed():
            raise DriverError("Driver is closed")
        try:
            if not self.pool.is_initialized:
                self._loop.run_until_complete(self.pool.initialize())
            return self._loop.run_until_complete(method(*args))
        except AutoSchemaError:
            raise
        except asyncpg.IntegrityConstraintViolationError as e:
            raise ConstraintViolation(f"Constraint violated: {e}", cause=e, sql=sql) from e
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise DriverError(f"PostgreSQL error: {e}", cause=e, sql=sql) from e
        except (OSError, asyncio.TimeoutError) as e:
            raise DriverError(f"PostgreSQL connection error: {e}", cause=e, sql=sql) from e

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        logger.debug(f"SQL: {sql}")
        self._run(self.pool.execute, sql, *params, sql=sql)

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        logger.debug(f"SQL: {sql}")
        rows = self._run(self.pool.fetch, sql, *params, sql=sql)
        return [dict(row) for row in rows]

    def _fetchval(self, sql: str, *params: Any) -> Any:
        return self._run(self.pool.fetchval, sql, *params, sql=sql)

    def close(self) -> None:
        if self._loop.is_closed():
            return
        try:
            self._loop.run_until_complete(self.pool.close())
        finally:
            self._loop.close()

    # Introspection

    def table_exists(self, table: str) -> bool:
        query = """
            SELECT EXISTS (
                SELECT 1 FROM information_schema.tables
                WHERE table_schema = $1 AND table_name = $2
            )
        """
        return bool(self._fetchval(query, self.schema_name, table))

    def columns(self, table: str) -> List[ColumnDefinition]:
        query = """
            SELECT
                c.column_name,
                c.data_type,
                c.is_nullable,
                c.column_default,
                c.character_maximum_length,
                c.numeric_precision,
                c.numeric_scale
            FROM information_schema.columns c
            WHERE c.table_schema = $1 AND c.table_name = $2
            ORDER BY c.ordinal_position
        """
        rows = self.fetch_all(query, (self.schema_name, table))
        return [self._column_from_row(row) for row in rows]

    @staticmethod
    def _column_from_row(row: Dict[str, Any]) -> ColumnDefinition:
        column_type = _DATA_TYPES.get(row["data_type"], ColumnType.UNKNOWN)
        options: Dict[str, Any] = {
            "null": row["is_nullable"] == "YES",
            "default": parse_column_default(row["column_default"]),
        }
        if column_type == ColumnType.STRING and row["character_maximum_length"]:
            options["limit"] = row["character_maximum_length"]
        elif column_type == ColumnType.DECIMAL and row["numeric_precision"]:
            options["precision"] = row["numeric_precision"]
            options["scale"] = row["numeric_scale"]
        return ColumnDefinition(row["column_name"], column_type, ColumnOptions(**options))

    def indexes(self, table: str) -> List[IndexDefinition]:
        query = """
            SELECT
                ic.relname AS index_name,
                ix.indisunique AS is_unique,
                array_agg(a.attname ORDER BY array_position(ix.indkey, a.attnum)) AS columns
            FROM pg_index ix
            JOIN pg_class tc ON tc.oid = ix.indrelid
            JOIN pg_class ic ON ic.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = tc.relnamespace
            JOIN pg_attribute a ON a.attrelid = ix.indrelid AND a.attnum = ANY(ix.indkey)
            LEFT JOIN pg_constraint con ON con.conindid = ix.indexrelid
            WHERE n.nspname = $1 AND tc.relname = $2
              AND NOT ix.indisprimary
              AND con.oid IS NULL
            GROUP BY ic.relname, ix.indisunique
            ORDER BY ic.relname
        """
        rows = self.fetch_all(query, (self.schema_name, table))
        return [
            IndexDefinition(tuple(row["columns"]), bool(row["is_unique"]), row["index_name"])
            for row in rows
        ]

    def primary_key(self, table: str) -> Optional[str]:
        query = """
            SELECT a.attname
            FROM pg_index ix
            JOIN pg_class tc ON tc.oid = ix.indrelid
            JOIN pg_namespace n ON n.oid = tc.relnamespace
            JOIN pg_attribute a ON a.attrelid = ix.indrelid AND a.attnum = ANY(ix.indkey)
            WHERE n.nspname = $1 AND tc.relname = $2 AND ix.indisprimary
            ORDER BY array_position(ix.indkey, a.attnum)
        """
        rows = self.fetch_all(query, (self.schema_name, table))
        if len(rows) > 1:
            logger.warning(
                f"Composite primary key ({', '.join(r['attname'] for r in rows)}) is not supported"
            )
        return rows[0]["attname"] if rows else None

    # SQL rendering

    def table_sql(self, table: str) -> str:
        return f"{self.quote_identifier(self.schema_name)}.{self.quote_identifier(table)}"

    def type_sql(self, column: ColumnDefinition) -> str:
        if column.type == ColumnType.STRING:
            return f"character varying({column.limit})"
        if column.type == ColumnType.DECIMAL and column.precision is not None:
            return f"numeric({column.precision},{column.scale})"
        try:
            return _TYPE_SQL[column.type]
        except KeyError:
            raise DriverError(f"Column type {column.type.value} cannot be created directly") from None

    def primary_key_column_sql(self, column: ColumnDefinition) -> str:
        if column.type == ColumnType.INTEGER:
            return f"{self.quote_identifier(column.name)} serial PRIMARY KEY"
        if column.type == ColumnType.BIGINT:
            return f"{self.quote_identifier(column.name)} bigserial PRIMARY KEY"
        return super().primary_key_column_sql(column)

    # DDL

    def create_table(self, table: str, columns: Sequence[ColumnDefinition], primary_key: str) -> None:
        self.execute(self.create_table_sql(table, columns, primary_key))

    def add_column(self, table: str, column: ColumnDefinition) -> None:
        self.execute(f"ALTER TABLE {self.table_sql(table)} ADD COLUMN {self.column_sql(column)}")

    def change_column(self, table: str, column: ColumnDefinition) -> None:
        name = self.quote_identifier(column.name)
        column_type = self.type_sql(column)
        # The old default is dropped first; ALTER TYPE would otherwise cast it without USING.
        clauses = [
            f"ALTER COLUMN {name} DROP DEFAULT",
            f"ALTER COLUMN {name} TYPE {column_type} USING {name}::{column_type}",
            f"ALTER COLUMN {name} {'DROP' if column.nullable else 'SET'} NOT NULL",
        ]
        if column.default is not None:
            clauses.append(f"ALTER COLUMN {name} SET DEFAULT {self.literal(column.default)}")
        self.execute(f"ALTER TABLE {self.table_sql(table)} " + ", ".join(clauses))

    def drop_column(self, table: str, column_name: str) -> None:
        self.execute(
            f"ALTER TABLE {self.table_sql(table)} DROP COLUMN {self.quote_identifier(column_name)}"
        )

    def drop_index(self, table: str, index_name: str) -> None:
        self.execute(
            f"DROP INDEX {self.quote_identifier(self.schema_name)}.{self.quote_identifier(index_name)}"
        )
