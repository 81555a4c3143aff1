"""
Unit tests for the SQLite driver.

These run against an in-memory database; SQLite ships with Python.
"""

import sqlite3

import pytest

from autoschema.database.base import parse_default
from autoschema.database.sqlite import REBUILD_PREFIX, SQLiteDriver, parse_sql_type
from autoschema.exceptions import ConstraintViolation, DriverError
from autoschema.schema.definitions import ColumnDefinition, ColumnOptions, ColumnType, IndexDefinition


def make_people(driver):
    driver.create_table(
        "people",
        [
            ColumnDefinition("name", options=ColumnOptions(limit=100)),
            ColumnDefinition("age", ColumnType.INTEGER),
        ],
        "id",
    )


class TestParsing:
    """Test SQL type and default parsing."""

    @pytest.mark.parametrize(
        "declared,expected",
        [
            ("VARCHAR(100)", (ColumnType.STRING, 100, None)),
            ("varchar (20)", (ColumnType.STRING, 20, None)),
            ("DECIMAL(10,2)", (ColumnType.DECIMAL, 10, 2)),
            ("INTEGER", (ColumnType.INTEGER, None, None)),
            ("double precision", (ColumnType.FLOAT, None, None)),
            ("BLOB", (ColumnType.BINARY, None, None)),
            ("GEOMETRY", (ColumnType.UNKNOWN, None, None)),
            ("", (ColumnType.UNKNOWN, None, None)),
        ],
    )
    def test_parse_sql_type(self, declared, expected):
        assert parse_sql_type(declared) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, None),
            ("NULL", None),
            ("'it''s'", "it's"),
            ("42", 42),
            ("-1", -1),
            ("1.5", 1.5),
            ("(0)", 0),
            ("TRUE", True),
            ("CURRENT_TIMESTAMP", "CURRENT_TIMESTAMP"),
        ],
    )
    def test_parse_default(self, raw, expected):
        assert parse_default(raw) == expected


class TestSQLiteIntrospection:
    """Test PRAGMA-based introspection."""

    def test_table_exists(self, driver):
        assert not driver.table_exists("people")

        make_people(driver)

        assert driver.table_exists("people")

    def test_columns_round_trip_declaration(self, driver):
        """Test live columns compare equal to what was declared."""
        make_people(driver)

        columns = driver.columns("people")

        assert [c.name for c in columns] == ["id", "name", "age"]
        assert columns[1].type == ColumnType.STRING
        assert columns[1].limit == 100
        assert columns[2].type == ColumnType.INTEGER
        assert not columns[0].nullable

    def test_primary_key_inline(self, driver):
        make_people(driver)

        assert driver.primary_key("people") == "id"

    def test_indexes_exclude_constraint_indexes(self, driver):
        """Test only CREATE INDEX indexes are reported."""
        driver.create_table(
            "codes",
            [ColumnDefinition("code", options=ColumnOptions(null=False))],
            "code",
        )
        driver.execute('CREATE TABLE "tags" ("id" INTEGER PRIMARY KEY, "label" TEXT UNIQUE)')
        driver.add_index("tags", IndexDefinition(("label", "id"), True, "index_tags_on_label_and_id"))

        assert driver.indexes("codes") == []
        assert driver.indexes("tags") == [
            IndexDefinition(("label", "id"), True, "index_tags_on_label_and_id")
        ]

    def test_defaults_introspected(self, driver):
        driver.create_table(
            "flags",
            [
                ColumnDefinition("active", ColumnType.BOOLEAN, ColumnOptions(default=True)),
                ColumnDefinition("label", options=ColumnOptions(default="n/a", null=False)),
            ],
            "id",
        )

        columns = {c.name: c for c in driver.columns("flags")}

        assert columns["active"].default == 1
        assert not columns["active"].differs_from(
            ColumnDefinition("active", ColumnType.BOOLEAN, ColumnOptions(default=True))
        )
        assert columns["label"].default == "n/a"
        assert not columns["label"].nullable


class TestSQLiteDDL:
    """Test DDL through the driver."""

    def test_create_table_sql(self, driver):
        """Test the primary key is established inline at creation."""
        sql = driver.create_table_sql("people", [ColumnDefinition("name")], "id")

        assert '"id" INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL' in sql
        assert '"name" VARCHAR(255)' in sql

    def test_add_nullable_column(self, driver):
        make_people(driver)

        driver.add_column("people", ColumnDefinition("email"))

        assert [c.name for c in driver.columns("people")] == ["id", "name", "age", "email"]

    def test_add_not_null_column_without_default_rebuilds(self, driver):
        """Test a NOT NULL column without default is added through a rebuild."""
        make_people(driver)

        driver.add_column("people", ColumnDefinition("code", options=ColumnOptions(null=False)))

        code = {c.name: c for c in driver.columns("people")}["code"]
        assert not code.nullable

    def test_change_column_keeps_data_and_indexes(self, driver):
        """Test a rebuild preserves rows, other columns and surviving indexes."""
        make_people(driver)
        driver.add_index("people", IndexDefinition(("age",), False, "index_people_on_age"))
        driver.execute('INSERT INTO "people" ("name", "age") VALUES (?, ?)', ("Ada", 36))

        driver.change_column("people", ColumnDefinition("name", options=ColumnOptions(limit=200)))

        name = {c.name: c for c in driver.columns("people")}["name"]
        assert name.limit == 200
        assert driver.fetch_all('SELECT "id", "name", "age" FROM "people"') == [
            {"id": 1, "name": "Ada", "age": 36}
        ]
        assert [i.name for i in driver.indexes("people")] == ["index_people_on_age"]
        assert driver.primary_key("people") == "id"

    def test_rebuild_keeps_autoincrement(self, driver):
        make_people(driver)

        driver.drop_column("people", "age")

        sql = driver.fetch_all(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = 'people'"
        )[0]["sql"]
        assert "AUTOINCREMENT" in sql
        assert not driver.table_exists(f"{REBUILD_PREFIX}people")

    def test_drop_column_drops_its_indexes(self, driver):
        make_people(driver)
        driver.add_index("people", IndexDefinition(("age",), False, "index_people_on_age"))

        driver.drop_column("people", "age")

        assert [c.name for c in driver.columns("people")] == ["id", "name"]
        assert driver.indexes("people") == []

    def test_drop_unknown_column(self, driver):
        make_people(driver)

        with pytest.raises(DriverError, match="not found"):
            driver.drop_column("people", "missing")

    def test_failed_rebuild_rolls_back(self, driver):
        """Test a rebuild that fails leaves the original table in place."""
        make_people(driver)
        driver.execute('INSERT INTO "people" ("name") VALUES (NULL)')

        with pytest.raises(ConstraintViolation):
            driver.change_column("people", ColumnDefinition("name", options=ColumnOptions(null=False)))

        assert driver.table_exists("people")
        assert not driver.table_exists(f"{REBUILD_PREFIX}people")
        assert len(driver.fetch_all('SELECT * FROM "people"')) == 1

    def test_drop_index_and_table(self, driver):
        make_people(driver)
        driver.add_index("people", IndexDefinition(("name",), False, "index_people_on_name"))

        driver.drop_index("people", "index_people_on_name")
        assert driver.indexes("people") == []

        driver.drop_table("people")
        assert not driver.table_exists("people")

    def test_duplicate_primary_key_is_constraint_violation(self, driver):
        make_people(driver)
        driver.execute('INSERT INTO "people" ("id", "name") VALUES (1, ?)', ("Ada",))

        with pytest.raises(ConstraintViolation) as exc_info:
            driver.execute('INSERT INTO "people" ("id", "name") VALUES (1, ?)', ("Bob",))

        assert "sql" in exc_info.value.details

    def test_invalid_sql_is_driver_error(self, driver):
        with pytest.raises(DriverError):
            driver.execute('SELECT "nope" FROM "missing"')

    def test_context_manager_closes(self):
        with SQLiteDriver() as sqlite_driver:
            assert sqlite_driver.dialect == "sqlite"
            assert sqlite_driver.max_identifier_length == 64

        with pytest.raises(sqlite3.ProgrammingError):
            sqlite_driver.connection.execute("SELECT 1")
