"""
End-to-end reconciliation against SQLite.

Each test declares entities, runs auto_upgrade and checks the live table and
its rows, the way an application would see them after a deploy.
"""

import pytest

from autoschema.exceptions import ConstraintViolation, DriverError
from autoschema.schema.entity import Entity
from autoschema.schema.naming import IndexNameResolver
from autoschema.schema.operations import OperationMode
from autoschema.schema.reconciler import ReconciliationStatus, SchemaReconciler


def upgrade_ok(reconciler, entity):
    return reconciler.auto_upgrade(entity).raise_for_status()


class TestIdempotence:
    """A second upgrade with unchanged declarations does nothing."""

    def test_person(self, reconciler, person):
        upgrade_ok(reconciler, person)
        before = reconciler.inspect("people")

        result = upgrade_ok(reconciler, person)

        assert result.operations == []
        assert reconciler.inspect("people") == before

    def test_every_column_type(self, reconciler):
        """Test introspected types, sizes and defaults compare equal to the declaration."""
        entity = Entity("Sample")
        with entity.schema() as t:
            t.string("label", limit=40, default="n/a", null=False)
            t.text("notes")
            t.integer("count", default=0)
            t.bigint("total")
            t.float("ratio", default=1.5)
            t.decimal("amount", precision=12, scale=3)
            t.decimal("whole", precision=8)
            t.boolean("active", default=False)
            t.date("day")
            t.datetime("seen_at")
            t.time("opens_at")
            t.binary("payload")
            t.timestamps()

        upgrade_ok(reconciler, entity)

        assert upgrade_ok(reconciler, entity).operations == []

    def test_single_table_inheritance(self, reconciler, users):
        for entity in users:
            reconciler.register(entity)
        upgrade_ok(reconciler, users[0])

        for entity in users:
            assert upgrade_ok(reconciler, entity).operations == []

    def test_string_primary_key(self, reconciler, vegetable):
        upgrade_ok(reconciler, vegetable)

        assert upgrade_ok(reconciler, vegetable).operations == []
        assert reconciler.inspect("vegetables").primary_key == "latin_name"


class TestAdditiveSafety:
    """Adding columns keeps existing rows."""

    def test_add_column_keeps_rows(self, driver, reconciler, person):
        upgrade_ok(reconciler, person)
        driver.execute('INSERT INTO "people" ("name", "age") VALUES (?, ?)', ("Ada", 36))

        person.col("email")
        upgrade_ok(reconciler, person)

        assert driver.fetch_all('SELECT "name", "age", "email" FROM "people"') == [
            {"name": "Ada", "age": 36, "email": None}
        ]

    def test_add_column_with_default(self, driver, reconciler, person):
        upgrade_ok(reconciler, person)
        driver.execute('INSERT INTO "people" ("name") VALUES (?)', ("Ada",))

        person.col("status", null=False, default="active")
        upgrade_ok(reconciler, person)

        assert driver.fetch_all('SELECT "status" FROM "people"') == [{"status": "active"}]

    def test_change_column_limit(self, driver, reconciler, person):
        upgrade_ok(reconciler, person)
        driver.execute('INSERT INTO "people" ("name", "age") VALUES (?, ?)', ("Ada", 36))

        with person.schema() as t:
            t.string("name", limit=200)
            t.integer("age")
        result = upgrade_ok(reconciler, person)

        assert [op.operation_type.value for op in result.operations] == ["change_column"]
        assert result.live_schema.get_column("name").limit == 200
        assert driver.fetch_all('SELECT "name", "age" FROM "people"') == [{"name": "Ada", "age": 36}]

    def test_change_column_type_keeps_rows(self, driver, reconciler, person):
        upgrade_ok(reconciler, person)
        driver.execute('INSERT INTO "people" ("name", "age") VALUES (?, ?)', ("Ada Lovelace", 36))

        with person.schema() as t:
            t.text("name")
            t.integer("age")
        result = upgrade_ok(reconciler, person)

        assert [op.operation_type.value for op in result.operations] == ["change_column"]
        assert result.live_schema.get_column("name").type.value == "text"
        assert driver.fetch_all('SELECT "name", "age" FROM "people"') == [
            {"name": "Ada Lovelace", "age": 36}
        ]
        assert upgrade_ok(reconciler, person).operations == []


class TestSubtractiveSafety:
    """Columns no longer declared are dropped."""

    def test_dropped_column_is_gone(self, driver, reconciler, person):
        upgrade_ok(reconciler, person)
        driver.execute('INSERT INTO "people" ("name", "age") VALUES (?, ?)', ("Ada", 36))

        with person.schema() as t:
            t.string("name", limit=100)
        upgrade_ok(reconciler, person)

        assert reconciler.live_columns("people") == ["id", "name"]
        with pytest.raises(DriverError):
            driver.fetch_all('SELECT age FROM people')
        assert driver.fetch_all('SELECT "name" FROM "people"') == [{"name": "Ada"}]

    def test_primary_key_survives_empty_declaration(self, reconciler, person):
        upgrade_ok(reconciler, person)

        reconciler.reset_table_definition(person)
        upgrade_ok(reconciler, person)

        assert reconciler.live_columns("people") == ["id"]
        assert reconciler.inspect("people").primary_key == "id"


class TestIndexes:
    """Index lifecycle."""

    def test_add_and_remove_index(self, reconciler, person):
        upgrade_ok(reconciler, person)

        person.add_index(["name", "age"])
        upgrade_ok(reconciler, person)
        assert reconciler.live_indexes("people") == ["index_people_on_name_and_age"]

        person.remove_index(["name", "age"])
        upgrade_ok(reconciler, person)
        assert reconciler.live_indexes("people") == []

    def test_readded_index_gets_same_name(self, reconciler, person):
        person.add_index(["name", "age"])
        upgrade_ok(reconciler, person)
        (first,) = reconciler.live_indexes("people")

        person.remove_index(["name", "age"])
        upgrade_ok(reconciler, person)
        person.add_index(["name", "age"])
        upgrade_ok(reconciler, person)

        assert reconciler.live_indexes("people") == [first]
        assert upgrade_ok(reconciler, person).operations == []

    def test_unique_and_reference_indexes(self, reconciler, post, users):
        upgrade_ok(reconciler, post)
        upgrade_ok(reconciler, users[0])

        assert reconciler.live_indexes("posts") == ["index_posts_on_category_id"]
        (email_index,) = reconciler.inspect("users").indexes
        assert email_index.unique

    def test_index_dropped_with_its_column(self, reconciler, person):
        person.add_index("age")
        upgrade_ok(reconciler, person)

        with person.schema() as t:
            t.string("name", limit=100)
        result = upgrade_ok(reconciler, person)

        assert [op.operation_type.value for op in result.operations] == ["drop_index", "drop_column"]
        assert reconciler.live_indexes("people") == []

    def test_long_index_name(self, driver, reconciler, long_named):
        """Test an overlong index name is shortened deterministically and stays stable."""
        upgrade_ok(reconciler, long_named)

        (name,) = reconciler.live_indexes(long_named.table_name)
        assert len(name.encode("utf-8")) <= driver.max_identifier_length
        assert name == IndexNameResolver(driver.max_identifier_length).resolve(
            long_named.table_name, ["make", "model", "year", "variant"]
        )
        assert upgrade_ok(reconciler, long_named).operations == []


class TestSingleTableInheritance:
    """Entities sharing one table."""

    def test_rows_of_both_types(self, driver, reconciler, pets):
        dog, cat = pets
        reconciler.register(dog, cat)
        upgrade_ok(reconciler, cat)

        driver.execute('INSERT INTO "pets" ("type", "name", "bark_volume") VALUES (?, ?, ?)', ("Dog", "Rex", 9))
        driver.execute('INSERT INTO "pets" ("type", "name") VALUES (?, ?)', ("Cat", "Tom"))

        rows = driver.fetch_all('SELECT "type", "name", "indoor" FROM "pets" ORDER BY "id"')
        assert rows == [
            {"type": "Dog", "name": "Rex", "indoor": 1},
            {"type": "Cat", "name": "Tom", "indoor": 1},
        ]

    def test_sibling_column_survives_other_sibling_change(self, reconciler, pets):
        """Test redeclaring one sibling never drops a column another sibling declares."""
        dog, cat = pets
        reconciler.register(dog, cat)
        upgrade_ok(reconciler, dog)

        with dog.schema() as t:
            t.string("name")
        upgrade_ok(reconciler, dog)

        assert reconciler.live_columns("pets") == ["id", "indoor", "name", "type"]

    def test_column_added_by_one_sibling_seen_by_other(self, reconciler, pets):
        """Test a column one sibling adds to an existing table needs nothing from the other."""
        dog, cat = pets
        reconciler.register(dog, cat)
        upgrade_ok(reconciler, dog)

        cat.col("whiskers", as_="integer")
        result = upgrade_ok(reconciler, cat)

        assert [op.operation_type.value for op in result.operations] == ["add_column"]
        assert "whiskers" in reconciler.live_columns("pets")
        assert upgrade_ok(reconciler, dog).operations == []


class TestPrimaryKey:
    """The primary key is a real constraint from the moment the table exists."""

    def test_duplicate_integer_key(self, driver, reconciler, person):
        upgrade_ok(reconciler, person)
        driver.execute('INSERT INTO "people" ("id", "name") VALUES (1, ?)', ("Ada",))

        with pytest.raises(ConstraintViolation):
            driver.execute('INSERT INTO "people" ("id", "name") VALUES (1, ?)', ("Bob",))

    def test_duplicate_string_key(self, driver, reconciler, vegetable):
        upgrade_ok(reconciler, vegetable)
        driver.execute('INSERT INTO "vegetables" ("latin_name") VALUES (?)', ("Daucus carota",))

        with pytest.raises(ConstraintViolation):
            driver.execute('INSERT INTO "vegetables" ("latin_name") VALUES (?)', ("Daucus carota",))

    def test_key_constraint_survives_rebuild(self, driver, reconciler, person):
        upgrade_ok(reconciler, person)
        with person.schema() as t:
            t.string("name", limit=150)
        upgrade_ok(reconciler, person)
        driver.execute('INSERT INTO "people" ("id", "name") VALUES (1, ?)', ("Ada",))

        with pytest.raises(ConstraintViolation):
            driver.execute('INSERT INTO "people" ("id", "name") VALUES (1, ?)', ("Bob",))


class TestFailureModes:
    """Partial application and dry run."""

    def test_partial_failure_stops_batch(self, driver, reconciler, person):
        """Test operations after the first failure are not attempted."""
        upgrade_ok(reconciler, person)
        driver.execute('INSERT INTO "people" ("name") VALUES (?)', ("Ada",))

        person.col("nickname")
        person.col("code", null=False)
        person.col("zone")
        result = reconciler.auto_upgrade(person)

        assert result.status == ReconciliationStatus.PARTIAL
        assert [op.executed for op in result.operations] == [True, False]
        assert isinstance(result.exception, ConstraintViolation)
        assert reconciler.live_columns("people") == ["age", "id", "name", "nickname"]

    def test_dry_run_changes_nothing(self, driver, person):
        reconciler = SchemaReconciler(driver, mode=OperationMode.DRY_RUN)

        result = reconciler.auto_upgrade(person)

        assert result.status == ReconciliationStatus.SKIPPED
        assert [op.operation_type.value for op in result.operations] == ["create_table"]
        assert not reconciler.inspect("people").exists
