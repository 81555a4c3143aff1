"""
Pytest configuration and shared fixtures for autoschema tests.

This module provides shared fixtures and utilities for testing all autoschema components.
"""

import os
from typing import Any, Dict
from unittest.mock import MagicMock

import pytest
import yaml

from autoschema.database.base import DatabaseDriver
from autoschema.database.sqlite import SQLiteDriver
from autoschema.schema.entity import Entity, EntityRegistry
from autoschema.schema.reconciler import SchemaReconciler


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def driver():
    """In-memory SQLite driver, closed after the test."""
    sqlite_driver = SQLiteDriver(":memory:")
    yield sqlite_driver
    sqlite_driver.close()


@pytest.fixture
def mock_driver():
    """Mock driver exposing the capability interface."""
    mock = MagicMock(spec=DatabaseDriver)
    mock.max_identifier_length = 63
    mock.dialect = "mock"
    mock.table_exists.return_value = False
    mock.columns.return_value = []
    mock.indexes.return_value = []
    mock.primary_key.return_value = None
    return mock


@pytest.fixture
def registry():
    return EntityRegistry()


@pytest.fixture
def reconciler(driver, registry):
    """Reconciler over the in-memory SQLite driver."""
    return SchemaReconciler(driver, registry)


@pytest.fixture
def postgres_url():
    """Live PostgreSQL URL, or skip."""
    url = os.environ.get("AUTOSCHEMA_TEST_DATABASE_URL")
    if not url:
        pytest.skip("AUTOSCHEMA_TEST_DATABASE_URL is not set")
    return url


# ============================================================================
# Entity Fixtures
# ============================================================================

@pytest.fixture
def person():
    """People with a name and an age."""
    entity = Entity("Person", table_name="people")
    with entity.schema() as t:
        t.string("name", limit=100)
        t.integer("age")
    return entity


@pytest.fixture
def category():
    entity = Entity("Category", table_name="categories")
    with entity.schema() as t:
        t.string("name", null=False)
    return entity


@pytest.fixture
def post():
    """Posts belonging to a category."""
    entity = Entity("Post", table_name="posts")
    with entity.schema() as t:
        t.string("title", limit=200)
        t.text("body")
        t.references("category")
    return entity


@pytest.fixture
def pets():
    """Dog and Cat sharing the pets table."""
    dog = Entity("Dog", table_name="pets")
    with dog.schema() as t:
        t.string("name")
        t.integer("bark_volume")

    cat = Entity("Cat", table_name="pets")
    with cat.schema() as t:
        t.string("name")
        t.boolean("indoor", default=True)

    return dog, cat


@pytest.fixture
def users():
    """User hierarchy discriminated by ``role`` instead of ``type``."""
    user = Entity("User", table_name="users", inheritance_column="role")
    with user.schema() as t:
        t.string("email", null=False, unique=True)

    administrator = Entity("Administrator", table_name="users", inheritance_column="role")
    with administrator.schema() as t:
        t.integer("clearance", default=1)

    customer = Entity("Customer", table_name="users", inheritance_column="role")
    with customer.schema() as t:
        t.decimal("credit", precision=10, scale=2)

    return user, administrator, customer


@pytest.fixture
def vegetable():
    """Vegetables keyed by their latin name."""
    entity = Entity("Vegetable", table_name="vegetables", primary_key="latin_name")
    with entity.schema() as t:
        t.primary_key("latin_name", "string")
        t.string("common_name")
    return entity


@pytest.fixture
def long_named():
    """An entity whose composite index name overflows the identifier limit."""
    entity = Entity("AutomobileMakeModelYearVariant")
    with entity.schema() as t:
        t.string("make", "model", "variant")
        t.integer("year")
        t.index(["make", "model", "year", "variant"])
    return entity


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config_data() -> Dict[str, Any]:
    """Sample configuration data for testing."""
    return {
        "database": {
            "url": "sqlite:///:memory:",
            "timeout": 2.5,
        },
        "reconcile": {
            "mode": "apply",
            "inheritance_column": "kind",
        },
        "logging": {
            "level": "DEBUG",
        },
        "entities": [
            {
                "name": "Person",
                "table": "people",
                "columns": [
                    {"name": "name", "limit": 100, "null": False},
                    {"name": "age", "type": "integer"},
                    {"name": "email", "unique": True},
                ],
                "indexes": [{"columns": ["name", "age"]}],
            },
            {
                "name": "Dog",
                "table": "pets",
                "columns": [{"name": "bark_volume", "type": "integer"}],
            },
            {
                "name": "Cat",
                "table": "pets",
                "columns": [{"name": "indoor", "type": "boolean", "default": True}],
            },
        ],
    }


@pytest.fixture
def config_file(tmp_path, sample_config_data):
    """Sample configuration written to a YAML file."""
    path = tmp_path / "autoschema.yaml"
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(sample_config_data, f)
    return path
