"""
autoschema: declarative schema auto-reconciliation.

Declare an entity's columns, primary key and indexes in code; autoschema
inspects the live table and applies the minimal DDL to make it match,
keeping the data in surviving columns.
"""

__version__ = "0.1.0"

from .exceptions import (
    AutoSchemaError,
    ConfigurationError,
    ConstraintViolation,
    DatabaseConnectionError,
    DriverError,
    ReconciliationError,
)
from .schema import (
    ColumnType,
    Entity,
    EntityRegistry,
    OperationMode,
    ReconciliationResult,
    ReconciliationStatus,
    SchemaReconciler,
)
from .database import PostgresDriver, SQLiteDriver, create_driver
from .config import AutoSchemaConfig

__all__ = [
    "__version__",
    "AutoSchemaConfig",
    "AutoSchemaError",
    "ConfigurationError",
    "ConstraintViolation",
    "DatabaseConnectionError",
    "DriverError",
    "ReconciliationError",
    "ColumnType",
    "Entity",
    "EntityRegistry",
    "OperationMode",
    "ReconciliationResult",
    "ReconciliationStatus",
    "SchemaReconciler",
    "PostgresDriver",
    "SQLiteDriver",
    "create_driver",
]
