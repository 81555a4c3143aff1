"""
Schema declaration and reconciliation package for autoschema.

This package provides:
- Entity declarations and the table-sharing registry
- Deterministic index naming
- Single table inheritance merging
- Declared-versus-live diffing into ordered DDL operations
- The reconciler that applies them
"""

from .definitions import (
    ColumnDefinition,
    ColumnOptions,
    ColumnType,
    IndexDefinition,
    SchemaBuilder,
    TableDefinition,
)
from .naming import IndexNameResolver
from .entity import Entity, EntityRegistry
from .merger import STIMerger
from .operations import (
    AddColumn,
    AddIndex,
    ChangeColumn,
    CreateTable,
    DropColumn,
    DropIndex,
    OperationMode,
    OperationType,
    SchemaOperation,
    SchemaOperations,
)
from .differ import SchemaDiffer
from .reconciler import ReconciliationResult, ReconciliationStatus, SchemaReconciler

__all__ = [
    "ColumnDefinition",
    "ColumnOptions",
    "ColumnType",
    "IndexDefinition",
    "SchemaBuilder",
    "TableDefinition",
    "IndexNameResolver",
    "Entity",
    "EntityRegistry",
    "STIMerger",
    "AddColumn",
    "AddIndex",
    "ChangeColumn",
    "CreateTable",
    "DropColumn",
    "DropIndex",
    "OperationMode",
    "OperationType",
    "SchemaOperation",
    "SchemaOperations",
    "SchemaDiffer",
    "ReconciliationResult",
    "ReconciliationStatus",
    "SchemaReconciler",
]
