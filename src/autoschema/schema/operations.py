"""
Schema operations for autoschema.

Each DDL step computed by the differ is a small dataclass that knows how to
apply itself through a database driver. SchemaOperations executes them one at
a time and stops at the first failure.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from ..exceptions import DriverError
from .definitions import ColumnDefinition, IndexDefinition


logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Types of schema operations."""

    CREATE_TABLE = "create_table"
    ADD_COLUMN = "add_column"
    CHANGE_COLUMN = "change_column"
    DROP_COLUMN = "drop_column"
    ADD_INDEX = "add_index"
    DROP_INDEX = "drop_index"


class OperationMode(str, Enum):
    """Schema operation modes."""

    APPLY = "apply"        # Execute operations against the database
    DRY_RUN = "dry_run"    # Log operations but don't execute


@dataclass
class SchemaOperation(ABC):
    """Base class for a single DDL step against one table."""

    operation_type: ClassVar[OperationType]
    is_destructive: ClassVar[bool] = False

    table: str

    # Execution results
    executed: bool = field(default=False, init=False, compare=False)
    execution_time_ms: Optional[float] = field(default=None, init=False, compare=False)
    error: Optional[str] = field(default=None, init=False, compare=False)
    exception: Optional[DriverError] = field(default=None, init=False, compare=False, repr=False)

    @property
    def target(self) -> str:
        return self.table

    @property
    def operation_id(self) -> str:
        return f"{self.operation_type.value}_{self.table}_{self.target}"

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @abstractmethod
    def describe(self) -> str:
        """One-line human description used in logs and plans."""

    @abstractmethod
    def apply(self, driver: Any) -> None:
        """Apply this step through ``driver``."""

    def __str__(self) -> str:
        return self.describe()


@dataclass
class CreateTable(SchemaOperation):
    """Create a table with its primary key established inline."""

    operation_type: ClassVar[OperationType] = OperationType.CREATE_TABLE

    columns: Tuple[ColumnDefinition, ...] = ()
    primary_key: str = "id"

    def describe(self) -> str:
        names = ", ".join(c.name for c in self.columns)
        return f"Create table {self.table} ({names}) with primary key {self.primary_key}"

    def apply(self, driver: Any) -> None:
        driver.create_table(self.table, list(self.columns), self.primary_key)


@dataclass
class AddColumn(SchemaOperation):
    operation_type: ClassVar[OperationType] = OperationType.ADD_COLUMN

    column: Optional[ColumnDefinition] = None

    @property
    def target(self) -> str:
        return self.column.name

    def describe(self) -> str:
        return f"Add column {self.table}.{self.column}"

    def apply(self, driver: Any) -> None:
        driver.add_column(self.table, self.column)


@dataclass
class ChangeColumn(SchemaOperation):
    """Alter a column in place; existing values are cast by the database."""

    operation_type: ClassVar[OperationType] = OperationType.CHANGE_COLUMN

    column: Optional[ColumnDefinition] = None
    previous: Optional[ColumnDefinition] = None

    @property
    def target(self) -> str:
        return self.column.name

    def describe(self) -> str:
        if self.previous is not None:
            return f"Change column {self.table}.{self.previous} -> {self.column}"
        return f"Change column {self.table}.{self.column}"

    def apply(self, driver: Any) -> None:
        driver.change_column(self.table, self.column)


@dataclass
class DropColumn(SchemaOperation):
    operation_type: ClassVar[OperationType] = OperationType.DROP_COLUMN
    is_destructive: ClassVar[bool] = True

    column_name: str = ""

    @property
    def target(self) -> str:
        return self.column_name

    def describe(self) -> str:
        return f"Drop column {self.table}.{self.column_name}"

    def apply(self, driver: Any) -> None:
        driver.drop_column(self.table, self.column_name)


@dataclass
class AddIndex(SchemaOperation):
    operation_type: ClassVar[OperationType] = OperationType.ADD_INDEX

    index: Optional[IndexDefinition] = None

    @property
    def target(self) -> str:
        return self.index.name

    def describe(self) -> str:
        return f"Add {self.index} on {self.table}"

    def apply(self, driver: Any) -> None:
        driver.add_index(self.table, self.index)


@dataclass
class DropIndex(SchemaOperation):
    operation_type: ClassVar[OperationType] = OperationType.DROP_INDEX

    index_name: str = ""

    @property
    def target(self) -> str:
        return self.index_name

    def describe(self) -> str:
        return f"Drop index {self.index_name} on {self.table}"

    def apply(self, driver: Any) -> None:
        driver.drop_index(self.table, self.index_name)


class SchemaOperations:
    """Executes schema operations through a driver, one at a time."""

    def __init__(self, driver: Any, mode: OperationMode = OperationMode.APPLY):
        self.driver = driver
        self.mode = mode

    def execute(self, operation: SchemaOperation) -> SchemaOperation:
        """
        Apply a single operation.

        Raises:
            DriverError: the driver failed; the error is also recorded on
                the operation
        """
        if self.mode == OperationMode.DRY_RUN:
            operation.executed = False
            logger.info(f"DRY RUN: {operation.describe()}")
            return operation

        start_time = time.perf_counter()
        try:
            operation.apply(self.driver)
        except DriverError as e:
            operation.executed = False
            operation.error = str(e)
            operation.exception = e
            logger.error(f"Failed to execute {operation.operation_id}: {e}")
            raise
        finally:
            operation.execution_time_ms = (time.perf_counter() - start_time) * 1000

        operation.executed = True
        logger.info(f"{operation.describe()} ({operation.execution_time_ms:.1f}ms)")
        return operation

    def execute_batch(self, operations: List[SchemaOperation]) -> List[SchemaOperation]:
        """
        Execute operations in order, stopping at the first failure.

        The failed operation is included in the returned list with its error
        recorded; operations after it are not attempted.
        """
        results = []

        for operation in operations:
            try:
                results.append(self.execute(operation))
            except DriverError:
                results.append(operation)
                skipped = len(operations) - len(results)
                if skipped:
                    logger.error(
                        f"Stopping batch for {operation.table} after failure; "
                        f"{skipped} operation(s) not attempted"
                    )
                break

        return results

    @staticmethod
    def summary(operations: List[SchemaOperation]) -> Dict[str, Any]:
        """Get summary of execution results."""
        total = len(operations)
        successful = sum(1 for op in operations if op.executed)
        failed = sum(1 for op in operations if op.error)
        total_time = sum(op.execution_time_ms or 0 for op in operations)

        return {
            "total_operations": total,
            "successful": successful,
            "failed": failed,
            "total_execution_time_ms": total_time,
            "failed_operations": [
                {
                    "operation_id": op.operation_id,
                    "error": op.error,
                    "operation_type": op.operation_type.value,
                }
                for op in operations if op.error
            ],
        }
