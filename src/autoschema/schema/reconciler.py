"""
Schema reconciliation core logic for autoschema.

Merges the declarations bound to a table, inspects the live table, computes
the differences and applies them one operation at a time.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from ..database.introspection import LiveSchema, SchemaIntrospector
from ..exceptions import AutoSchemaError, ConfigurationError, ReconciliationError
from .definitions import TableDefinition
from .differ import SchemaDiffer
from .entity import Entity, EntityRegistry
from .merger import DEFAULT_INHERITANCE_COLUMN, STIMerger
from .naming import IndexNameResolver
from .operations import OperationMode, SchemaOperation, SchemaOperations


logger = logging.getLogger(__name__)


class ReconciliationStatus(str, Enum):
    """Status of reconciliation operations."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ReconciliationResult:
    """Result of reconciling one entity's table."""

    status: ReconciliationStatus
    entity: str
    table: str
    operations: List[SchemaOperation] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0
    live_schema: Optional[LiveSchema] = None
    exception: Optional[AutoSchemaError] = field(default=None, repr=False)

    @property
    def successful_operations(self) -> int:
        """Count of successfully applied operations."""
        return sum(1 for op in self.operations if op.executed)

    @property
    def failed_operations(self) -> int:
        """Count of failed operations."""
        return sum(1 for op in self.operations if op.error)

    @property
    def changed(self) -> bool:
        return self.successful_operations > 0

    @property
    def is_success(self) -> bool:
        return self.status in (ReconciliationStatus.SUCCESS, ReconciliationStatus.SKIPPED)

    def raise_for_status(self) -> "ReconciliationResult":
        """Re-raise the failure, if any; returns self otherwise."""
        if self.is_success:
            return self
        if self.exception is not None:
            raise self.exception
        raise ReconciliationError(self.table, self.errors)


EntityRef = Union[Entity, str]


class SchemaReconciler:
    """
    Core schema reconciliation engine.

    Holds the entity registry and drives, per entity: merge the table group,
    inspect the live table, diff, apply, re-inspect. Nothing is cached between
    calls, so every reconciliation sees the current declarations and the
    current database.
    """

    def __init__(
        self,
        driver: Any,
        registry: Optional[EntityRegistry] = None,
        mode: OperationMode = OperationMode.APPLY,
        inheritance_column: str = DEFAULT_INHERITANCE_COLUMN,
        resolver: Optional[IndexNameResolver] = None,
    ):
        self.driver = driver
        self.registry = registry if registry is not None else EntityRegistry()
        self.mode = mode
        self.resolver = resolver or IndexNameResolver(driver.max_identifier_length)

        # Core components
        self.introspector = SchemaIntrospector(driver)
        self.merger = STIMerger(self.resolver, inheritance_column)
        self.differ = SchemaDiffer()
        self.operations = SchemaOperations(driver, mode)

    def register(self, *entities: Entity) -> None:
        for entity in entities:
            self.registry.register(entity)

    def _entity(self, entity: EntityRef) -> Entity:
        if isinstance(entity, str):
            return self.registry.get(entity)
        if entity not in self.registry:
            self.registry.register(entity)
        return entity

    # Declarations

    def declared_schema(self, entity: EntityRef) -> TableDefinition:
        """The entity's own fragment, without its siblings."""
        return self._entity(entity).definition

    def canonical_schema(self, entity: EntityRef) -> TableDefinition:
        """The merged definition of every entity bound to the entity's table."""
        entity = self._entity(entity)
        return self.merger.merge(self.registry.group(entity.table_name))

    def reset_table_definition(self, entity: EntityRef) -> Entity:
        """Clear an entity's declaration; the table is untouched until the next upgrade."""
        entity = self._entity(entity)
        entity.reset_table_definition()
        logger.debug(f"Reset table definition of {entity.name}")
        return entity

    # Live schema

    def inspect(self, table: str) -> LiveSchema:
        return self.introspector.inspect(table)

    def live_columns(self, table: str) -> List[str]:
        """Sorted live column names; empty when the table does not exist."""
        return self.inspect(table).column_names

    def live_indexes(self, table: str) -> List[str]:
        """Sorted live secondary index names."""
        return self.inspect(table).index_names

    def drop_table(self, table: str) -> None:
        logger.info(f"Dropping table {table}")
        self.driver.drop_table(table)

    # Reconciliation

    def plan(self, entity: EntityRef) -> List[SchemaOperation]:
        """
        Compute the operations an upgrade would apply, without applying them.

        Raises:
            ConfigurationError: if the table group does not merge
            DriverError: if the live table cannot be read
        """
        entity = self._entity(entity)
        declared = self.canonical_schema(entity)
        live = self.introspector.inspect(entity.table_name)
        return self.differ.diff(declared, live)

    def auto_upgrade(self, entity: EntityRef) -> ReconciliationResult:
        """
        Bring the entity's table in line with its table group's declarations.

        Failures are reported on the result rather than raised; call
        ``raise_for_status()`` to re-raise. The first failing operation
        aborts the remaining ones.
        """
        start_time = time.perf_counter()
        name = entity if isinstance(entity, str) else entity.name
        table = "" if isinstance(entity, str) else entity.table_name

        result = ReconciliationResult(
            status=ReconciliationStatus.SKIPPED,
            entity=name,
            table=table,
        )

        try:
            entity = self._entity(entity)
            result.table = entity.table_name
            logger.info(f"Starting reconciliation for {entity.name} ({entity.table_name})")

            # Merge before touching the database
            declared = self.canonical_schema(entity)
            live = self.introspector.inspect(entity.table_name)
            operations = self.differ.diff(declared, live)

            if not operations:
                logger.info(f"No changes needed for {entity.table_name}")
                result.live_schema = live
                result.status = (
                    ReconciliationStatus.SKIPPED
                    if self.mode == OperationMode.DRY_RUN
                    else ReconciliationStatus.SUCCESS
                )
            else:
                result.operations = self.operations.execute_batch(operations)

                failed = [op for op in result.operations if op.error]
                if failed:
                    result.errors.extend(op.error for op in failed)
                    result.exception = failed[0].exception
                    result.status = self._failure_status(result)
                elif self.mode == OperationMode.DRY_RUN:
                    result.status = ReconciliationStatus.SKIPPED
                else:
                    result.status = ReconciliationStatus.SUCCESS

                result.live_schema = (
                    live if self.mode == OperationMode.DRY_RUN
                    else self.introspector.inspect(entity.table_name)
                )

        except AutoSchemaError as e:
            logger.error(f"Reconciliation failed for {result.table or name}: {e}")
            result.errors.append(str(e))
            if result.exception is None:
                result.exception = e
            result.status = self._failure_status(result)

        finally:
            result.execution_time_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            f"Reconciliation completed for {result.table or name}: "
            f"{result.status.value} ({result.execution_time_ms:.1f}ms)"
        )

        return result

    @staticmethod
    def _failure_status(result: ReconciliationResult) -> ReconciliationStatus:
        if any(op.executed for op in result.operations):
            return ReconciliationStatus.PARTIAL
        return ReconciliationStatus.FAILED

    def auto_upgrade_all(
        self,
        entities: Optional[Iterable[EntityRef]] = None,
        stop_on_error: bool = False,
    ) -> List[ReconciliationResult]:
        """
        Reconcile entities in order (default: every registered entity).

        Every entity is registered before the first one is reconciled, so
        a table group is merged whole regardless of the order given.
        """
        if entities is None:
            targets: List[EntityRef] = list(self.registry)
        else:
            targets = list(entities)
            for entity in targets:
                if isinstance(entity, Entity) and entity not in self.registry:
                    try:
                        self.registry.register(entity)
                    except ConfigurationError as e:
                        # Reported by that entity's own reconciliation
                        logger.debug(f"Could not register {entity.name}: {e}")

        results = []
        for entity in targets:
            result = self.auto_upgrade(entity)
            results.append(result)

            if not result.is_success and stop_on_error:
                logger.warning(f"Stopping reconciliation due to failure: {result.table}")
                break

        return results

    @staticmethod
    def summarize(results: List[ReconciliationResult]) -> Dict[str, Any]:
        """Aggregate a batch of results."""
        by_status = {status.value: 0 for status in ReconciliationStatus}
        for result in results:
            by_status[result.status.value] += 1

        return {
            "total": len(results),
            "by_status": by_status,
            "operations_applied": sum(r.successful_operations for r in results),
            "operations_failed": sum(r.failed_operations for r in results),
            "total_execution_time_ms": sum(r.execution_time_ms for r in results),
            "failed": [
                {"entity": r.entity, "table": r.table, "errors": r.errors}
                for r in results if not r.is_success
            ],
        }
