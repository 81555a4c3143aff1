"""
Command-line interface for autoschema.
"""

import importlib
import sys
from functools import wraps
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AutoSchemaConfig, ColumnConfig, DatabaseConfig, EntityConfig, IndexConfig
from .database.factory import create_driver
from .exceptions import AutoSchemaError, ConfigurationError
from .schema.entity import Entity, EntityRegistry
from .schema.operations import OperationMode
from .schema.reconciler import ReconciliationResult, ReconciliationStatus, SchemaReconciler


console = Console()

_STATUS_STYLES = {
    ReconciliationStatus.SUCCESS: "green",
    ReconciliationStatus.SKIPPED: "blue",
    ReconciliationStatus.PARTIAL: "yellow",
    ReconciliationStatus.FAILED: "red",
}


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except AutoSchemaError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {e}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="AUTOSCHEMA_CONFIG",
    help="Configuration file path (default: environment variables only)",
)
database_option = click.option(
    "--database-url",
    help="Database URL (overrides the configuration)",
)
models_option = click.option(
    "--models",
    "-m",
    multiple=True,
    help="module:attribute holding an EntityRegistry, an Entity or a list of entities",
)
entity_option = click.option(
    "--entity",
    "-e",
    "entity_names",
    multiple=True,
    help="Only reconcile these entities (default: all)",
)


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """autoschema: declarative schema auto-reconciliation."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="autoschema.yaml",
    help="Output configuration file path",
)
@handle_errors
def init(output: str):
    """Initialize a new autoschema configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    config = _create_default_config()

    config.to_yaml(output)
    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Point database.url at your database")
    console.print("2. Declare your entities under 'entities' or in a Python module")
    console.print(f"3. Run: autoschema validate-config -c {output}")
    console.print(f"4. Run: autoschema plan -c {output}")


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@models_option
@handle_errors
def validate_config(config: str, models: Tuple[str, ...]):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        schema_config = AutoSchemaConfig.from_yaml(config)
        registry = schema_config.validate_config(_models_registry(models))

        console.print("[green]✓[/green] Configuration is valid")

        # Display configuration summary
        _display_config_summary(schema_config, registry)

    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)


@main.command()
@config_option
@database_option
@models_option
@entity_option
@click.pass_context
@handle_errors
def plan(ctx, config: Optional[str], database_url: Optional[str], models: Tuple[str, ...], entity_names: Tuple[str, ...]):
    """Show the operations an upgrade would apply."""
    schema_config = _load_config(ctx, config, database_url)

    with create_driver(schema_config.database) as driver:
        reconciler = _build_reconciler(schema_config, driver, models, OperationMode.DRY_RUN)
        results = reconciler.auto_upgrade_all(_select(reconciler, entity_names))

    _display_results(results, title="Planned Operations")
    pending = sum(len(r.operations) for r in results)
    if pending:
        console.print(f"\n[yellow]{pending} operation(s) pending[/yellow]")
    else:
        console.print("\n[green]✓[/green] Schema is up to date")

    if any(r.status == ReconciliationStatus.FAILED for r in results):
        sys.exit(1)


@main.command()
@config_option
@database_option
@models_option
@entity_option
@click.option(
    "--dry-run",
    is_flag=True,
    help="Log the operations without applying them",
)
@click.pass_context
@handle_errors
def upgrade(
    ctx,
    config: Optional[str],
    database_url: Optional[str],
    models: Tuple[str, ...],
    entity_names: Tuple[str, ...],
    dry_run: bool,
):
    """Reconcile live tables with the declared entities."""
    schema_config = _load_config(ctx, config, database_url)
    mode = OperationMode.DRY_RUN if dry_run else schema_config.reconcile.operation_mode

    with create_driver(schema_config.database) as driver:
        reconciler = _build_reconciler(schema_config, driver, models, mode)
        results = reconciler.auto_upgrade_all(
            _select(reconciler, entity_names),
            stop_on_error=schema_config.reconcile.stop_on_error,
        )

    _display_results(results, title="Schema Upgrade")
    summary = SchemaReconciler.summarize(results)
    console.print(
        f"\n{summary['total']} entit{'y' if summary['total'] == 1 else 'ies'}, "
        f"{summary['operations_applied']} operation(s) applied, "
        f"{summary['operations_failed']} failed "
        f"({summary['total_execution_time_ms']:.1f}ms)"
    )

    if summary["failed"]:
        for failure in summary["failed"]:
            for error in failure["errors"]:
                console.print(f"[red]✗[/red] {failure['entity']}: {error}")
        sys.exit(1)


@main.command()
@click.argument("table")
@config_option
@database_option
@click.pass_context
@handle_errors
def inspect(ctx, table: str, config: Optional[str], database_url: Optional[str]):
    """Show the live columns, indexes and primary key of TABLE."""
    schema_config = _load_config(ctx, config, database_url)

    with create_driver(schema_config.database) as driver:
        live = SchemaReconciler(driver).inspect(table)

    if not live.exists:
        console.print(f"[yellow]Table {table} does not exist[/yellow]")
        sys.exit(1)

    console.print(f"[blue]{table}[/blue] (primary key: {live.primary_key or 'none'})")

    columns_table = Table(title="Columns")
    columns_table.add_column("Name", style="cyan")
    columns_table.add_column("Type", style="magenta")
    columns_table.add_column("Limit/Precision", style="green")
    columns_table.add_column("Null", style="yellow")
    columns_table.add_column("Default")

    for column in live.columns:
        size = column.limit or (
            f"{column.precision},{column.scale}" if column.precision is not None else ""
        )
        columns_table.add_row(
            column.name,
            column.type.value,
            str(size),
            "yes" if column.nullable else "no",
            "" if column.default is None else repr(column.default),
        )

    console.print(columns_table)

    if live.indexes:
        index_table = Table(title="Indexes")
        index_table.add_column("Name", style="cyan")
        index_table.add_column("Columns", style="magenta")
        index_table.add_column("Unique", style="green")

        for index in live.indexes:
            index_table.add_row(index.name, ", ".join(index.columns), "yes" if index.unique else "no")

        console.print(index_table)


def _load_config(ctx, config: Optional[str], database_url: Optional[str]) -> AutoSchemaConfig:
    schema_config = AutoSchemaConfig.from_yaml(config) if config else AutoSchemaConfig()
    if database_url:
        schema_config.database.url = database_url

    debug = bool(ctx.obj and ctx.obj.get("debug"))
    schema_config.logging.configure_logging("DEBUG" if debug else None)
    return schema_config


def _load_models(reference: str) -> List[Entity]:
    """Import ``module:attribute`` and return the entities it holds."""
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Invalid models reference '{reference}'", {"expected": "module:attribute"})

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import models module '{module_name}'", cause=e) from e

    try:
        target = getattr(module, attribute)
    except AttributeError:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attribute}'") from None

    if isinstance(target, Entity):
        return [target]
    entities = list(target) if isinstance(target, (EntityRegistry, list, tuple)) else None
    if entities is None or not all(isinstance(e, Entity) for e in entities):
        raise ConfigurationError(
            f"'{reference}' is not an EntityRegistry, an Entity or a list of entities"
        )
    return entities


def _models_registry(models: Iterable[str]) -> EntityRegistry:
    registry = EntityRegistry()
    for reference in models:
        for entity in _load_models(reference):
            registry.register(entity)
    return registry


def _build_reconciler(
    config: AutoSchemaConfig,
    driver,
    models: Iterable[str],
    mode: OperationMode,
) -> SchemaReconciler:
    registry = config.validate_config(_models_registry(models))
    return SchemaReconciler(
        driver,
        registry,
        mode=mode,
        inheritance_column=config.reconcile.inheritance_column,
    )


def _select(reconciler: SchemaReconciler, names: Tuple[str, ...]) -> List[Entity]:
    if not names:
        entities = list(reconciler.registry)
        if not entities:
            raise ConfigurationError("No entities declared; use 'entities' in the configuration or --models")
        return entities
    return [reconciler.registry.get(name) for name in names]


def _create_default_config() -> AutoSchemaConfig:
    """Create a default configuration with one example entity."""
    return AutoSchemaConfig(
        database=DatabaseConfig(url="sqlite:///autoschema.db"),
        entities=[
            EntityConfig(
                name="Person",
                columns=[
                    ColumnConfig(name="name", limit=100, null=False),
                    ColumnConfig(name="email", unique=True),
                    ColumnConfig(name="created_at", type="datetime"),
                ],
                indexes=[IndexConfig(columns=["name", "created_at"])],
            )
        ],
    )


def _display_config_summary(config: AutoSchemaConfig, registry: EntityRegistry):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")
    console.print(f"  Database: {config.database.url}")
    console.print(f"  Mode: {config.reconcile.mode}")

    entity_table = Table(title="Entities")
    entity_table.add_column("Name", style="cyan")
    entity_table.add_column("Table", style="magenta")
    entity_table.add_column("Columns", style="green")
    entity_table.add_column("Indexes", style="yellow")

    for entity in registry:
        definition = entity.definition
        entity_table.add_row(
            entity.name,
            entity.table_name,
            str(len(definition.columns)),
            str(len(definition.indexes)),
        )

    console.print(entity_table)


def _display_results(results: List[ReconciliationResult], title: str):
    table = Table(title=title)
    table.add_column("Entity", style="cyan")
    table.add_column("Table", style="magenta")
    table.add_column("Status")
    table.add_column("Operation")

    for result in results:
        style = _STATUS_STYLES[result.status]
        status = f"[{style}]{result.status.value}[/{style}]"
        if not result.operations:
            table.add_row(result.entity, result.table, status, "-")
            continue
        for operation in result.operations:
            marker = "[red]✗[/red] " if operation.error else ""
            table.add_row(result.entity, result.table, status, f"{marker}{operation.describe()}")

    console.print(table)


if __name__ == "__main__":
    main()
