"""
Configuration system for autoschema using Pydantic.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import AutoSchemaError, ConfigurationError
from .schema.entity import Entity, EntityRegistry
from .schema.merger import DEFAULT_INHERITANCE_COLUMN, STIMerger
from .schema.naming import DEFAULT_MAX_IDENTIFIER_LENGTH, IndexNameResolver
from .schema.operations import OperationMode


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field("sqlite:///:memory:", description="Database URL (sqlite:/// or postgresql://)")
    schema_name: str = Field("public", description="PostgreSQL schema holding the tables")
    max_identifier_length: Optional[int] = Field(
        None, gt=11, description="Override the driver's identifier byte limit"
    )
    timeout: float = Field(5.0, description="SQLite busy timeout in seconds")
    command_timeout: float = Field(60.0, description="PostgreSQL command timeout in seconds")
    min_size: int = Field(1, description="Minimum connections in pool")
    max_size: int = Field(2, description="Maximum connections in pool")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if "://" not in v:
            raise ValueError("Database URL must look like scheme://...")
        return v


class ReconcileConfig(BaseModel):
    """Schema reconciliation configuration."""

    mode: Literal["apply", "dry_run"] = Field("apply", description="Reconciliation mode")
    inheritance_column: str = Field(
        DEFAULT_INHERITANCE_COLUMN, description="Discriminator column for shared tables"
    )
    stop_on_error: bool = Field(
        False, description="Stop a batch at the first failing entity"
    )

    @property
    def operation_mode(self) -> OperationMode:
        return OperationMode(self.mode)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")

    def configure_logging(self, level: Optional[str] = None) -> logging.Handler:
        """Install a handler for the ``autoschema`` logger and return it."""
        if self.file:
            handler: logging.Handler = logging.handlers.RotatingFileHandler(
                self.file, maxBytes=self.max_size, backupCount=self.backup_count, encoding="utf-8"
            )
        else:
            handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(self.format))

        package_logger = logging.getLogger("autoschema")
        for existing in list(package_logger.handlers):
            package_logger.removeHandler(existing)
            existing.close()
        package_logger.addHandler(handler)
        package_logger.setLevel(level or self.level)
        return handler


class ColumnConfig(BaseModel):
    """A column declared in YAML; any extra key is a column option."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Column name")
    type: str = Field("string", description="Abstract column type")
    primary_key: bool = Field(False, description="Declare this column as the primary key")

    @model_validator(mode="before")
    @classmethod
    def restore_null_key(cls, data: Any) -> Any:
        # YAML loads an unquoted ``null:`` key as None
        if isinstance(data, dict) and None in data:
            data = dict(data)
            data["null"] = data.pop(None)
        return data

    @property
    def options(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class IndexConfig(BaseModel):
    """An index declared in YAML."""

    columns: List[str] = Field(..., min_length=1, description="Indexed columns, in order")
    unique: bool = Field(False, description="Unique index")
    name: Optional[str] = Field(None, description="Explicit index name")

    @field_validator("columns", mode="before")
    @classmethod
    def split_columns(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


class EntityConfig(BaseModel):
    """An entity declared in YAML."""

    name: str = Field(..., description="Entity name")
    table: Optional[str] = Field(None, description="Table name (default: snake_case of name)")
    primary_key: Optional[str] = Field(None, description="Primary key column (default: id)")
    inheritance_column: Optional[str] = Field(None, description="Discriminator column")
    columns: List[ColumnConfig] = Field(default_factory=list, description="Columns")
    indexes: List[IndexConfig] = Field(default_factory=list, description="Indexes")

    def to_entity(self) -> Entity:
        """Build the Entity; raises ConfigurationError on invalid options."""
        entity = Entity(self.name, self.table, self.primary_key, self.inheritance_column)
        with entity.schema() as t:
            for column in self.columns:
                t.column(column.name, column.type, primary_key=column.primary_key, **column.options)
            for index in self.indexes:
                t.index(index.columns, unique=index.unique, name=index.name)
        return entity


class AutoSchemaConfig(BaseSettings):
    """Main autoschema configuration."""

    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
    reconcile: ReconcileConfig = Field(
        default_factory=ReconcileConfig, description="Reconciliation configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    entities: List[EntityConfig] = Field(
        default_factory=list, description="Entity declarations"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AUTOSCHEMA_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "AutoSchemaConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            # Expand environment variables in the data
            data = cls._expand_env_vars(data)

            return cls(**data)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def _expand_env_vars(cls, data: Any) -> Any:
        """Recursively expand environment variables in configuration data."""
        if isinstance(data, dict):
            return {k: cls._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [cls._expand_env_vars(item) for item in data]
        elif isinstance(data, str):
            return os.path.expandvars(data)
        else:
            return data

    def get_entity(self, name: str) -> EntityConfig:
        """Get entity configuration by name."""
        for entity in self.entities:
            if entity.name == name:
                return entity
        raise ConfigurationError(f"Entity configuration '{name}' not found")

    def build_registry(self, registry: Optional[EntityRegistry] = None) -> EntityRegistry:
        """Build every declared entity into a registry."""
        registry = registry if registry is not None else EntityRegistry()
        for entity_config in self.entities:
            registry.register(entity_config.to_entity())
        return registry

    def index_name_resolver(self) -> IndexNameResolver:
        return IndexNameResolver(self.database.max_identifier_length or DEFAULT_MAX_IDENTIFIER_LENGTH)

    def validate_config(self, registry: Optional[EntityRegistry] = None) -> EntityRegistry:
        """
        Validate the entire configuration for consistency.

        Builds every entity and merges every table group, so conflicting
        declarations are reported before a database is touched.
        """
        try:
            registry = self.build_registry(registry)
            merger = STIMerger(self.index_name_resolver(), self.reconcile.inheritance_column)
            for table in registry.tables():
                merger.merge(registry.group(table))
        except ConfigurationError:
            raise
        except AutoSchemaError as e:
            raise ConfigurationError(f"Invalid entity declaration: {e}", cause=e) from e
        return registry

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                self.model_dump(mode="json", exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
