"""
Declared schema model for autoschema.

Column, index and table definitions are immutable. Every edit returns a new
instance, so a declaration block is always rebuilt as a whole and can be
compared against the live table without order-dependent accumulation.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    model_validator,
)

from ..exceptions import ConfigurationError


DEFAULT_PRIMARY_KEY = "id"
DEFAULT_STRING_LIMIT = 255

_TRUE_LITERALS = {"1", "t", "true", "y", "yes"}
_FALSE_LITERALS = {"0", "f", "false", "n", "no"}


class ColumnType(str, Enum):
    """Abstract column types understood by every driver."""

    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    BIGINT = "bigint"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BINARY = "binary"
    REFERENCES = "references"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Union[str, "ColumnType"]) -> "ColumnType":
        """Coerce a user supplied type name into a ColumnType."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(t.value for t in cls if t is not cls.UNKNOWN)
            raise ConfigurationError(
                f"Unknown column type '{value}'", {"allowed": allowed}
            ) from None


DefaultValue = Optional[Union[StrictBool, StrictInt, StrictFloat, StrictStr]]


class ColumnOptions(BaseModel):
    """The closed set of options a column declaration may carry."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    limit: Optional[int] = Field(None, gt=0, description="Maximum length of a string column")
    null: bool = Field(True, description="Whether the column accepts NULL")
    default: DefaultValue = Field(None, description="Column default value")
    unique: bool = Field(False, description="Create a unique index on the column")
    index: Optional[bool] = Field(None, description="Create an index on the column")
    precision: Optional[int] = Field(None, gt=0, description="Decimal precision")
    scale: Optional[int] = Field(None, ge=0, description="Decimal scale")
    polymorphic: bool = Field(False, description="Add a <name>_type column to a reference")

    @model_validator(mode="after")
    def check_scale_has_precision(self) -> "ColumnOptions":
        if self.scale is not None and self.precision is None:
            raise ValueError("scale requires precision")
        return self

    @classmethod
    def build(cls, column_name: Optional[str] = None, **options: Any) -> "ColumnOptions":
        """Build options, turning validation failures into ConfigurationError."""
        try:
            return cls(**options)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}"
                for err in e.errors()
            )
            details = {"column": column_name} if column_name else None
            raise ConfigurationError(f"Invalid column options: {problems}", details) from e


def normalize_default(column_type: ColumnType, value: Any) -> Any:
    """Normalize a default so declared and introspected values compare equal."""
    if value is None:
        return None
    if column_type == ColumnType.BOOLEAN:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_LITERALS:
                return True
            if lowered in _FALSE_LITERALS:
                return False
            return lowered
        return bool(value)
    if column_type in (ColumnType.INTEGER, ColumnType.BIGINT):
        try:
            return int(value)
        except (TypeError, ValueError):
            return str(value)
    if column_type in (ColumnType.FLOAT, ColumnType.DECIMAL):
        try:
            return float(value)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


@dataclass(frozen=True)
class ColumnDefinition:
    """A single column, declared in code or introspected from the database."""

    name: str
    type: ColumnType = ColumnType.STRING
    options: ColumnOptions = field(default_factory=ColumnOptions)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConfigurationError("Column name must be a non-empty string")
        column_type = ColumnType.parse(self.type)
        object.__setattr__(self, "type", column_type)

        opts = self.options
        if opts.limit is not None and column_type != ColumnType.STRING:
            raise ConfigurationError(
                "limit only applies to string columns",
                {"column": self.name, "type": column_type.value},
            )
        if (opts.precision is not None or opts.scale is not None) and column_type != ColumnType.DECIMAL:
            raise ConfigurationError(
                "precision and scale only apply to decimal columns",
                {"column": self.name, "type": column_type.value},
            )
        if opts.polymorphic and column_type != ColumnType.REFERENCES:
            raise ConfigurationError(
                "polymorphic only applies to references",
                {"column": self.name},
            )

    @property
    def limit(self) -> Optional[int]:
        """Effective length limit (string columns fall back to the default)."""
        if self.type != ColumnType.STRING:
            return None
        return self.options.limit or DEFAULT_STRING_LIMIT

    @property
    def nullable(self) -> bool:
        return self.options.null

    @property
    def default(self) -> Any:
        return self.options.default

    @property
    def precision(self) -> Optional[int]:
        return self.options.precision

    @property
    def scale(self) -> Optional[int]:
        """Decimal scale; a precision without a scale means scale 0."""
        if self.options.scale is None and self.options.precision is not None:
            return 0
        return self.options.scale

    def signature(self) -> Tuple[Any, ...]:
        """The attributes a ChangeColumn is computed from."""
        return (
            self.type,
            self.limit,
            self.precision,
            self.scale,
            self.nullable,
            normalize_default(self.type, self.default),
        )

    def differs_from(self, other: "ColumnDefinition") -> bool:
        return self.signature() != other.signature()

    def __str__(self) -> str:
        result = f"{self.name} {self.type.value}"
        if self.type == ColumnType.STRING:
            result += f"({self.limit})"
        elif self.precision is not None:
            result += f"({self.precision}"
            result += f",{self.scale})" if self.scale is not None else ")"
        if not self.nullable:
            result += " NOT NULL"
        if self.default is not None:
            result += f" DEFAULT {self.default!r}"
        return result


@dataclass(frozen=True)
class IndexDefinition:
    """An index over one or more columns. ``name`` is None until resolved."""

    columns: Tuple[str, ...]
    unique: bool = False
    name: Optional[str] = None

    def __post_init__(self) -> None:
        columns = self.columns
        if isinstance(columns, str):
            columns = (columns,)
        columns = tuple(columns)
        if not columns or not all(isinstance(c, str) and c for c in columns):
            raise ConfigurationError(
                "An index needs at least one column name", {"index": self.name}
            )
        object.__setattr__(self, "columns", columns)

    def matches(self, other: "IndexDefinition") -> bool:
        """Same columns in the same order and the same uniqueness."""
        return self.columns == other.columns and self.unique == other.unique

    def resolved(self, resolver: Any, table_name: str) -> "IndexDefinition":
        return replace(self, name=resolver.resolve(table_name, self.columns, self.name))

    def __str__(self) -> str:
        kind = "UNIQUE INDEX" if self.unique else "INDEX"
        return f"{kind} {self.name or '<unnamed>'} ({', '.join(self.columns)})"


@dataclass(frozen=True)
class TableDefinition:
    """A declared table: a fragment for one entity, or a merged canonical definition."""

    table_name: str
    primary_key: Optional[str] = None
    columns: Tuple[ColumnDefinition, ...] = ()
    indexes: Tuple[IndexDefinition, ...] = ()
    inheritance_column: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.table_name, str) or not self.table_name.strip():
            raise ConfigurationError("Table name must be a non-empty string")
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "indexes", tuple(self.indexes))

    @property
    def primary_key_name(self) -> str:
        return self.primary_key or DEFAULT_PRIMARY_KEY

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def column_map(self) -> Dict[str, ColumnDefinition]:
        return {c.name: c for c in self.columns}

    @property
    def index_map(self) -> Dict[str, IndexDefinition]:
        return {i.name: i for i in self.indexes if i.name}

    @property
    def index_names(self) -> List[str]:
        return sorted(self.index_map)

    def column(self, name: str) -> Optional[ColumnDefinition]:
        return self.column_map.get(name)

    def has_column(self, name: str) -> bool:
        return any(c.name == name for c in self.columns)

    @property
    def declares_primary_key_column(self) -> bool:
        return self.has_column(self.primary_key_name)

    def primary_key_column(self) -> ColumnDefinition:
        """The declared key column, or the implicit auto-increment integer key."""
        declared = self.column(self.primary_key_name)
        if declared is None:
            return ColumnDefinition(
                self.primary_key_name, ColumnType.INTEGER, ColumnOptions(null=False)
            )
        if declared.nullable:
            return replace(declared, options=declared.options.model_copy(update={"null": False}))
        return declared

    def ddl_columns(self) -> Tuple[ColumnDefinition, ...]:
        """Columns in CREATE TABLE order, with the primary key materialized."""
        key = self.primary_key_column()
        if not self.declares_primary_key_column:
            return (key,) + self.columns
        return tuple(key if c.name == key.name else c for c in self.columns)

    def with_column(self, column: ColumnDefinition) -> "TableDefinition":
        existing = self.column(column.name)
        if existing is not None:
            if existing == column:
                return self
            raise ConfigurationError(
                f"Column '{column.name}' is declared twice with different options",
                {"table": self.table_name, "first": str(existing), "second": str(column)},
            )
        return replace(self, columns=self.columns + (column,))

    def with_index(self, index: IndexDefinition) -> "TableDefinition":
        if index in self.indexes:
            return self
        return replace(self, indexes=self.indexes + (index,))

    def without_index(self, name_or_columns: Union[str, Sequence[str]], resolver: Any = None) -> "TableDefinition":
        """Remove an index spec by explicit/resolved name or by its column list."""
        if isinstance(name_or_columns, str):
            target_name = name_or_columns
            target_columns: Optional[Tuple[str, ...]] = None
        else:
            target_name = None
            target_columns = tuple(name_or_columns)

        def keep(index: IndexDefinition) -> bool:
            if target_columns is not None:
                return index.columns != target_columns
            if index.name is not None:
                return index.name != target_name
            if resolver is not None:
                return resolver.resolve(self.table_name, index.columns, index.name) != target_name
            return True

        remaining = tuple(i for i in self.indexes if keep(i))
        if len(remaining) == len(self.indexes):
            raise ConfigurationError(
                f"No index '{name_or_columns}' declared", {"table": self.table_name}
            )
        return replace(self, indexes=remaining)

    def with_primary_key(self, name: str) -> "TableDefinition":
        if self.primary_key is not None and self.primary_key != name:
            raise ConfigurationError(
                "Two different primary keys declared",
                {"table": self.table_name, "first": self.primary_key, "second": name},
            )
        return replace(self, primary_key=name)


class SchemaBuilder:
    """
    Declaration DSL producing an immutable TableDefinition.

    Each call returns the builder so declarations can be chained::

        builder = SchemaBuilder("posts")
        builder.string("title", limit=100).text("body").references("category")
        definition = builder.build()
    """

    def __init__(
        self,
        table_name: str,
        primary_key: Optional[str] = None,
        base: Optional[TableDefinition] = None,
    ):
        self._definition = base or TableDefinition(table_name, primary_key)
        if base is not None and primary_key is not None:
            self._definition = self._definition.with_primary_key(primary_key)

    @classmethod
    def from_definition(cls, definition: TableDefinition) -> "SchemaBuilder":
        return cls(definition.table_name, base=definition)

    @property
    def table_name(self) -> str:
        return self._definition.table_name

    def build(self) -> TableDefinition:
        return self._definition

    def column(
        self,
        name: str,
        type: Union[str, ColumnType] = ColumnType.STRING,
        primary_key: bool = False,
        **options: Any,
    ) -> "SchemaBuilder":
        """Declare one column. ``references`` expands into ``<name>_id``."""
        column_type = ColumnType.parse(type)
        if column_type == ColumnType.UNKNOWN:
            raise ConfigurationError("Cannot declare a column of unknown type", {"column": name})
        if column_type == ColumnType.REFERENCES:
            if primary_key:
                raise ConfigurationError("A reference cannot be the primary key", {"column": name})
            return self._add_reference(name, options)

        column = ColumnDefinition(name, column_type, ColumnOptions.build(name, **options))
        if primary_key:
            self._definition = self._definition.with_primary_key(name)
        self._definition = self._definition.with_column(column)
        self._add_column_index(column)
        return self

    def col(self, *names: str, as_: Union[str, ColumnType] = ColumnType.STRING, **options: Any) -> "SchemaBuilder":
        """Declare several columns sharing a type and options."""
        if not names:
            raise ConfigurationError("col() needs at least one column name")
        for name in names:
            self.column(name, as_, **options)
        return self

    key = col

    def string(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.STRING, **options)

    def text(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.TEXT, **options)

    def integer(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.INTEGER, **options)

    def bigint(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.BIGINT, **options)

    def float(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.FLOAT, **options)

    def decimal(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.DECIMAL, **options)

    def boolean(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.BOOLEAN, **options)

    def date(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.DATE, **options)

    def datetime(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.DATETIME, **options)

    def time(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.TIME, **options)

    def binary(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.BINARY, **options)

    def references(self, *names: str, **options: Any) -> "SchemaBuilder":
        return self.col(*names, as_=ColumnType.REFERENCES, **options)

    belongs_to = references

    def timestamps(self, **options: Any) -> "SchemaBuilder":
        return self.col("created_at", "updated_at", as_=ColumnType.DATETIME, **options)

    def index(
        self,
        columns: Union[str, Iterable[str]],
        unique: bool = False,
        name: Optional[str] = None,
    ) -> "SchemaBuilder":
        columns = (columns,) if isinstance(columns, str) else tuple(columns)
        self._definition = self._definition.with_index(IndexDefinition(columns, unique, name))
        return self

    def primary_key(
        self,
        name: str,
        type: Optional[Union[str, ColumnType]] = None,
        **options: Any,
    ) -> "SchemaBuilder":
        """Set the primary key; with a type, also declare the key column."""
        self._definition = self._definition.with_primary_key(name)
        if type is not None:
            options.setdefault("null", False)
            self.column(name, type, **options)
        return self

    def _add_column_index(self, column: ColumnDefinition) -> None:
        if column.options.unique or column.options.index:
            self.index((column.name,), unique=column.options.unique)

    def _add_reference(self, name: str, options: Dict[str, Any]) -> "SchemaBuilder":
        options = dict(options)
        polymorphic = bool(options.pop("polymorphic", False))
        wants_index = options.pop("index", None)
        unique = bool(options.pop("unique", False))

        id_column = ColumnDefinition(
            f"{name}_id", ColumnType.INTEGER, ColumnOptions.build(name, unique=unique, **options)
        )
        self._definition = self._definition.with_column(id_column)
        index_columns: Tuple[str, ...] = (id_column.name,)

        if polymorphic:
            type_column = ColumnDefinition(
                f"{name}_type", ColumnType.STRING, ColumnOptions(null=id_column.nullable)
            )
            self._definition = self._definition.with_column(type_column)
            index_columns = (type_column.name, id_column.name)

        if unique or wants_index is not False:
            self.index(index_columns, unique=unique)
        return self
