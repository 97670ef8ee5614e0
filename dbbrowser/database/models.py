"""Database models and data structures."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Tuple, Union

from .errors import BackendError

Value = Union[str, int, float, Decimal, None]
Row = Dict[str, Value]

_SCALAR_TYPES = (str, int, float, Decimal)


@dataclass(frozen=True)
class ConnectionParams:
    """Parameters needed to open a connection to the data source."""

    host: str
    port: int
    user: str
    password: str
    db_name: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert the parameters to a dictionary with the password masked."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": "***" if self.password else "",
            "db_name": self.db_name,
        }


@dataclass(frozen=True)
class ForeignKeyDescriptor:
    """Describes a column that references another table's column."""

    column_name: str
    referenced_table: str
    referenced_column: str
    descriptive_column: str
    join_alias: str

    @classmethod
    def from_dict(cls, data: Any) -> "ForeignKeyDescriptor":
        """Build a descriptor from a raw backend mapping."""
        if not isinstance(data, Mapping):
            raise BackendError(f"Malformed foreign key descriptor: {data!r}")
        values = {}
        for name in ("column_name", "referenced_table", "referenced_column",
                     "descriptive_column", "join_alias"):
            value = data.get(name)
            if not isinstance(value, str) or not value:
                raise BackendError(f"Foreign key descriptor is missing '{name}'")
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        """Convert the descriptor to a dictionary."""
        return {
            "column_name": self.column_name,
            "referenced_table": self.referenced_table,
            "referenced_column": self.referenced_column,
            "descriptive_column": self.descriptive_column,
            "join_alias": self.join_alias,
        }


@dataclass(frozen=True)
class TableSchema:
    """Column list and foreign keys of a single table.

    The first column is the primary key. Instances are never mutated;
    a refresh produces a new one.
    """

    table_name: str
    columns: Tuple[str, ...]
    foreign_keys: Dict[str, ForeignKeyDescriptor] = field(default_factory=dict)

    def __post_init__(self):
        if not self.columns:
            raise BackendError(f"Table '{self.table_name}' has no columns")
        if len(set(self.columns)) != len(self.columns):
            raise BackendError(f"Table '{self.table_name}' has duplicate column names")
        unknown = [name for name in self.foreign_keys if name not in self.columns]
        if unknown:
            raise BackendError(
                f"Foreign keys reference unknown columns of '{self.table_name}': {', '.join(unknown)}"
            )
        aliases = [fk.join_alias for fk in self.foreign_keys.values()]
        if len(set(aliases)) != len(aliases):
            raise BackendError(f"Table '{self.table_name}' has duplicate join aliases")

    @classmethod
    def from_dict(cls, table_name: str, data: Any) -> "TableSchema":
        """Build a schema from the raw ``{columns, foreign_keys}`` shape."""
        if not isinstance(data, Mapping):
            raise BackendError(f"Malformed schema for table '{table_name}'")
        columns = data.get("columns")
        if not isinstance(columns, (list, tuple)) or not all(isinstance(c, str) for c in columns):
            raise BackendError(f"Malformed column list for table '{table_name}'")
        raw_keys = data.get("foreign_keys") or {}
        if not isinstance(raw_keys, Mapping):
            raise BackendError(f"Malformed foreign keys for table '{table_name}'")
        foreign_keys = {}
        for column, raw in raw_keys.items():
            descriptor = ForeignKeyDescriptor.from_dict(raw)
            if descriptor.column_name != column:
                raise BackendError(
                    f"Foreign key for '{column}' describes column '{descriptor.column_name}'"
                )
            foreign_keys[column] = descriptor
        return cls(table_name=table_name, columns=tuple(columns), foreign_keys=foreign_keys)

    @property
    def primary_key(self) -> str:
        """Name of the primary key column."""
        return self.columns[0]

    @property
    def editable_columns(self) -> Tuple[str, ...]:
        """All columns except the primary key."""
        return self.columns[1:]

    @property
    def display_columns(self) -> Tuple[str, ...]:
        """Non-FK columns followed by one join alias per foreign key."""
        plain = tuple(name for name in self.columns if name not in self.foreign_keys)
        return plain + tuple(fk.join_alias for fk in self.foreign_keys.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert the schema to a dictionary."""
        return {
            "table_name": self.table_name,
            "columns": list(self.columns),
            "primary_key": self.primary_key,
            "foreign_keys": {name: fk.to_dict() for name, fk in self.foreign_keys.items()},
            "display_columns": list(self.display_columns),
        }


@dataclass(frozen=True)
class ForeignKeyOption:
    """A candidate value for a foreign-key column."""

    id: Value
    display: str

    @classmethod
    def from_dict(cls, data: Any) -> "ForeignKeyOption":
        """Build an option from a raw ``{id, display}`` mapping."""
        if not isinstance(data, Mapping) or "id" not in data:
            raise BackendError(f"Malformed foreign key option: {data!r}")
        option_id = data["id"]
        if option_id is not None and not isinstance(option_id, _SCALAR_TYPES):
            raise BackendError(f"Unsupported option id: {option_id!r}")
        display = data.get("display")
        return cls(id=option_id, display="" if display is None else str(display))


def row_from_dict(data: Any) -> Row:
    """Validate a raw row mapping, keeping NULL distinct from empty strings."""
    if not isinstance(data, Mapping):
        raise BackendError(f"Malformed row: {data!r}")
    row: Row = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise BackendError(f"Malformed column name in row: {key!r}")
        if value is not None and (isinstance(value, bool) or not isinstance(value, _SCALAR_TYPES)):
            raise BackendError(f"Unsupported value for column '{key}': {value!r}")
        row[key] = value
    return row


def same_key(left: Value, right: Value) -> bool:
    """Compare primary-key values, tolerating int/str drift between loads."""
    if left is None or right is None:
        return left is right
    if left == right:
        return True
    return str(left) == str(right)


def format_value(value: Value) -> str:
    """Render a value for display; NULL is distinct from an empty string."""
    if value is None:
        return "NULL"
    return str(value)

