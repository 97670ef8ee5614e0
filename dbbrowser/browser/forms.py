"""Add/edit form state used by presentation layers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from ..database.errors import BrowserError, SelectionRequiredError
from ..database.models import Value, same_key
from .catalog import SchemaCatalog
from .foreign_keys import ForeignKeyOptions, ForeignKeyResolver
from .records import RecordSetController


class FormMode(str, Enum):
    ADD = "add"
    EDIT = "edit"


@dataclass
class EditForm:
    """Input for one insert or update.

    The foreign-key options live only as long as the form. A failed submit
    leaves the form open with its values untouched.
    """

    mode: FormMode
    table: str
    columns: Tuple[str, ...]
    values: Dict[str, Value]
    options: ForeignKeyOptions
    records: RecordSetController = field(repr=False)
    primary_key_value: Value = None
    is_open: bool = True

    def set_value(self, column: str, value: Value) -> None:
        if column not in self.columns:
            raise BrowserError(f"'{column}' is not an editable column of {self.table}")
        self.values[column] = value

    def choose_option(self, column: str, option_id: Value) -> None:
        """Set a foreign-key column to one of its resolved options."""
        for option in self.options.get(column, []):
            if same_key(option.id, option_id):
                self.set_value(column, option.id)
                return
        raise BrowserError(f"{option_id!r} is not a valid choice for {column}")

    def option_label(self, column: str, value: Value) -> Optional[str]:
        for option in self.options.get(column, []):
            if same_key(option.id, value):
                return option.display
        return None

    async def submit(self) -> bool:
        """Send the form; returns True when it may close."""
        if not self.is_open:
            raise BrowserError("This form has already been closed")
        if self.mode is FormMode.ADD:
            ok = await self.records.insert(self.values, table=self.table)
        else:
            ok = await self.records.update(self.primary_key_value, self.values, table=self.table)
        if ok:
            self.close()
        return ok

    def close(self) -> None:
        self.is_open = False
        self.options = {}


async def open_form(
    mode: FormMode,
    catalog: SchemaCatalog,
    records: RecordSetController,
    resolver: ForeignKeyResolver,
) -> EditForm:
    """Build a form for the active table with freshly resolved options.

    Edit forms capture the selected record's primary key immediately.
    """
    schema = catalog.schema
    if schema is None or catalog.active_table is None:
        raise BrowserError("No table schema is loaded")

    primary_key_value: Value = None
    if mode is FormMode.EDIT:
        selection = records.selection
        if selection is None:
            raise SelectionRequiredError("Select a record to edit")
        primary_key_value = selection.get(schema.primary_key)
        values = {column: selection.get(column) for column in schema.editable_columns}
    else:
        values = {column: "" for column in schema.editable_columns}

    options = await resolver.resolve_options(schema.foreign_keys)
    return EditForm(
        mode=mode,
        table=schema.table_name,
        columns=schema.editable_columns,
        values=values,
        options=options,
        records=records,
        primary_key_value=primary_key_value,
    )
