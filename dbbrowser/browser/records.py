"""Row content of the active table, the current selection and CRUD."""

import asyncio
import logging
from typing import Callable, Optional, Tuple

from ..database.errors import BackendError, BrowserError, SelectionRequiredError
from ..database.gateway import BackendGateway
from ..database.models import Row, TableSchema, Value, same_key
from .catalog import SchemaCatalog
from .notifications import NotificationQueue

logger = logging.getLogger(__name__)

ErrorHook = Callable[[BackendError], None]


def to_backend_value(value: Value) -> Value:
    """Form input to a stored value: an empty string means NULL."""
    if isinstance(value, str) and value == "":
        return None
    return value


class RecordSetController:
    """Owns the RecordSet and the Selection of the active table.

    The RecordSet is only ever replaced as a whole. Mutations are
    serialized by a lock held across the backend call and the reload
    that follows it, so a reload always observes the mutation.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        catalog: SchemaCatalog,
        notifications: NotificationQueue,
        on_error: Optional[ErrorHook] = None,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.notifications = notifications
        self.on_error = on_error
        self._records: Tuple[Row, ...] = ()
        self._selection: Optional[Row] = None
        self._loaded_table: Optional[str] = None
        self._generation = 0
        self._mutation_lock = asyncio.Lock()
        catalog.add_schema_listener(self._on_schema_changed)

    @property
    def records(self) -> Tuple[Row, ...]:
        return self._records

    @property
    def selection(self) -> Optional[Row]:
        return self._selection

    @property
    def loaded_table(self) -> Optional[str]:
        return self._loaded_table

    @property
    def is_busy(self) -> bool:
        """True while a mutation and its reload are in progress."""
        return self._mutation_lock.locked()

    def _on_schema_changed(self, table: Optional[str]) -> None:
        self._selection = None
        if table != self._loaded_table:
            self._records = ()
            self._loaded_table = None

    def _require_schema(self, expected_table: Optional[str] = None) -> Tuple[str, TableSchema]:
        table = self.catalog.active_table
        schema = self.catalog.schema
        if table is None or schema is None or schema.table_name != table:
            raise BrowserError("No table schema is loaded")
        if expected_table is not None and expected_table != table:
            raise BrowserError(f"{expected_table} is no longer the open table")
        return table, schema

    def _is_showing(self, table: str) -> bool:
        return self.catalog.active_table == table and self._loaded_table == table

    def primary_key_value(self, row: Row) -> Value:
        _, schema = self._require_schema()
        return row.get(schema.primary_key)

    async def load_content(self, table: str) -> Tuple[Row, ...]:
        """Replace the RecordSet with the current rows of ``table``.

        Results for a table that is no longer active, or for a request that
        a newer load has superseded, are discarded.
        """
        self._generation += 1
        generation = self._generation
        rows = tuple(await self.gateway.get_table_content(table))
        if generation != self._generation or table != self.catalog.active_table:
            logger.debug(f"Discarding stale content of '{table}'")
            return rows
        self._records = rows
        self._loaded_table = table
        self._selection = None
        logger.info(f"Loaded {len(rows)} records of {table}")
        return rows

    async def refresh(self) -> Tuple[Row, ...]:
        """Reload the active table."""
        table = self.catalog.active_table
        if table is None:
            return ()
        return await self.load_content(table)

    def select(self, row: Row) -> Optional[Row]:
        """Select the RecordSet member whose primary key matches ``row``."""
        primary_key = self.catalog.primary_key
        if primary_key is None or primary_key not in row:
            return self._selection
        return self.select_key(row[primary_key])

    def select_key(self, value: Value) -> Optional[Row]:
        """Select by primary-key value; a no-op if no row has that key."""
        primary_key = self.catalog.primary_key
        if primary_key is None:
            return self._selection
        for record in self._records:
            if same_key(record.get(primary_key), value):
                self._selection = record
                break
        return self._selection

    def clear_selection(self) -> None:
        self._selection = None

    def _selected_key(self) -> Value:
        if self._selection is None:
            raise SelectionRequiredError("No record is selected")
        return self.primary_key_value(self._selection)

    def _report_failure(self, message: str, error: BackendError) -> None:
        logger.error(f"{message}: {error}")
        self.notifications.error(f"{message}: {error}")
        if self.on_error is not None:
            self.on_error(error)

    async def _reload(self, table: str) -> None:
        try:
            await self.load_content(table)
        except BackendError as e:
            self._report_failure(f"Failed to reload {table}", e)

    async def insert(self, row: Row, table: Optional[str] = None) -> bool:
        """Insert a record built from every column except the primary key.

        Returns False on failure; nothing is changed locally in that case
        so the caller can keep its input. When ``table`` is given it must
        still be the active table.
        """
        async with self._mutation_lock:
            table, schema = self._require_schema(table)
            payload = {column: to_backend_value(row.get(column)) for column in schema.editable_columns}
            try:
                await self.gateway.insert_record(table, payload)
            except BackendError as e:
                self._report_failure("Failed to add record", e)
                return False
            self.notifications.success(f"Record added to {table}")
            await self._reload(table)
            return True

    async def update(self, primary_key_value: Value, row: Row, table: Optional[str] = None) -> bool:
        """Update the record identified by ``primary_key_value``.

        Only physical, non-key columns present in ``row`` are sent. After
        the reload the selection is re-matched by primary key, unless
        another table was opened meanwhile.
        """
        async with self._mutation_lock:
            table, schema = self._require_schema(table)
            payload = {
                column: to_backend_value(value)
                for column, value in row.items()
                if column in schema.editable_columns
            }
            try:
                await self.gateway.update_record(table, primary_key_value, schema.primary_key, payload)
            except BackendError as e:
                self._report_failure("Failed to update record", e)
                return False
            self.notifications.success(f"Record {primary_key_value} updated")
            await self._reload(table)
            if self._is_showing(table):
                self.select_key(primary_key_value)
            return True

    async def update_selected(self, row: Row) -> bool:
        """Update the selected record; its key is captured now."""
        return await self.update(self._selected_key(), row)

    async def delete(self, primary_key_value: Value) -> bool:
        """Delete a record. A selection is required.

        On failure the selection is left alone so the delete can be retried.
        """
        if self._selection is None:
            raise SelectionRequiredError("Select a record before deleting")
        async with self._mutation_lock:
            table, schema = self._require_schema()
            try:
                await self.gateway.delete_record(table, primary_key_value, schema.primary_key)
            except BackendError as e:
                self._report_failure("Failed to delete record", e)
                return False
            self._selection = None
            self.notifications.success(f"Record {primary_key_value} deleted")
            await self._reload(table)
            return True

    async def delete_selected(self) -> bool:
        """Delete the selected record; its key is captured now."""
        return await self.delete(self._selected_key())

    async def count_records(self) -> int:
        """Row count reported by the backend for the active table."""
        table, _ = self._require_schema()
        return await self.gateway.count_records(table)
