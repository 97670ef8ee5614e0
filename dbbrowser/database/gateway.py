"""Typed boundary over the backend RPC contract."""

import logging
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from .errors import BackendError, ConnectionLostError
from .models import (
    ConnectionParams,
    ForeignKeyDescriptor,
    ForeignKeyOption,
    Row,
    TableSchema,
    Value,
    row_from_dict,
)

logger = logging.getLogger(__name__)

ReadyListener = Callable[[], None]


class Backend(Protocol):
    """Raw transport the gateway wraps.

    Methods return plain JSON-like shapes; the gateway validates them.
    """

    async def connect(self, params: ConnectionParams) -> None: ...

    async def disconnect(self) -> None: ...

    async def list_tables(self) -> Any: ...

    async def get_table_schema(self, table: str) -> Any: ...

    async def get_table_content(self, table: str) -> Any: ...

    async def get_foreign_key_options(self, descriptor: ForeignKeyDescriptor) -> Any: ...

    async def insert_record(self, table: str, row: Row) -> None: ...

    async def update_record(self, table: str, primary_key_value: Value,
                            primary_key_column: str, row: Row) -> None: ...

    async def delete_record(self, table: str, primary_key_value: Value,
                            primary_key_column: str) -> None: ...

    async def count_records(self, table: str) -> Any: ...

    def set_ready_callback(self, callback: Optional[ReadyListener]) -> None: ...


class BackendGateway:
    """Wraps a :class:`Backend`, normalizing errors and response shapes.

    Every failure leaves this class as a :class:`BackendError`. Malformed
    responses are rejected here so that nothing downstream ever sees a
    half-shaped value.
    """

    def __init__(self, backend: Backend):
        self.backend = backend
        self._ready_listeners: List[ReadyListener] = []
        backend.set_ready_callback(self._emit_ready)

    def add_ready_listener(self, listener: ReadyListener) -> None:
        """Subscribe to the out-of-band ``backend_ready`` signal."""
        self._ready_listeners.append(listener)

    def remove_ready_listener(self, listener: ReadyListener) -> None:
        """Unsubscribe from the ready signal; unknown listeners are ignored."""
        if listener in self._ready_listeners:
            self._ready_listeners.remove(listener)

    def _emit_ready(self) -> None:
        logger.debug("Backend signalled ready")
        for listener in list(self._ready_listeners):
            listener()

    async def _call(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await call()
        except BackendError:
            raise
        except ConnectionError as e:
            logger.warning(f"{operation} lost the backend connection: {e}")
            raise ConnectionLostError(str(e) or "connection lost") from e
        except Exception as e:
            logger.debug(f"{operation} failed: {e}")
            raise BackendError(str(e) or type(e).__name__) from e

    async def connect(self, params: ConnectionParams) -> None:
        """Ask the backend to open a connection."""
        await self._call("connect", lambda: self.backend.connect(params))

    async def disconnect(self) -> None:
        """Ask the backend to close its connection."""
        await self._call("disconnect", self.backend.disconnect)

    async def list_tables(self) -> List[str]:
        """Return the table names of the connected database."""
        raw = await self._call("list_tables", self.backend.list_tables)
        if not isinstance(raw, (list, tuple)) or not all(isinstance(name, str) for name in raw):
            raise BackendError("Malformed table list")
        return list(raw)

    async def get_table_schema(self, table: str) -> TableSchema:
        """Return the columns and foreign keys of a table."""
        raw = await self._call("get_table_schema", lambda: self.backend.get_table_schema(table))
        return TableSchema.from_dict(table, raw)

    async def get_table_content(self, table: str) -> List[Row]:
        """Return all rows of a table, including foreign-key join aliases."""
        raw = await self._call("get_table_content", lambda: self.backend.get_table_content(table))
        if not isinstance(raw, (list, tuple)):
            raise BackendError(f"Malformed content for table '{table}'")
        return [row_from_dict(item) for item in raw]

    async def get_foreign_key_options(self, descriptor: ForeignKeyDescriptor) -> List[ForeignKeyOption]:
        """Return the candidate values for a foreign-key column."""
        raw = await self._call(
            "get_foreign_key_options",
            lambda: self.backend.get_foreign_key_options(descriptor),
        )
        if not isinstance(raw, (list, tuple)):
            raise BackendError(f"Malformed options for column '{descriptor.column_name}'")
        return [ForeignKeyOption.from_dict(item) for item in raw]

    async def insert_record(self, table: str, row: Row) -> None:
        """Insert a row (without primary key) into a table."""
        await self._call("insert_record", lambda: self.backend.insert_record(table, dict(row)))

    async def update_record(self, table: str, primary_key_value: Value,
                            primary_key_column: str, row: Row) -> None:
        """Update the row identified by ``primary_key_value``."""
        await self._call(
            "update_record",
            lambda: self.backend.update_record(table, primary_key_value, primary_key_column, dict(row)),
        )

    async def delete_record(self, table: str, primary_key_value: Value,
                            primary_key_column: str) -> None:
        """Delete the row identified by ``primary_key_value``."""
        await self._call(
            "delete_record",
            lambda: self.backend.delete_record(table, primary_key_value, primary_key_column),
        )

    async def count_records(self, table: str) -> int:
        """Return the number of rows in a table."""
        raw = await self._call("count_records", lambda: self.backend.count_records(table))
        if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
            raise BackendError(f"Malformed record count for table '{table}'")
        return raw
