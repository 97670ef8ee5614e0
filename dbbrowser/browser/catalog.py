"""Table list, active table and the active table's schema."""

import logging
from typing import Callable, List, Optional, Tuple

from ..database.errors import BackendError
from ..database.gateway import BackendGateway
from ..database.models import TableSchema

logger = logging.getLogger(__name__)

SchemaListener = Callable[[Optional[str]], None]


class SchemaCatalog:
    """Holds what is known about the database's tables.

    Listeners registered with :meth:`add_schema_listener` are called with
    the active table name whenever the active table or its schema changes;
    the record controller uses this to drop its selection.
    """

    def __init__(self, gateway: BackendGateway):
        self.gateway = gateway
        self._tables: Tuple[str, ...] = ()
        self._active_table: Optional[str] = None
        self._schema: Optional[TableSchema] = None
        self._listeners: List[SchemaListener] = []

    @property
    def tables(self) -> Tuple[str, ...]:
        return self._tables

    @property
    def active_table(self) -> Optional[str]:
        return self._active_table

    @property
    def schema(self) -> Optional[TableSchema]:
        """Schema of the active table, once loaded."""
        return self._schema

    @property
    def primary_key(self) -> Optional[str]:
        return self._schema.primary_key if self._schema else None

    @property
    def display_columns(self) -> Tuple[str, ...]:
        return self._schema.display_columns if self._schema else ()

    @property
    def foreign_keys(self) -> dict:
        return dict(self._schema.foreign_keys) if self._schema else {}

    def add_schema_listener(self, listener: SchemaListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._active_table)

    async def load_tables(self) -> Tuple[str, ...]:
        """Fetch the table list.

        If no table is active yet, the first table becomes active. That is
        the only implicit selection the catalog ever makes.
        """
        tables = tuple(await self.gateway.list_tables())
        self._tables = tables
        logger.info(f"Catalog holds {len(tables)} tables")
        if self._active_table is None and tables:
            self.select_table(tables[0])
        return tables

    def select_table(self, table: str) -> None:
        """Make ``table`` the active table; its schema must be loaded next."""
        if self._tables and table not in self._tables:
            raise BackendError(f"Unknown table '{table}'")
        if table != self._active_table:
            logger.info(f"Active table: {table}")
            self._active_table = table
            self._schema = None
        self._notify()

    async def load_schema(self, table: str) -> TableSchema:
        """Fetch and install the schema of ``table``.

        The response is discarded if another table became active while the
        request was in flight. The returned schema is always the fetched one.
        """
        schema = await self.gateway.get_table_schema(table)
        if table != self._active_table:
            logger.debug(f"Discarding schema of '{table}', active table is '{self._active_table}'")
            return schema
        self._schema = schema
        logger.debug(f"Schema of {table}: columns={list(schema.columns)} foreign_keys={list(schema.foreign_keys)}")
        self._notify()
        return schema

    def clear(self) -> None:
        """Forget everything, e.g. after disconnecting."""
        self._tables = ()
        self._active_table = None
        self._schema = None
        self._notify()
