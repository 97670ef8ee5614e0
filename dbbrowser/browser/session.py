"""Wires the gateway and the browser components into one session."""

import logging
from typing import Optional, Tuple

from ..config.settings import Settings, get_settings
from ..database.connection import MySQLBackend
from ..database.errors import BackendError, ConnectionLostError
from ..database.gateway import Backend, BackendGateway
from ..database.models import ConnectionParams, Row, TableSchema
from .catalog import SchemaCatalog
from .foreign_keys import ForeignKeyOptions, ForeignKeyResolver
from .forms import EditForm, FormMode, open_form
from .lifecycle import ConnectionLifecycle, ConnectionStatus
from .notifications import NotificationQueue
from .records import RecordSetController
from .scheduler import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)


class BrowserSession:
    """One connection's worth of browser state.

    Once the connection is ready, backend errors are reported through the
    notification queue and never retried automatically. A lost connection
    moves the lifecycle to Failed.
    """

    def __init__(
        self,
        backend: Backend,
        settings: Optional[Settings] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AsyncioScheduler()
        self.gateway = BackendGateway(backend)
        self.notifications = NotificationQueue(self.scheduler, self.settings.notification_duration)
        self.catalog = SchemaCatalog(self.gateway)
        self.records = RecordSetController(
            self.gateway, self.catalog, self.notifications, on_error=self._on_backend_error
        )
        self.resolver = ForeignKeyResolver(self.gateway, self.notifications)
        self.lifecycle = ConnectionLifecycle(
            self.gateway,
            self.scheduler,
            self.notifications,
            on_ready=self._initial_load,
            poll_interval=self.settings.poll_interval,
            connect_timeout=self.settings.connect_timeout,
        )

    @property
    def status(self) -> ConnectionStatus:
        return self.lifecycle.status

    @property
    def schema(self) -> Optional[TableSchema]:
        return self.catalog.schema

    @property
    def display_columns(self) -> Tuple[str, ...]:
        return self.catalog.display_columns

    @property
    def rows(self) -> Tuple[Row, ...]:
        return self.records.records

    def _on_backend_error(self, error: BackendError) -> None:
        if isinstance(error, ConnectionLostError):
            self.lifecycle.connection_lost(str(error))

    def _report(self, message: str, error: BackendError) -> None:
        logger.error(f"{message}: {error}")
        self.notifications.error(f"{message}: {error}")
        self._on_backend_error(error)

    def start(self, params: Optional[ConnectionParams] = None) -> ConnectionStatus:
        """Begin connecting; defaults to the configured connection."""
        return self.lifecycle.start(params or self.settings.connection_params)

    async def wait_ready(self, timeout: Optional[float] = None) -> ConnectionStatus:
        """Wait for the handshake and, on success, the initial table load."""
        return await self.lifecycle.wait_settled(timeout)

    async def connect(self, params: Optional[ConnectionParams] = None) -> ConnectionStatus:
        """Start the handshake and wait until it settles."""
        self.start(params)
        return await self.wait_ready()

    async def _initial_load(self) -> None:
        await self.load_tables()
        if self.catalog.active_table is not None:
            await self._open_table(self.catalog.active_table)

    async def load_tables(self) -> Tuple[str, ...]:
        """Refresh the table list, reporting failures."""
        try:
            return await self.catalog.load_tables()
        except BackendError as e:
            self._report("Failed to load tables", e)
            return self.catalog.tables

    async def select_table(self, table: str) -> bool:
        """Make ``table`` active and load its schema and content."""
        try:
            self.catalog.select_table(table)
        except BackendError as e:
            self._report("Cannot open table", e)
            return False
        return await self._open_table(table)

    async def _open_table(self, table: str) -> bool:
        try:
            await self.catalog.load_schema(table)
            if self.catalog.active_table != table:
                return False
            await self.records.load_content(table)
        except BackendError as e:
            self._report(f"Failed to open {table}", e)
            return False
        return self.catalog.active_table == table

    async def refresh(self) -> bool:
        """Reload the active table's schema and rows."""
        table = self.catalog.active_table
        if table is None:
            return False
        return await self._open_table(table)

    async def resolve_options(self) -> ForeignKeyOptions:
        return await self.resolver.resolve_options(self.catalog.foreign_keys)

    async def open_add_form(self) -> EditForm:
        return await open_form(FormMode.ADD, self.catalog, self.records, self.resolver)

    async def open_edit_form(self) -> EditForm:
        return await open_form(FormMode.EDIT, self.catalog, self.records, self.resolver)

    async def delete_selected(self) -> bool:
        return await self.records.delete_selected()

    async def count_records(self) -> Optional[int]:
        try:
            return await self.records.count_records()
        except BackendError as e:
            self._report("Failed to count records", e)
            return None

    async def disconnect(self) -> ConnectionStatus:
        status = await self.lifecycle.disconnect()
        self.catalog.clear()
        self.notifications.dismiss()
        return status

    def close(self) -> None:
        """Teardown: cancel every timer and in-flight task."""
        self.lifecycle.close()
        self.notifications.close()


def create_session(settings: Optional[Settings] = None, scheduler: Optional[Scheduler] = None) -> BrowserSession:
    """Build a session backed by MySQL."""
    settings = settings or get_settings()
    return BrowserSession(MySQLBackend(settings), settings=settings, scheduler=scheduler)
