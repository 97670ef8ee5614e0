"""Pytest configuration and shared fixtures."""

import asyncio
import copy
from typing import Any, Dict, List, Optional

import pytest
from unittest.mock import Mock

from dbbrowser.browser.catalog import SchemaCatalog
from dbbrowser.browser.foreign_keys import ForeignKeyResolver
from dbbrowser.browser.notifications import NotificationQueue
from dbbrowser.browser.records import RecordSetController
from dbbrowser.browser.scheduler import ManualScheduler
from dbbrowser.browser.session import BrowserSession
from dbbrowser.config.settings import Settings
from dbbrowser.database.errors import BackendError
from dbbrowser.database.gateway import BackendGateway
from dbbrowser.database.models import ConnectionParams


def warehouse_tables() -> Dict[str, Dict[str, Any]]:
    """Three related tables: orders -> customers -> regions."""
    return {
        "customers": {
            "columns": ["id", "name", "region_id"],
            "foreign_keys": {
                "region_id": {
                    "column_name": "region_id",
                    "referenced_table": "regions",
                    "referenced_column": "id",
                    "descriptive_column": "name",
                    "join_alias": "region_id__regions",
                }
            },
            "rows": [
                {"id": 1, "name": "Ada", "region_id": 1},
                {"id": 2, "name": "Linus", "region_id": 2},
                {"id": 3, "name": "", "region_id": None},
            ],
        },
        "orders": {
            "columns": ["id", "customer_id", "note"],
            "foreign_keys": {
                "customer_id": {
                    "column_name": "customer_id",
                    "referenced_table": "customers",
                    "referenced_column": "id",
                    "descriptive_column": "name",
                    "join_alias": "customer_id__customers",
                }
            },
            "rows": [
                {"id": 10, "customer_id": 1, "note": None},
                {"id": 11, "customer_id": 2, "note": "gift wrap"},
            ],
        },
        "regions": {
            "columns": ["id", "name"],
            "foreign_keys": {},
            "rows": [
                {"id": 1, "name": "North"},
                {"id": 2, "name": "South"},
            ],
        },
    }


class FakeBackend:
    """In-memory backend speaking the raw transport contract.

    ``failures`` maps an operation name to the exception it should raise.
    ``gates`` maps ``(operation, table)`` to an event the call waits on,
    which lets tests hold a response in flight.
    """

    def __init__(self, tables: Optional[Dict[str, Dict[str, Any]]] = None, connected: bool = True):
        self.tables = copy.deepcopy(tables if tables is not None else warehouse_tables())
        self.connected = connected
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.gates: Dict[tuple, asyncio.Event] = {}
        self._ready_callback = None

    def set_ready_callback(self, callback) -> None:
        self._ready_callback = callback

    def fire_ready(self) -> None:
        self.connected = True
        if self._ready_callback is not None:
            self._ready_callback()

    async def _enter(self, operation: str, table: Optional[str] = None) -> None:
        self.calls.append((operation, table))
        gate = self.gates.get((operation, table))
        if gate is not None:
            await gate.wait()
        if operation in self.failures:
            raise self.failures[operation]
        if operation != "connect" and not self.connected:
            raise BackendError("not connected")

    def _table(self, table: str) -> Dict[str, Any]:
        if table not in self.tables:
            raise BackendError(f"Table 'test_db.{table}' doesn't exist")
        return self.tables[table]

    async def connect(self, params: ConnectionParams) -> None:
        await self._enter("connect")
        self.connected = True

    async def disconnect(self) -> None:
        self.calls.append(("disconnect", None))
        self.connected = False

    async def list_tables(self):
        await self._enter("list_tables")
        return list(self.tables)

    async def get_table_schema(self, table):
        await self._enter("get_table_schema", table)
        data = self._table(table)
        return {"columns": list(data["columns"]), "foreign_keys": copy.deepcopy(data["foreign_keys"])}

    def _label(self, fk: Dict[str, str], value):
        referenced = self.tables.get(fk["referenced_table"], {"rows": []})
        for row in referenced["rows"]:
            if row.get(fk["referenced_column"]) == value:
                return row.get(fk["descriptive_column"])
        return None

    async def get_table_content(self, table):
        await self._enter("get_table_content", table)
        data = self._table(table)
        rows = []
        for row in data["rows"]:
            item = dict(row)
            for column, fk in data["foreign_keys"].items():
                item[fk["join_alias"]] = self._label(fk, row.get(column))
            rows.append(item)
        return rows

    async def get_foreign_key_options(self, descriptor):
        await self._enter("get_foreign_key_options", descriptor.referenced_table)
        data = self._table(descriptor.referenced_table)
        return [
            {"id": row[descriptor.referenced_column], "display": row.get(descriptor.descriptive_column)}
            for row in data["rows"]
        ]

    async def insert_record(self, table, row):
        await self._enter("insert_record", table)
        data = self._table(table)
        primary_key = data["columns"][0]
        next_id = max([r[primary_key] for r in data["rows"]] or [0]) + 1
        data["rows"].append({primary_key: next_id, **row})

    async def update_record(self, table, primary_key_value, primary_key_column, row):
        await self._enter("update_record", table)
        for record in self._table(table)["rows"]:
            if record[primary_key_column] == primary_key_value:
                record.update(row)
                return
        raise BackendError(f"No record with {primary_key_column} = {primary_key_value}")

    async def delete_record(self, table, primary_key_value, primary_key_column):
        await self._enter("delete_record", table)
        data = self._table(table)
        remaining = [r for r in data["rows"] if r[primary_key_column] != primary_key_value]
        if len(remaining) == len(data["rows"]):
            raise BackendError(f"No record with {primary_key_column} = {primary_key_value}")
        data["rows"] = remaining

    async def count_records(self, table):
        await self._enter("count_records", table)
        return len(self._table(table)["rows"])


async def run_pending_tasks(rounds: int = 50) -> None:
    """Let spawned tasks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def test_settings():
    """Settings with fast, deterministic timings."""
    return Settings(
        db_host="localhost",
        db_port=3306,
        db_name="test_db",
        db_user="test_user",
        db_password="test_password",
        poll_interval=0.2,
        connect_timeout=5.0,
        notification_duration=3.0,
    )


@pytest.fixture
def mock_settings():
    """Create mock settings for testing."""
    settings = Mock(spec=Settings)
    settings.db_host = "localhost"
    settings.db_port = 3306
    settings.db_name = "test_db"
    settings.db_user = "test_user"
    settings.db_password = "test_password"
    settings.db_pool_size = 5
    settings.request_timeout = 30.0
    settings.poll_interval = 0.2
    settings.connect_timeout = 5.0
    settings.notification_duration = 3.0
    settings.debug = False
    settings.log_level = "INFO"
    settings.default_output_format = "table"
    settings.max_display_rows = 50
    return settings


@pytest.fixture
def connection_params():
    return ConnectionParams(host="localhost", port=3306, user="test_user", password="secret", db_name="test_db")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def offline_backend():
    """A backend that refuses every call until it is connected."""
    return FakeBackend(connected=False)


@pytest.fixture
def drain():
    """Coroutine function that lets spawned tasks finish."""
    return run_pending_tasks


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def gateway(backend):
    return BackendGateway(backend)


@pytest.fixture
def notifications(scheduler):
    return NotificationQueue(scheduler, duration=3.0)


@pytest.fixture
def catalog(gateway):
    return SchemaCatalog(gateway)


@pytest.fixture
def records(gateway, catalog, notifications):
    return RecordSetController(gateway, catalog, notifications)


@pytest.fixture
def resolver(gateway, notifications):
    return ForeignKeyResolver(gateway, notifications)


@pytest.fixture
def open_table(catalog, records):
    """Coroutine function that makes a table active with schema and rows loaded."""

    async def _open(table: str = "customers"):
        await catalog.load_tables()
        catalog.select_table(table)
        await catalog.load_schema(table)
        await records.load_content(table)

    return _open


@pytest.fixture
def session(backend, test_settings, scheduler):
    browser_session = BrowserSession(backend, settings=test_settings, scheduler=scheduler)
    yield browser_session
    browser_session.close()


@pytest.fixture(autouse=True)
def reset_global_instances():
    """Reset global instances before each test."""
    import dbbrowser.config.settings
    dbbrowser.config.settings._settings = None

    yield

    dbbrowser.config.settings._settings = None


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires database)"
    )
