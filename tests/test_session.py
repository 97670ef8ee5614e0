"""Tests for the browser session wiring."""

import pytest
from unittest.mock import patch

from dbbrowser.browser.lifecycle import ConnectionPhase
from dbbrowser.browser.session import BrowserSession, create_session
from dbbrowser.database.connection import MySQLBackend
from dbbrowser.database.errors import BackendError, SelectionRequiredError


class TestBrowserSession:
    """Test cases for BrowserSession."""

    @pytest.mark.asyncio
    async def test_connect_loads_first_table(self, session, backend):
        """Test that a ready connection opens the first table."""
        status = await session.connect()

        assert status.is_ready
        assert ("connect", None) in backend.calls
        assert session.catalog.tables == ("customers", "orders", "regions")
        assert session.catalog.active_table == "customers"
        assert session.display_columns == ("id", "name", "region_id__regions")
        assert len(session.rows) == 3

    @pytest.mark.asyncio
    async def test_connect_uses_configured_params(self, session, test_settings):
        with patch.object(session.lifecycle, "start", wraps=session.lifecycle.start) as start:
            session.start()
        await session.wait_ready()

        start.assert_called_once_with(test_settings.connection_params)

    @pytest.mark.asyncio
    async def test_select_table(self, session):
        await session.connect()

        assert await session.select_table("orders") is True

        assert session.schema.table_name == "orders"
        assert [row["customer_id__customers"] for row in session.rows] == ["Ada", "Linus"]

    @pytest.mark.asyncio
    async def test_select_unknown_table_is_reported(self, session):
        await session.connect()

        assert await session.select_table("invoices") is False

        assert session.notifications.current.is_error
        assert session.catalog.active_table == "customers"

    @pytest.mark.asyncio
    async def test_initial_load_failure_is_reported(self, session, backend):
        backend.failures["get_table_schema"] = BackendError("Table 'test_db.customers' doesn't exist")

        status = await session.connect()

        assert status.is_ready
        assert session.notifications.current.is_error
        assert "doesn't exist" in session.notifications.current.message

    @pytest.mark.asyncio
    async def test_lost_connection_fails_lifecycle(self, session, backend):
        """Test that a dropped link after Ready moves the session to Failed."""
        await session.connect()
        session.records.select_key(1)
        backend.failures["delete_record"] = ConnectionError("Lost connection to MySQL server during query")

        assert await session.delete_selected() is False

        assert session.status.phase is ConnectionPhase.FAILED
        assert "Lost connection" in session.status.reason

    @pytest.mark.asyncio
    async def test_add_form_roundtrip(self, session):
        await session.connect()

        form = await session.open_add_form()
        form.set_value("name", "Grace")
        form.choose_option("region_id", 2)

        assert await form.submit() is True
        assert session.rows[-1]["region_id__regions"] == "South"

    @pytest.mark.asyncio
    async def test_edit_form_without_selection(self, session):
        await session.connect()

        with pytest.raises(SelectionRequiredError):
            await session.open_edit_form()

    @pytest.mark.asyncio
    async def test_resolve_options(self, session):
        await session.connect()

        options = await session.resolve_options()

        assert list(options) == ["region_id"]

    @pytest.mark.asyncio
    async def test_count_and_refresh(self, session, backend):
        await session.connect()
        backend.tables["customers"]["rows"].pop()

        assert await session.count_records() == 2
        assert await session.refresh() is True
        assert len(session.rows) == 2

    @pytest.mark.asyncio
    async def test_count_failure_returns_none(self, session, backend):
        await session.connect()
        backend.failures["count_records"] = BackendError("boom")

        assert await session.count_records() is None
        assert session.notifications.current.is_error

    @pytest.mark.asyncio
    async def test_disconnect(self, session, backend):
        await session.connect()

        status = await session.disconnect()

        assert status.phase is ConnectionPhase.IDLE
        assert session.catalog.tables == ()
        assert session.notifications.current is None
        assert backend.connected is False


def test_create_session_uses_mysql_backend(test_settings, scheduler):
    session = create_session(test_settings, scheduler=scheduler)

    assert isinstance(session.gateway.backend, MySQLBackend)
    assert isinstance(session, BrowserSession)
    session.close()
