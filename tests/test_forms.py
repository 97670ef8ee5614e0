"""Tests for add and edit forms."""

import pytest

from dbbrowser.browser.forms import FormMode, open_form
from dbbrowser.database.errors import BackendError, BrowserError, SelectionRequiredError


class TestOpenForm:
    """Test cases for building forms."""

    @pytest.mark.asyncio
    async def test_add_form_starts_blank(self, open_table, catalog, records, resolver):
        await open_table("customers")

        form = await open_form(FormMode.ADD, catalog, records, resolver)

        assert form.columns == ("name", "region_id")
        assert form.values == {"name": "", "region_id": ""}
        assert [option.display for option in form.options["region_id"]] == ["North", "South"]

    @pytest.mark.asyncio
    async def test_edit_form_requires_selection(self, open_table, catalog, records, resolver):
        await open_table("customers")

        with pytest.raises(SelectionRequiredError):
            await open_form(FormMode.EDIT, catalog, records, resolver)

    @pytest.mark.asyncio
    async def test_form_needs_schema(self, catalog, records, resolver):
        with pytest.raises(BrowserError):
            await open_form(FormMode.ADD, catalog, records, resolver)

    @pytest.mark.asyncio
    async def test_edit_form_captures_primary_key(self, open_table, catalog, records, resolver, backend):
        """Test that changing the selection after opening does not retarget the update."""
        await open_table("customers")
        records.select_key(2)
        form = await open_form(FormMode.EDIT, catalog, records, resolver)
        assert form.values == {"name": "Linus", "region_id": 2}

        records.select_key(1)
        form.set_value("name", "Linus T")
        assert await form.submit() is True

        rows = backend.tables["customers"]["rows"]
        assert rows[0]["name"] == "Ada"
        assert rows[1]["name"] == "Linus T"
        assert not form.is_open


class TestEditForm:
    """Test cases for form input and submission."""

    @pytest.mark.asyncio
    async def test_choose_option(self, open_table, catalog, records, resolver):
        await open_table("customers")
        form = await open_form(FormMode.ADD, catalog, records, resolver)

        form.choose_option("region_id", "2")

        assert form.values["region_id"] == 2
        assert form.option_label("region_id", 2) == "South"
        with pytest.raises(BrowserError):
            form.choose_option("region_id", 9)

    @pytest.mark.asyncio
    async def test_set_value_rejects_unknown_column(self, open_table, catalog, records, resolver):
        await open_table("customers")
        form = await open_form(FormMode.ADD, catalog, records, resolver)

        with pytest.raises(BrowserError):
            form.set_value("id", 7)

    @pytest.mark.asyncio
    async def test_failed_submit_keeps_input(self, open_table, catalog, records, resolver, backend):
        """Test that the form stays open with its values after a failure."""
        await open_table("customers")
        form = await open_form(FormMode.ADD, catalog, records, resolver)
        form.set_value("name", "Grace")
        backend.failures["insert_record"] = BackendError("Data too long for column 'name'")

        assert await form.submit() is False

        assert form.is_open
        assert form.values["name"] == "Grace"

        del backend.failures["insert_record"]
        assert await form.submit() is True
        assert records.records[-1]["name"] == "Grace"

    @pytest.mark.asyncio
    async def test_submit_after_table_switch_is_refused(self, open_table, catalog, records, resolver, backend):
        """Test that an edit form never writes into a table opened after it."""
        await open_table("customers")
        records.select_key(1)
        form = await open_form(FormMode.EDIT, catalog, records, resolver)
        catalog.select_table("regions")
        await catalog.load_schema("regions")
        form.set_value("name", "Grace")

        with pytest.raises(BrowserError, match="customers"):
            await form.submit()

        assert ("update_record", "regions") not in backend.calls
        assert ("update_record", "customers") not in backend.calls
        assert backend.tables["regions"]["rows"][0]["name"] == "North"
        assert form.is_open

    @pytest.mark.asyncio
    async def test_closed_form_cannot_submit(self, open_table, catalog, records, resolver):
        await open_table("customers")
        form = await open_form(FormMode.ADD, catalog, records, resolver)

        form.close()

        assert form.options == {}
        with pytest.raises(BrowserError):
            await form.submit()
