"""Tests for the value store, dirty tracking and submit payloads."""

import pytest

from models.schema import FormSchema
from schemas import SCHEMAS
from services.form_state import FormState, values_equal

LAYOUT_TYPES = {"Section Break", "Column Break", "Button"}

SCHEMA = FormSchema.model_validate({
    "doctype": "Test",
    "tabs": [
        {"name": "Main", "fields": [
            {"name": "title", "type": "Data"},
            {"name": "section", "type": "Section Break"},
            {"name": "qty", "type": "Int"},
            {"name": "column", "type": "Column Break"},
            {"name": "recalculate", "type": "Button"},
            {"name": "shown_id", "type": "Read Only", "backed": False},
            {"name": "asset_no", "type": "Read Only"},
            {"name": "ui_only", "type": "Data"},
        ]},
        {"name": "Items", "fields": [
            {"name": "items", "type": "Table", "childDoctype": "Material Request Item", "columns": [
                {"name": "item_code", "type": "Data"},
                {"name": "qty", "type": "Float"},
                {"name": "rate", "type": "Currency"},
            ]},
        ]},
    ],
    "submitExclude": ["ui_only"],
})

RECORD = {"name": "T-1", "title": "Pump", "qty": 4, "modified": "2024-05-01 10:00:00", "items": []}


def test_not_dirty_after_load():
    state = FormState(SCHEMA, RECORD)
    assert state.is_dirty() is False
    assert state.build_submit_payload() == {}


def test_dirty_only_while_net_different():
    state = FormState(SCHEMA, RECORD)
    state.set_value("title", "Motor")
    assert state.is_dirty() and state.is_user_dirty()
    state.set_value("title", "Pump")
    assert state.is_dirty() is False
    assert state.is_user_dirty() is False


def test_none_and_empty_string_are_the_same_value():
    state = FormState(SCHEMA, {"title": None})
    state.set_value("title", "")
    assert state.is_dirty() is False
    assert values_equal(None, "")


def test_engine_writes_change_data_but_not_user_dirty():
    state = FormState(SCHEMA, RECORD)
    state.set_value("asset_no", "P-17", mark_dirty=False)
    assert state.is_dirty() is True
    assert state.is_user_dirty() is False
    assert state.build_submit_payload() == {"asset_no": "P-17"}


def test_set_value_reports_change():
    state = FormState(SCHEMA, RECORD)
    assert state.set_value("qty", 5) is True
    assert state.set_value("qty", 5) is False


def test_payload_is_the_diff_without_excluded_fields():
    state = FormState(SCHEMA, RECORD)
    state.set_value("qty", 9)
    state.set_value("ui_only", "scratch")
    assert state.build_submit_payload() == {"qty": 9}
    assert state.build_submit_payload(exclude=["qty"]) == {}


def test_changed_values_are_the_net_diff():
    state = FormState(SCHEMA, RECORD)
    state.set_value("title", "Motor")
    state.set_value("qty", 9)
    state.set_value("qty", 4)
    assert state.changed_values() == {"title": "Motor"}


def test_full_payload_for_new_documents_skips_empties():
    state = FormState(SCHEMA)
    state.set_value("title", "New pump")
    payload = state.build_submit_payload(full=True)
    assert payload == {"title": "New pump", "items": []}


@pytest.mark.parametrize("slug", sorted(SCHEMAS))
def test_payload_never_contains_layout_fields(slug):
    schema = SCHEMAS[slug]
    state = FormState(schema)
    for field in schema.iter_fields():
        state.values[field.name] = [] if field.type in ("Table", "Table MultiSelect") else "x"
    layout = {f.name for f in schema.iter_fields() if f.type in LAYOUT_TYPES}
    payload = state.build_submit_payload(full=True)
    assert not layout & set(payload)
    assert set(payload) <= {f.name for f in schema.data_fields()}


def test_table_rows_are_coerced_and_tagged():
    state = FormState(SCHEMA, RECORD)
    state.set_value("items", [{"item_code": "BOLT", "qty": "3", "rate": "abc"}])
    rows = state.build_submit_payload()["items"]
    assert rows == [{"item_code": "BOLT", "qty": 3.0, "rate": 0, "doctype": "Material Request Item"}]
    # The live value is untouched
    assert state.get_value("items")[0]["qty"] == "3"


def test_rebase_makes_saved_record_the_baseline():
    state = FormState(SCHEMA, RECORD)
    state.set_value("title", "Motor")
    state.rebase(dict(RECORD, title="Motor", modified="2024-05-02 09:00:00"))
    assert state.is_dirty() is False
    assert state.initial["modified"] == "2024-05-02 09:00:00"
