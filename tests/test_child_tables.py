"""Tests for user-editable tables, matrix cells and derived selections."""

import pytest

from models.schema import SyncRule
from schemas import maintenance_checklist, spare_indent
from services import child_tables
from services.child_tables import CellState

ITEMS = spare_indent.schema.field("items")
MATRIX = maintenance_checklist.schema.field("checklist_data").matrix


def _row(asset, parameter, checked, description=""):
    return {"doctype": "Maintenance Checklist Item", "asset": asset, "parameter": parameter,
            "checked": checked, "description": description}


class TestEditableTables:
    def test_new_row_has_defaults_and_doctype(self):
        row = child_tables.new_row(ITEMS)
        assert row["doctype"] == "Material Request Item"
        assert row["custom_purpose_of_use"] == "Repair"
        assert row["item_code"] == ""

    def test_add_row_does_not_touch_input(self):
        rows = []
        updated = child_tables.add_row(ITEMS, rows, {"item_code": "BOLT", "qty": 2})
        assert rows == []
        assert updated[0]["item_code"] == "BOLT"

    def test_add_row_rejects_unknown_columns(self):
        with pytest.raises(ValueError, match="bogus"):
            child_tables.add_row(ITEMS, [], {"bogus": 1})

    def test_remove_rows(self):
        rows = [{"item_code": c} for c in "ABC"]
        assert child_tables.remove_rows(rows, [0, 2]) == [{"item_code": "B"}]
        with pytest.raises(IndexError):
            child_tables.remove_rows(rows, [3])

    def test_update_cell(self):
        rows = [{"item_code": "A", "qty": 1}]
        assert child_tables.update_cell(ITEMS, rows, 0, "qty", 5)[0]["qty"] == 5
        assert rows[0]["qty"] == 1
        with pytest.raises(ValueError):
            child_tables.update_cell(ITEMS, rows, 0, "colour", "red")

    def test_validate_rows_uses_column_rules(self):
        rows = [
            {"item_code": "A", "schedule_date": "2024-06-01", "qty": 1},
            {"item_code": "", "schedule_date": "2024-06-01", "qty": -2},
        ]
        errors = child_tables.validate_rows(ITEMS, rows)
        assert errors == ["Items row 2: Item Code is required", "Items row 2: Quantity Required must be >= 0"]

    def test_coerce_numeric(self):
        rows = [{"qty": "2.5", "rate": "", "amount": None, "item_code": "7"}]
        coerced = child_tables.coerce_numeric(ITEMS, rows)[0]
        assert coerced == {"qty": 2.5, "rate": 0, "amount": 0, "item_code": "7"}


class TestMatrixCells:
    def test_click_creates_row(self):
        rows = child_tables.set_cell_state(MATRIX, [], "P1", "Noise", CellState.PASS)
        assert rows == [_row("P1", "Noise", 1)]

    def test_same_state_again_returns_to_neutral(self):
        rows = [_row("P1", "Noise", 1)]
        assert child_tables.set_cell_state(MATRIX, rows, "P1", "Noise", CellState.PASS) == []
        assert child_tables.set_cell_state(MATRIX, rows, "P1", "Noise", CellState.PASS, toggle=False) == rows

    def test_leaving_fail_clears_the_note(self):
        rows = [_row("P1", "Noise", 0, "bearing noise")]
        rows = child_tables.set_cell_state(MATRIX, rows, "P1", "Noise", CellState.PASS)
        assert rows == [_row("P1", "Noise", 1, "")]

    def test_note_only_on_failed_cells(self):
        rows = [_row("P1", "Noise", 1)]
        with pytest.raises(ValueError):
            child_tables.set_cell_note(MATRIX, rows, "P1", "Noise", "loud")
        failed = child_tables.set_cell_state(MATRIX, rows, "P1", "Noise", CellState.FAIL)
        noted = child_tables.set_cell_note(MATRIX, failed, "P1", "Noise", "loud")
        assert child_tables.cell_state(MATRIX, noted, "P1", "Noise") == CellState.FAIL
        assert noted[0]["description"] == "loud"

    def test_regeneration_keeps_surviving_pairs(self):
        rows = [
            _row("P1", "Noise", 1),
            _row("P1", "Leak", 0, "drip"),
            _row("P3", "Noise", 0, "gone"),
            _row("P1", "Noise", 0),
        ]
        kept, dropped = child_tables.regenerate_rows(MATRIX, rows, ["P1", "P2"], ["Noise", "Leak"])
        assert kept == [_row("P1", "Noise", 1), _row("P1", "Leak", 0, "drip")]
        assert dropped == 2

    def test_grid_is_dense(self):
        rows = [_row("P1", "Leak", 0, "drip")]
        view = child_tables.grid(MATRIX, rows, ["P1", "P2"], ["Noise", "Leak"])
        assert view[0]["cells"] == [
            {"column": "Noise", "state": "neutral", "note": ""},
            {"column": "Leak", "state": "fail", "note": "drip"},
        ]
        assert [c["state"] for c in view[1]["cells"]] == ["neutral", "neutral"]

    def test_prepared_rows_drop_notes_outside_fail(self):
        field = maintenance_checklist.schema.field("checklist_data")
        prepared = child_tables.prepare_rows(field, [_row("P1", "Noise", 1, "stale")])
        assert prepared[0]["description"] == ""


class TestDerivedSelection:
    ROWS = [{"asset": "A1", "needs_repair": 1}, {"asset": "A2", "needs_repair": 0}, {"asset": "A3", "needs_repair": True}]

    def test_object_map_predicate(self):
        rule = SyncRule(source="custom_assets", target="repair", predicate={"needs_repair": True},
                        columns=["asset"], row_doctype="Asset Table Multiselect")
        assert child_tables.derive_selection(rule, self.ROWS) == [
            {"asset": "A1", "doctype": "Asset Table Multiselect"},
            {"asset": "A3", "doctype": "Asset Table Multiselect"},
        ]

    def test_callable_predicate(self):
        rule = SyncRule(source="s", target="t", predicate=lambda row: row["asset"] != "A1")
        assert [r["asset"] for r in child_tables.derive_selection(rule, self.ROWS)] == ["A2", "A3"]
