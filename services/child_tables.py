"""
Child-table engine: pure helpers over lists of row dicts.

Every helper returns a new list and leaves its input untouched, so callers can
write the result back through the form session and dirty tracking sees a
real change.
"""

import copy
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from models.schema import NUMERIC_TYPES, MatrixConfig, SyncRule, TableField
from services import conditions
from services.validation import field_errors, to_number

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


# --- User-editable tables ---

def row_doctype(field: TableField) -> Optional[str]:
    if field.matrix:
        return field.matrix.row_doctype
    return field.child_doctype


def new_row(field: TableField) -> Row:
    row: Row = {column.name: copy.deepcopy(column.initial_value()) for column in field.columns}
    for column in field.columns:
        if row[column.name] is None:
            row[column.name] = ""
    doctype = row_doctype(field)
    if doctype:
        row["doctype"] = doctype
    return row


def add_row(field: TableField, rows: Sequence[Row], values: Optional[Row] = None) -> List[Row]:
    row = new_row(field)
    if values:
        unknown = set(values) - {c.name for c in field.columns}
        if unknown:
            raise ValueError(f"Unknown column(s) for {field.label}: {', '.join(sorted(unknown))}")
        row.update(values)
    return [copy.deepcopy(r) for r in rows] + [row]


def remove_rows(rows: Sequence[Row], indices: Iterable[int]) -> List[Row]:
    drop = set(indices)
    out_of_range = [i for i in drop if i < 0 or i >= len(rows)]
    if out_of_range:
        raise IndexError(f"Row index out of range: {sorted(out_of_range)}")
    return [copy.deepcopy(row) for i, row in enumerate(rows) if i not in drop]


def update_cell(field: TableField, rows: Sequence[Row], index: int, column: str, value: Any) -> List[Row]:
    if field.column(column) is None:
        raise ValueError(f"{field.label} has no column '{column}'")
    if index < 0 or index >= len(rows):
        raise IndexError(f"Row index out of range: {index}")
    updated = [copy.deepcopy(row) for row in rows]
    updated[index][column] = value
    return updated


def validate_rows(field: TableField, rows: Sequence[Row]) -> List[str]:
    errors = []
    for index, row in enumerate(rows, start=1):
        for column in field.columns:
            for message in field_errors(column, row.get(column.name), column.required):
                errors.append(f"{field.label} row {index}: {message}")
    return errors


def coerce_numeric(field: TableField, rows: Sequence[Row]) -> List[Row]:
    """Numeric columns become numbers; anything unparsable becomes 0."""
    numeric = [c for c in field.columns if c.type in NUMERIC_TYPES]
    coerced = []
    for row in rows:
        row = copy.deepcopy(row)
        for column in numeric:
            try:
                row[column.name] = to_number(row.get(column.name), integer=column.type == "Int")
            except (TypeError, ValueError):
                row[column.name] = 0
        coerced.append(row)
    return coerced


def prepare_rows(field: TableField, rows: Sequence[Row]) -> List[Row]:
    """Rows as the backend expects them: numbers coerced, doctype tagged, stale notes dropped."""
    prepared = coerce_numeric(field, rows)
    doctype = row_doctype(field)
    for row in prepared:
        if doctype and not row.get("doctype"):
            row["doctype"] = doctype
    if field.matrix:
        config = field.matrix
        for row in prepared:
            if _state_of(config, row) != CellState.FAIL:
                row[config.note_field] = ""
    return prepared


# --- Matrix tables ---

class CellState(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    NEUTRAL = "neutral"


def _find(config: MatrixConfig, rows: Sequence[Row], row_key: Any, column_key: Any) -> int:
    for index, row in enumerate(rows):
        if row.get(config.row_field) == row_key and row.get(config.column_field) == column_key:
            return index
    return -1


def _state_of(config: MatrixConfig, row: Row) -> CellState:
    checked = row.get(config.state_field)
    if checked in (1, True, "1"):
        return CellState.PASS
    if checked in (0, False, "0"):
        return CellState.FAIL
    return CellState.NEUTRAL


def cell_state(config: MatrixConfig, rows: Sequence[Row], row_key: Any, column_key: Any) -> CellState:
    index = _find(config, rows, row_key, column_key)
    return CellState.NEUTRAL if index < 0 else _state_of(config, rows[index])


def set_cell_state(config: MatrixConfig, rows: Sequence[Row], row_key: Any, column_key: Any,
                   state: CellState, toggle: bool = True) -> List[Row]:
    """
    Neutral cells have no row. Choosing the state a cell already has toggles
    it back to neutral when `toggle` is set. Leaving `fail` clears the note.
    """
    state = CellState(state)
    updated = [copy.deepcopy(row) for row in rows]
    index = _find(config, updated, row_key, column_key)

    if index >= 0:
        current = _state_of(config, updated[index])
        if state == CellState.NEUTRAL or (toggle and current == state):
            del updated[index]
            return updated
        updated[index][config.state_field] = 1 if state == CellState.PASS else 0
        if state != CellState.FAIL:
            updated[index][config.note_field] = ""
        return updated

    if state == CellState.NEUTRAL:
        return updated
    updated.append({
        "doctype": config.row_doctype,
        config.row_field: row_key,
        config.column_field: column_key,
        config.state_field: 1 if state == CellState.PASS else 0,
        config.note_field: "",
    })
    return updated


def set_cell_note(config: MatrixConfig, rows: Sequence[Row], row_key: Any, column_key: Any,
                  note: str) -> List[Row]:
    if cell_state(config, rows, row_key, column_key) != CellState.FAIL:
        raise ValueError(f"A note can only be added to a failed cell ({row_key} / {column_key})")
    index = _find(config, rows, row_key, column_key)
    updated = [copy.deepcopy(row) for row in rows]
    updated[index][config.note_field] = note
    return updated


def regenerate_rows(config: MatrixConfig, rows: Sequence[Row], row_keys: Sequence[Any],
                    column_keys: Sequence[Any]) -> Tuple[List[Row], int]:
    """
    Keeps the rows whose (row, column) pair is still in the new grid, drops
    the others and collapses duplicate pairs. Returns (rows, dropped_count).
    """
    wanted = {(r, c) for r in row_keys for c in column_keys}
    kept: List[Row] = []
    seen = set()
    for row in rows:
        pair = (row.get(config.row_field), row.get(config.column_field))
        if pair in wanted and pair not in seen:
            seen.add(pair)
            kept.append(copy.deepcopy(row))
    return kept, len(rows) - len(kept)


def grid(config: MatrixConfig, rows: Sequence[Row], row_keys: Sequence[Any],
         column_keys: Sequence[Any]) -> List[Dict[str, Any]]:
    """Dense view of the matrix for rendering: one entry per row key, one cell per column key."""
    out = []
    for row_key in row_keys:
        cells = []
        for column_key in column_keys:
            index = _find(config, rows, row_key, column_key)
            state = CellState.NEUTRAL if index < 0 else _state_of(config, rows[index])
            note = rows[index].get(config.note_field, "") if state == CellState.FAIL else ""
            cells.append({"column": column_key, "state": state.value, "note": note or ""})
        out.append({"row": row_key, "cells": cells})
    return out


# --- Derived selection tables ---

def derive_selection(rule: SyncRule, rows: Sequence[Row]) -> List[Row]:
    derived = []
    for row in rows or []:
        if callable(rule.predicate):
            try:
                matches = bool(rule.predicate(row))
            except Exception as e:
                logger.warning(f"Sync predicate for '{rule.target}' raised {e!r}; row skipped")
                matches = False
        else:
            matches = conditions.check(rule.predicate, row, True, rule.target)
        if not matches:
            continue
        picked = {k: copy.deepcopy(row.get(k)) for k in rule.columns} if rule.columns else {
            k: copy.deepcopy(v) for k, v in row.items() if k not in ("name", "idx", "parent", "doctype")
        }
        if rule.row_doctype:
            picked["doctype"] = rule.row_doctype
        derived.append(picked)
    return derived
