# File: models/forms.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.widgets import RenderedTab
from services.child_tables import CellState


class SessionCreate(BaseModel):
    """Open an existing document (`docname`) or a new one, optionally prefilled."""
    docname: Optional[str] = None
    values: Dict[str, Any] = Field(default_factory=dict)


class ValuesUpdate(BaseModel):
    values: Dict[str, Any]


class RowAdd(BaseModel):
    values: Dict[str, Any] = Field(default_factory=dict)


class RowsRemove(BaseModel):
    indices: List[int]


class CellUpdate(BaseModel):
    index: int
    column: str
    value: Any = None


class MatrixCellUpdate(BaseModel):
    """Set a cell's state, its note, or both (state is applied first)."""
    row: str
    column: str
    state: Optional[CellState] = None
    note: Optional[str] = None
    toggle: bool = True


class BulkDeleteRequest(BaseModel):
    names: List[str] = Field(min_length=1)


class SessionView(BaseModel):
    id: str
    doctype: str
    docname: Optional[str] = None
    is_new: bool
    dirty: bool
    busy: bool
    changed: List[str]
    values: Dict[str, Any]
    tabs: List[RenderedTab]


class SearchResult(BaseModel):
    options: Optional[List[Dict[str, str]]] = None
    superseded: bool = False
