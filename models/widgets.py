# File: models/widgets.py
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WidgetKind(str, Enum):
    """The closed vocabulary of editing affordances a field can map to."""
    TEXT = "text"
    TEXTAREA = "textarea"
    PASSWORD = "password"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    DURATION = "duration"
    LINK = "link"
    ATTACHMENT = "attachment"
    TABLE = "table"
    READONLY = "readonly"
    SECTION = "section"
    COLUMN = "column"
    BUTTON = "button"
    CUSTOM = "custom"


class WidgetDescriptor(BaseModel):
    """What a renderer needs to draw one field and report edits back."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: WidgetKind
    name: str
    label: str
    field_type: str
    value: Any = None
    visible: bool = True
    required: bool = False
    read_only: bool = False
    description: Optional[str] = None
    placeholder: Optional[str] = None
    options: List[Dict[str, str]] = Field(default_factory=list)
    link_target: Optional[str] = None
    columns: List["WidgetDescriptor"] = Field(default_factory=list)
    widget: Optional[str] = None
    props: Dict[str, Any] = Field(default_factory=dict)

    # Callbacks stay server-side
    on_change: Optional[Callable[[Any], None]] = Field(default=None, exclude=True)
    form: Any = Field(default=None, exclude=True)


class RenderedTab(BaseModel):
    name: str
    widgets: List[WidgetDescriptor]
