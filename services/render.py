"""
Render dispatcher: field kind -> widget descriptor.

The descriptor is toolkit-neutral. Matrix tables and Custom fields get the
`custom` kind and the whole form session, since they read and write other
fields; every other widget only sees its own value and `on_change`.
"""

import logging
from typing import Any, Callable, List, Optional

from models.schema import (
    AttachField,
    BaseField,
    ButtonField,
    CheckField,
    ColumnBreak,
    CustomField,
    DataField,
    DateTimeField,
    LinkField,
    NumberField,
    ReadOnlyField,
    SectionBreak,
    SelectField,
    TableField,
)
from models.widgets import RenderedTab, WidgetDescriptor, WidgetKind
from services.conditions import FieldState
from services.link_search import resolve_filters

logger = logging.getLogger(__name__)

_TEXTAREA_TYPES = ("Small Text", "Text", "Long Text", "Markdown Editor", "Code")
_DATE_KINDS = {
    "Date": WidgetKind.DATE,
    "Datetime": WidgetKind.DATETIME,
    "Time": WidgetKind.TIME,
    "Duration": WidgetKind.DURATION,
}


def widget_kind(field: BaseField) -> WidgetKind:
    if isinstance(field, DataField):
        if field.type == "Password":
            return WidgetKind.PASSWORD
        return WidgetKind.TEXTAREA if field.type in _TEXTAREA_TYPES else WidgetKind.TEXT
    if isinstance(field, NumberField):
        return WidgetKind.NUMBER
    if isinstance(field, CheckField):
        return WidgetKind.BOOLEAN
    if isinstance(field, SelectField):
        return WidgetKind.SELECT
    if isinstance(field, DateTimeField):
        return _DATE_KINDS[field.type]
    if isinstance(field, LinkField):
        return WidgetKind.LINK
    if isinstance(field, AttachField):
        return WidgetKind.ATTACHMENT
    if isinstance(field, TableField):
        return WidgetKind.CUSTOM if field.matrix else WidgetKind.TABLE
    if isinstance(field, ReadOnlyField):
        return WidgetKind.READONLY
    if isinstance(field, SectionBreak):
        return WidgetKind.SECTION
    if isinstance(field, ColumnBreak):
        return WidgetKind.COLUMN
    if isinstance(field, ButtonField):
        return WidgetKind.BUTTON
    return WidgetKind.CUSTOM


def dispatch(field: BaseField, value: Any, on_change: Optional[Callable[[Any], None]] = None,
             form=None, state: Optional[FieldState] = None) -> WidgetDescriptor:
    kind = widget_kind(field)
    state = state or FieldState(required=field.required, read_only=field.read_only)
    descriptor = WidgetDescriptor(
        kind=kind,
        name=field.name,
        label=field.label,
        field_type=field.type,
        value=value,
        visible=state.visible,
        required=state.required,
        read_only=state.read_only,
        description=field.description,
        placeholder=field.placeholder,
        on_change=on_change,
    )

    if isinstance(field, NumberField):
        descriptor.props = {"min": field.min, "max": field.max, "step": field.step}
    elif isinstance(field, DataField):
        descriptor.props = {"pattern": field.pattern, "rows": field.rows}
    elif isinstance(field, SelectField):
        descriptor.options = [option.model_dump() for option in field.options]
    elif isinstance(field, LinkField):
        descriptor.link_target = field.link_target
        if form is not None:
            descriptor.props = {"filters": resolve_filters(field, form.get_value)}
    elif isinstance(field, ReadOnlyField):
        if value is None and field.read_only_value is not None:
            descriptor.value = field.read_only_value
    elif isinstance(field, ButtonField):
        descriptor.props = {"button_label": field.button_label or field.label}
    elif isinstance(field, TableField):
        descriptor.columns = [dispatch(column, None) for column in field.columns]
        if field.matrix:
            descriptor.widget = "matrix"
            descriptor.form = form
            if form is not None:
                descriptor.props = form.matrix(field.name).view()
    elif isinstance(field, CustomField):
        descriptor.widget = field.widget
        descriptor.form = form
    return descriptor


def render_form(session) -> List[RenderedTab]:
    """Every tab of a session's schema as widget descriptors bound to its current values."""
    states = session.field_states()
    tabs = []
    for tab in session.schema.tabs:
        widgets = []
        for field in tab.fields:
            on_change = None
            if field.has_data:
                on_change = (lambda name: lambda value: session.set_value(name, value))(field.name)
            widgets.append(dispatch(field, session.get_value(field.name), on_change, session, states.get(field.name)))
        tabs.append(RenderedTab(name=tab.name, widgets=widgets))
    return tabs
