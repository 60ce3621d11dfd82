# File: models/schema.py
import logging
from typing import Annotated, Any, Callable, Dict, Iterator, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from utils import expressions
from utils.errors import ConditionError, SchemaError

logger = logging.getLogger(__name__)

# A condition is a `depends_on` expression string, an object map of
# {field: expected_value_or_True}, or a callback receiving a value getter.
Condition = Union[str, Dict[str, Any], Callable[..., Any]]

# on_change hooks are called as hook(form, value)
ChangeHook = Callable[..., Any]

NUMERIC_TYPES = ("Int", "Float", "Currency", "Percent", "Rating")
LAYOUT_TYPES = ("Section Break", "Column Break", "Button")


class SchemaModel(BaseModel):
    """Shared config: snake_case attributes, camelCase aliases accepted."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra="forbid",
    )


class SelectOption(SchemaModel):
    label: str
    value: str


class FetchFrom(SchemaModel):
    """Populate this field from `target_field` of the `target_doctype` document named by `source_field`."""
    source_field: str
    target_doctype: str
    target_field: str


class FilterMapping(SchemaModel):
    """Restrict link search: `target_field` on the linked doctype must equal the value of `source_field`."""
    source_field: str
    target_field: str


class BaseField(SchemaModel):
    """Attributes shared by every field kind."""
    name: str
    label: str = ""
    required: bool = False
    read_only: bool = False
    default_value: Any = None
    description: Optional[str] = None
    placeholder: Optional[str] = None
    display_depends_on: Optional[Condition] = None
    required_depends_on: Optional[Condition] = None
    read_only_depends_on: Optional[Condition] = None
    fetch_from: Optional[FetchFrom] = None
    on_change: List[ChangeHook] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_label(self):
        if not self.label:
            self.label = self.name.replace("_", " ").title()
        return self

    @property
    def has_data(self) -> bool:
        """Whether the field carries a value that belongs in a submitted document."""
        return True

    def initial_value(self) -> Any:
        return self.default_value


class DataField(BaseField):
    type: Literal[
        "Data", "Small Text", "Text", "Long Text", "Markdown Editor", "Code",
        "Password", "Barcode", "Color", "Signature",
    ]
    pattern: Optional[str] = None
    pattern_message: Optional[str] = None
    rows: Optional[int] = None


class NumberField(BaseField):
    type: Literal["Int", "Float", "Currency", "Percent", "Rating"]
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None

    @model_validator(mode="after")
    def percent_bounds(self):
        if self.type == "Percent":
            if self.min is None:
                self.min = 0
            if self.max is None:
                self.max = 100
        return self


class DateTimeField(BaseField):
    type: Literal["Date", "Datetime", "Time", "Duration"]

    def initial_value(self) -> Any:
        if self.default_value is None and self.type == "Duration":
            return {"hours": 0, "minutes": 0, "seconds": 0}
        return self.default_value


class CheckField(BaseField):
    type: Literal["Check"]

    def initial_value(self) -> Any:
        return False if self.default_value is None else self.default_value


class SelectField(BaseField):
    type: Literal["Select"]
    options: List[SelectOption] = Field(default_factory=list)

    @field_validator("options", mode="before")
    @classmethod
    def plain_options(cls, value):
        # "Motor\nPump" or ["Motor", "Pump"] are accepted as well
        if isinstance(value, str):
            value = [line for line in value.splitlines() if line.strip()]
        if isinstance(value, list):
            return [{"label": item, "value": item} if isinstance(item, str) else item for item in value]
        return value


class LinkField(BaseField):
    type: Literal["Link"]
    link_target: str
    filter_mapping: List[FilterMapping] = Field(default_factory=list)
    filters: Optional[Union[Dict[str, Any], Callable[..., Any]]] = None


class AttachField(BaseField):
    type: Literal["Attach"]


class ReadOnlyField(BaseField):
    type: Literal["Read Only"]
    read_only_value: Optional[str] = None
    backed: bool = True

    @property
    def has_data(self) -> bool:
        return self.backed


class CustomField(BaseField):
    type: Literal["Custom"]
    widget: str


class SectionBreak(BaseField):
    type: Literal["Section Break"]

    @property
    def has_data(self) -> bool:
        return False


class ColumnBreak(BaseField):
    type: Literal["Column Break"]

    @property
    def has_data(self) -> bool:
        return False


class ButtonField(BaseField):
    type: Literal["Button"]
    button_label: Optional[str] = None
    action: Optional[Callable[..., Any]] = None

    @property
    def has_data(self) -> bool:
        return False


class MatrixConfig(SchemaModel):
    """
    Matrix-style child table: rows are generated from the cross product of
    two remote lists returned by a document RPC method, not added by hand.
    """
    trigger_fields: List[str]
    method: str
    row_doctype: str
    row_field: str = "asset"
    column_field: str = "parameter"
    state_field: str = "checked"
    note_field: str = "description"
    rows_key: str = "assets"
    columns_key: str = "parameters"


ColumnSpec = Annotated[
    Union[DataField, NumberField, DateTimeField, CheckField, SelectField, LinkField,
          AttachField, ReadOnlyField],
    Field(discriminator="type"),
]


class TableField(BaseField):
    type: Literal["Table", "Table MultiSelect"]
    columns: List[ColumnSpec] = Field(min_length=1)
    child_doctype: Optional[str] = None
    matrix: Optional[MatrixConfig] = None

    @model_validator(mode="after")
    def unique_columns(self):
        seen: Set[str] = set()
        for column in self.columns:
            if column.name in seen:
                raise SchemaError(f"Table '{self.name}' has duplicate column '{column.name}'")
            seen.add(column.name)
        return self

    def initial_value(self) -> Any:
        return [] if self.default_value is None else self.default_value

    def column(self, name: str):
        return next((c for c in self.columns if c.name == name), None)


FieldSpec = Annotated[
    Union[DataField, NumberField, DateTimeField, CheckField, SelectField, LinkField,
          AttachField, ReadOnlyField, CustomField, SectionBreak, ColumnBreak,
          ButtonField, TableField],
    Field(discriminator="type"),
]


class TabbedLayout(SchemaModel):
    """One tab of a form; `fields` are in display order."""
    name: str
    fields: List[FieldSpec] = Field(default_factory=list)


class SyncRule(SchemaModel):
    """
    Keeps table `target` equal to the rows of table `source` matching
    `predicate` (callable on a row, or an object-map condition on the row),
    optionally projected onto `columns`.
    """
    source: str
    target: str
    predicate: Union[Dict[str, Any], Callable[..., Any]]
    columns: Optional[List[str]] = None
    row_doctype: Optional[str] = None


class FormSchema(SchemaModel):
    """A complete form: ordered tabs bound to one Frappe doctype."""
    doctype: str
    tabs: List[TabbedLayout]
    # Field whose change renames the document (rename-aware detail pages)
    name_field: Optional[str] = None
    autoname_placeholder: Optional[str] = "Will be auto-generated"
    submit_exclude: List[str] = Field(default_factory=list)
    sync_rules: List[SyncRule] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_schema(self):
        seen: Set[str] = set()
        for field in self.iter_fields():
            if field.name in seen:
                raise SchemaError(f"Duplicate field name '{field.name}' in schema for {self.doctype}")
            seen.add(field.name)

        graph = self.dependency_graph()
        for name, deps in graph.items():
            for dep in deps:
                if dep not in seen:
                    logger.warning(f"Field '{name}' in {self.doctype} depends on unknown field '{dep}'")

        cycle = _find_cycle(graph)
        if cycle:
            raise SchemaError(f"Cyclic field dependency in {self.doctype}: {' -> '.join(cycle)}")
        return self

    def iter_fields(self) -> Iterator[BaseField]:
        for tab in self.tabs:
            yield from tab.fields

    def field(self, name: str) -> Optional[BaseField]:
        return next((f for f in self.iter_fields() if f.name == name), None)

    def data_fields(self) -> List[BaseField]:
        return [f for f in self.iter_fields() if f.has_data]

    def fetch_dependents(self, source_field: str) -> List[BaseField]:
        return [f for f in self.iter_fields() if f.fetch_from and f.fetch_from.source_field == source_field]

    def matrix_tables(self) -> List[TableField]:
        return [f for f in self.iter_fields() if isinstance(f, TableField) and f.matrix]

    def dependency_graph(self) -> Dict[str, Set[str]]:
        """field name -> names of the fields it reads."""
        graph: Dict[str, Set[str]] = {}
        for field in self.iter_fields():
            deps: Set[str] = set()
            for condition in (field.display_depends_on, field.required_depends_on, field.read_only_depends_on):
                deps |= condition_fields(condition)
            if field.fetch_from:
                deps.add(field.fetch_from.source_field)
            if isinstance(field, LinkField):
                deps |= {m.source_field for m in field.filter_mapping}
            if isinstance(field, TableField) and field.matrix:
                deps |= set(field.matrix.trigger_fields)
            graph[field.name] = deps
        for rule in self.sync_rules:
            graph.setdefault(rule.target, set()).add(rule.source)
        return graph


def condition_fields(condition: Optional[Condition]) -> Set[str]:
    """Field names a condition reads. Callbacks are opaque and yield nothing."""
    if condition is None or callable(condition):
        return set()
    if isinstance(condition, dict):
        return set(condition)
    try:
        return expressions.referenced_fields(condition)
    except ConditionError as e:
        logger.warning(f"Ignoring malformed condition {condition!r} in dependency check: {e}")
        return set()


def _find_cycle(graph: Dict[str, Set[str]]) -> Optional[List[str]]:
    WHITE, GREY, BLACK = 0, 1, 2
    color = {node: WHITE for node in graph}
    stack: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        color[node] = GREY
        stack.append(node)
        for dep in sorted(graph.get(node, ())):
            if color.get(dep, BLACK) == GREY:
                return stack[stack.index(dep):] + [dep]
            if color.get(dep) == WHITE:
                found = visit(dep)
                if found:
                    return found
        stack.pop()
        color[node] = BLACK
        return None

    for node in graph:
        if color[node] == WHITE:
            found = visit(node)
            if found:
                return found
    return None
