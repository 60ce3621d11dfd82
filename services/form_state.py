import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from models.schema import FormSchema, TableField
from services import child_tables
from utils.expressions import is_empty

logger = logging.getLogger(__name__)


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality for dirty tracking; None and "" count as the same empty value."""
    if is_empty(left) and is_empty(right):
        return True
    return left == right


class FormState:
    """
    Canonical value store for one form session.

    `initial` is the snapshot the form was loaded with (defaults overlaid with
    the server record); `values` is the live state. Engine-driven writes
    (fetch resolver, matrix regeneration) use `mark_dirty=False`: they still
    show up in the submit diff when they change data, but they never count as
    something the user touched.
    """

    def __init__(self, schema: FormSchema, record: Optional[Dict[str, Any]] = None):
        self.schema = schema
        self.initial: Dict[str, Any] = {}
        for field in schema.data_fields():
            self.initial[field.name] = copy.deepcopy(field.initial_value())
        if record:
            for key, value in record.items():
                self.initial[key] = copy.deepcopy(value)
        self.values: Dict[str, Any] = copy.deepcopy(self.initial)
        self.user_dirty: Set[str] = set()

    # --- reads ---
    def get_value(self, name: str) -> Any:
        return self.values.get(name)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.values)

    # --- writes ---
    def set_value(self, name: str, value: Any, mark_dirty: bool = True) -> bool:
        """Stores `value`; returns False when nothing changed."""
        previous = self.values.get(name)
        self.values[name] = value
        if mark_dirty:
            if values_equal(value, self.initial.get(name)):
                self.user_dirty.discard(name)
            else:
                self.user_dirty.add(name)
        return not values_equal(previous, value)

    def rebase(self, record: Dict[str, Any]) -> None:
        """Makes a freshly saved server record the new baseline."""
        for key, value in record.items():
            self.initial[key] = copy.deepcopy(value)
            self.values[key] = copy.deepcopy(value)
        self.user_dirty.clear()

    # --- dirty tracking ---
    def changed_fields(self) -> List[str]:
        return [
            field.name for field in self.schema.data_fields()
            if not values_equal(self.values.get(field.name), self.initial.get(field.name))
        ]

    def is_dirty(self) -> bool:
        return bool(self.changed_fields())

    def is_user_dirty(self) -> bool:
        return any(name in self.user_dirty for name in self.changed_fields())

    def changed_values(self) -> Dict[str, Any]:
        return {name: self.values.get(name) for name in self.changed_fields()}

    # --- submission ---
    def build_submit_payload(self, exclude: Iterable[str] = (), full: bool = False) -> Dict[str, Any]:
        """
        Payload for POST/PUT. Only fields with data semantics ever appear:
        layout fields, unbacked Read Only fields, `schema.submit_exclude`
        and `exclude` are dropped. By default this is the diff against the
        initial snapshot; `full=True` (new documents) sends every set value.
        """
        skip = set(exclude) | set(self.schema.submit_exclude)
        source = self.values if full else self.changed_values()
        payload: Dict[str, Any] = {}
        for field in self.schema.data_fields():
            if field.name in skip or field.name not in source:
                continue
            value = source[field.name]
            if full and is_empty(value):
                continue
            if isinstance(field, TableField):
                value = child_tables.prepare_rows(field, value or [])
            payload[field.name] = copy.deepcopy(value)
        return payload
