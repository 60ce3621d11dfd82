import inspect
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from models.schema import ButtonField, FormSchema, TableField
from services import child_tables, conditions
from services.child_tables import CellState
from services.conditions import FieldState
from services.fetch_resolver import FetchResolver
from services.form_state import FormState, values_equal
from services.link_search import LinkSearcher
from services.matrix import MatrixController
from services.render import render_form
from services.validation import field_errors

logger = logging.getLogger(__name__)

Listener = Callable[[str, Any], None]


class FormSession:
    """
    The controller a page (or the HTTP API) drives one document edit through.

    `set_value` is the only way values change. After the value store is
    updated it runs, in order: the field's on-change hooks, visibility
    recomputation, fetch-from resolution, matrix regeneration, sync rules
    and finally the subscribers. Once closed, writes are ignored and all
    pending remote work is cancelled.
    """

    def __init__(self, schema: FormSchema, client, record: Optional[Dict[str, Any]] = None,
                 docname: Optional[str] = None, fetch_delay: Optional[float] = None,
                 search_delay: Optional[float] = None, matrix_delay: Optional[float] = None):
        self.id = uuid.uuid4().hex
        self.schema = schema
        self.client = client
        self.docname = docname
        self.closed = False
        self.last_activity = datetime.now(timezone.utc)

        self.state = FormState(schema, record)
        self._listeners: List[Listener] = []
        self._states: Dict[str, FieldState] = conditions.evaluate_all(schema, self.state.values)

        self.fetcher = FetchResolver(self, client, fetch_delay)
        self.searcher = LinkSearcher(self, client, search_delay)
        self.matrices: Dict[str, MatrixController] = {
            field.name: MatrixController(self, field, client, matrix_delay)
            for field in schema.matrix_tables()
        }
        logger.debug(f"Opened session {self.id} for {schema.doctype} {docname or '(new)'}")

    def start(self) -> None:
        """Loads matrix grids whose triggers are already set (needs a running loop)."""
        for matrix in self.matrices.values():
            matrix.refresh()

    # --- controller surface ---
    @property
    def is_new(self) -> bool:
        return self.docname is None

    def get_value(self, name: str) -> Any:
        return self.state.get_value(name)

    def snapshot(self) -> Dict[str, Any]:
        return self.state.snapshot()

    def set_value(self, name: str, value: Any, mark_dirty: bool = True) -> None:
        if self.closed:
            logger.debug(f"Ignoring write to '{name}' on closed session {self.id}")
            return
        field = self.schema.field(name)
        if field is None or not field.has_data:
            raise ValueError(f"{self.schema.doctype} has no data field '{name}'")

        self.last_activity = datetime.now(timezone.utc)
        if not self.state.set_value(name, value, mark_dirty):
            return

        for hook in field.on_change:
            try:
                hook(self, value)
            except Exception:
                logger.exception(f"on_change hook for '{name}' failed")
            if not values_equal(self.state.get_value(name), value):
                # The hook rewrote this field; that nested write already dispatched it
                return

        self._states = conditions.evaluate_all(self.schema, self.state.values)
        self.fetcher.on_field_change(name, value)
        for matrix in self.matrices.values():
            matrix.on_field_change(name, value)
        self._apply_sync_rules(name)

        for listener in list(self._listeners):
            try:
                listener(name, value)
            except Exception:
                logger.exception(f"Subscriber failed on change of '{name}'")

    def set_values(self, values: Dict[str, Any]) -> None:
        for name, value in values.items():
            self.set_value(name, value)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _apply_sync_rules(self, changed: str) -> None:
        for rule in self.schema.sync_rules:
            if rule.source != changed:
                continue
            derived = child_tables.derive_selection(rule, self.get_value(rule.source) or [])
            if not values_equal(derived, self.get_value(rule.target) or []):
                self.set_value(rule.target, derived, mark_dirty=False)

    # --- evaluation ---
    def field_states(self) -> Dict[str, FieldState]:
        return dict(self._states)

    def field_state(self, name: str) -> FieldState:
        return self._states.get(name, FieldState())

    def validate(self) -> List[str]:
        """Client-side errors for visible fields; an empty list means submittable."""
        errors: List[str] = []
        for field in self.schema.data_fields():
            state = self.field_state(field.name)
            if not state.visible:
                continue
            value = self.get_value(field.name)
            errors.extend(field_errors(field, value, state.required))
            if isinstance(field, TableField) and not field.matrix and value:
                errors.extend(child_tables.validate_rows(field, value))
        return errors

    # --- tables ---
    def _table(self, name: str) -> TableField:
        field = self.schema.field(name)
        if not isinstance(field, TableField):
            raise ValueError(f"'{name}' is not a table field")
        return field

    def add_row(self, table: str, values: Optional[Dict[str, Any]] = None) -> None:
        field = self._table(table)
        if field.matrix:
            raise ValueError(f"Rows of '{table}' are generated, not added")
        self.set_value(table, child_tables.add_row(field, self.get_value(table) or [], values))

    def remove_rows(self, table: str, indices: Iterable[int]) -> None:
        self._table(table)
        self.set_value(table, child_tables.remove_rows(self.get_value(table) or [], indices))

    def update_cell(self, table: str, index: int, column: str, value: Any) -> None:
        field = self._table(table)
        self.set_value(table, child_tables.update_cell(field, self.get_value(table) or [], index, column, value))

    def matrix(self, table: str) -> MatrixController:
        if table not in self.matrices:
            raise ValueError(f"'{table}' is not a matrix table")
        return self.matrices[table]

    def set_matrix_cell(self, table: str, row_key: str, column_key: str, state: CellState,
                        toggle: bool = True) -> None:
        self.matrix(table).set_cell(row_key, column_key, state, toggle)

    def set_matrix_note(self, table: str, row_key: str, column_key: str, note: str) -> None:
        self.matrix(table).set_note(row_key, column_key, note)

    async def press(self, name: str) -> None:
        """Runs a Button field's action against this session, awaiting it if it is a coroutine."""
        field = self.schema.field(name)
        if not isinstance(field, ButtonField):
            raise ValueError(f"'{name}' is not a button")
        if field.action is None:
            raise ValueError(f"Button '{name}' has no action")
        self.last_activity = datetime.now(timezone.utc)
        result = field.action(self)
        if inspect.isawaitable(result):
            await result

    async def search_link(self, field: str, text: str = "", column: Optional[str] = None,
                          debounce: bool = True, row: Optional[int] = None) -> Optional[List[Dict[str, str]]]:
        self.last_activity = datetime.now(timezone.utc)
        return await self.searcher.search(field, text, column, debounce, row)

    # --- lifecycle ---
    @property
    def busy(self) -> bool:
        return self.fetcher.pending or any(m.pending for m in self.matrices.values())

    async def wait_idle(self) -> None:
        """Returns once no fetch or regeneration is pending, including ones they trigger."""
        while self.busy and not self.closed:
            await self.fetcher.wait_idle()
            for matrix in self.matrices.values():
                await matrix.wait_idle()

    def rebase(self, record: Dict[str, Any]) -> None:
        self.state.rebase(record)
        if record.get("name"):
            self.docname = record["name"]
        self._states = conditions.evaluate_all(self.schema, self.state.values)

    def is_dirty(self) -> bool:
        return self.state.is_dirty()

    def render(self):
        return render_form(self)

    def build_submit_payload(self, exclude: Iterable[str] = (), full: Optional[bool] = None) -> Dict[str, Any]:
        return self.state.build_submit_payload(exclude, self.is_new if full is None else full)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.fetcher.close()
        self.searcher.cancel()
        for matrix in self.matrices.values():
            matrix.close()
        self._listeners.clear()
        logger.debug(f"Closed session {self.id}")
