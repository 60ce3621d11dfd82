import logging
import uuid
from typing import Any, Dict, List, Optional

from config import settings
from models.schema import TableField
from services import child_tables
from services.child_tables import CellState
from utils.debounce import Debouncer
from utils.errors import FrappeAPIError
from utils.expressions import is_empty

logger = logging.getLogger(__name__)


def _names(items: Any) -> List[str]:
    """`[{name: ...}]` or plain strings from an RPC response, in order, without duplicates."""
    names: List[str] = []
    for item in items or []:
        name = item.get("name") if isinstance(item, dict) else item
        if isinstance(name, str) and name and name not in names:
            names.append(name)
    return names


class MatrixController:
    """
    Drives one matrix-mode table.

    When every trigger field is set, the controller asks the backend for the
    grid axes (a document RPC such as `get_matrix_data`), then prunes stored
    rows to the pairs that still exist. Regeneration is debounced and guarded
    by an epoch so only the latest trigger state is ever applied.
    """

    def __init__(self, form, field: TableField, client, delay: Optional[float] = None):
        self.form = form
        self.field = field
        self.config = field.matrix
        self.client = client
        self._debouncer = Debouncer(settings.MATRIX_DEBOUNCE_SECONDS if delay is None else delay)
        self._epoch = 0
        self.row_keys: List[str] = []
        self.column_keys: List[str] = []
        self.loaded = False

    def watches(self, name: str) -> bool:
        return name in self.config.trigger_fields

    def _trigger_values(self) -> Optional[Dict[str, Any]]:
        values = {name: self.form.get_value(name) for name in self.config.trigger_fields}
        if any(is_empty(v) for v in values.values()):
            return None
        return values

    def on_field_change(self, name: str, value: Any) -> None:
        if self.watches(name):
            self.refresh()

    def refresh(self) -> None:
        """(Re)schedules regeneration for the current trigger values."""
        self._epoch += 1
        triggers = self._trigger_values()
        if triggers is None:
            # Grid goes away; stored rows stay until the next successful load
            self._debouncer.cancel(self.field.name)
            self.row_keys, self.column_keys, self.loaded = [], [], False
            return

        epoch = self._epoch

        async def regenerate() -> None:
            await self._regenerate(triggers, epoch)

        self._debouncer.schedule(self.field.name, regenerate)

    def local_document(self, triggers: Dict[str, Any]) -> Dict[str, Any]:
        """An unsaved document the way Frappe's desk would send it to a controller method."""
        slug = self.form.schema.doctype.lower().replace(" ", "-")
        doc = {
            "name": f"new-{slug}-{uuid.uuid4().hex[:8]}",
            "doctype": self.form.schema.doctype,
            "docstatus": 0,
            "__islocal": 1,
            "__unsaved": 1,
            self.field.name: [],
        }
        doc.update(triggers)
        return doc

    async def _regenerate(self, triggers: Dict[str, Any], epoch: int) -> None:
        try:
            message = await self.client.run_doc_method(self.local_document(triggers), self.config.method)
        except FrappeAPIError as e:
            logger.warning(f"⚠️ Could not load matrix for '{self.field.name}': {e}")
            return

        if self.form.closed or epoch != self._epoch:
            logger.debug(f"Discarding stale matrix response for '{self.field.name}'")
            return
        if not isinstance(message, dict):
            logger.warning(f"Matrix response for '{self.field.name}' is empty: {message!r}")
            message = {}

        self.apply(_names(message.get(self.config.rows_key)), _names(message.get(self.config.columns_key)))

    def apply(self, row_keys: List[str], column_keys: List[str]) -> None:
        """Installs new grid axes and keeps only the rows whose pair survived."""
        self.row_keys, self.column_keys, self.loaded = list(row_keys), list(column_keys), True
        rows = self.form.get_value(self.field.name) or []
        kept, dropped = child_tables.regenerate_rows(self.config, rows, self.row_keys, self.column_keys)
        if dropped:
            logger.info(f"Matrix '{self.field.name}': dropped {dropped} row(s) no longer in the grid")
            self.form.set_value(self.field.name, kept, mark_dirty=False)

    # --- cell edits ---
    def _check_cell(self, row_key: str, column_key: str) -> None:
        if row_key not in self.row_keys or column_key not in self.column_keys:
            raise ValueError(f"({row_key}, {column_key}) is not a cell of the current '{self.field.label}' grid")

    def set_cell(self, row_key: str, column_key: str, state: CellState, toggle: bool = True) -> None:
        self._check_cell(row_key, column_key)
        rows = self.form.get_value(self.field.name) or []
        self.form.set_value(
            self.field.name,
            child_tables.set_cell_state(self.config, rows, row_key, column_key, state, toggle),
        )

    def set_note(self, row_key: str, column_key: str, note: str) -> None:
        self._check_cell(row_key, column_key)
        rows = self.form.get_value(self.field.name) or []
        self.form.set_value(
            self.field.name,
            child_tables.set_cell_note(self.config, rows, row_key, column_key, note),
        )

    def view(self, row_search: str = "") -> Dict[str, Any]:
        row_keys = self.row_keys
        if row_search:
            row_keys = [key for key in row_keys if row_search.lower() in key.lower()]
        rows = self.form.get_value(self.field.name) or []
        return {
            "loaded": self.loaded,
            "pending": self.pending,
            "columns": list(self.column_keys),
            "rows": child_tables.grid(self.config, rows, row_keys, self.column_keys),
        }

    @property
    def pending(self) -> bool:
        return self._debouncer.pending()

    async def wait_idle(self) -> None:
        await self._debouncer.wait_idle()

    def close(self) -> None:
        self._epoch += 1
        self._debouncer.close()
