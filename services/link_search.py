import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import settings
from models.schema import LinkField, TableField
from utils.errors import FrappeAPIError
from utils.expressions import is_empty

logger = logging.getLogger(__name__)


def row_getter(get_value: Callable[[str], Any], row: Dict[str, Any]) -> Callable[[str], Any]:
    """
    Value accessor for a table cell: the same row first, then the parent form.
    A `parent.` prefix always reads the parent.
    """
    def get(name: str) -> Any:
        if name.startswith("parent."):
            return get_value(name[len("parent."):])
        if name in row:
            return row[name]
        return get_value(name)
    return get


def resolve_filters(field: LinkField, get_value: Callable[[str], Any]) -> Dict[str, Any]:
    """
    Filters for a Link field's search, computed from the present values.

    `filter_mapping` wins when declared: each mapping whose source value is
    non-empty contributes `{target_field: value}`. Otherwise `filters` is
    either a callback over the value accessor or a literal dict.
    """
    if field.filter_mapping:
        resolved = {}
        for mapping in field.filter_mapping:
            value = get_value(mapping.source_field)
            if not is_empty(value):
                resolved[mapping.target_field] = value
        return resolved
    if callable(field.filters):
        try:
            return dict(field.filters(get_value) or {})
        except Exception as e:
            logger.warning(f"Filter callback on '{field.name}' raised {e!r}; searching unfiltered")
            return {}
    return dict(field.filters or {})


class LinkSearcher:
    """
    Search-as-you-type for Link fields and Link columns of tables.

    Calls are coalesced per field: each call waits the debounce window and
    only proceeds when no newer call for the same field came in meanwhile.
    A superseded call returns None.
    """

    def __init__(self, form, client, delay: Optional[float] = None):
        self.form = form
        self.client = client
        self.delay = settings.SEARCH_DEBOUNCE_SECONDS if delay is None else delay
        self._epochs: Dict[Tuple[str, Optional[str]], int] = {}

    def link_field(self, field_name: str, column: Optional[str] = None) -> LinkField:
        field = self.form.schema.field(field_name)
        if column is not None:
            field = field.column(column) if isinstance(field, TableField) else None
        if not isinstance(field, LinkField):
            target = f"{field_name}.{column}" if column else field_name
            raise ValueError(f"'{target}' is not a Link field")
        return field

    def _is_current(self, key, epoch: int) -> bool:
        return not self.form.closed and self._epochs.get(key) == epoch

    def _accessor(self, field_name: str, column: Optional[str], row: Optional[int]):
        if row is None:
            return self.form.get_value, (self.form.get_value(field_name) if column is None else None)
        if column is None:
            raise ValueError("A row index needs a table column")
        rows = self.form.get_value(field_name) or []
        if row < 0 or row >= len(rows):
            raise ValueError(f"'{field_name}' has no row {row}")
        return row_getter(self.form.get_value, rows[row]), rows[row].get(column)

    async def search(self, field_name: str, text: str = "", column: Optional[str] = None,
                     debounce: bool = True, row: Optional[int] = None) -> Optional[List[Dict[str, str]]]:
        """
        `row` points a table column search at one row, so filters can read
        that row's cells before the parent's values.
        """
        field = self.link_field(field_name, column)
        # Bad row indices are rejected before waiting
        self._accessor(field_name, column, row)
        key = (field_name, column)
        epoch = self._epochs[key] = self._epochs.get(key, 0) + 1

        if debounce and self.delay > 0:
            await asyncio.sleep(self.delay)
            if not self._is_current(key, epoch):
                return None

        get_value, current = self._accessor(field_name, column, row)
        filters = resolve_filters(field, get_value)
        logger.debug(f"🔍 Searching {field.link_target} for '{text}' with filters {filters}")
        try:
            options = await self.client.search_link(field.link_target, filters, text)
        except FrappeAPIError as e:
            logger.warning(f"⚠️ Link search on {field.link_target} failed: {e}")
            return []

        if not self._is_current(key, epoch):
            return None

        if isinstance(current, str) and current and all(o["value"] != current for o in options):
            options.insert(0, {"label": current, "value": current})
        return options

    def cancel(self) -> None:
        # Bumping every epoch turns any sleeping search into a no-op
        for key in list(self._epochs):
            self._epochs[key] += 1
