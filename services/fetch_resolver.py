import logging
from typing import Any, Dict, List, Optional

from config import settings
from models.schema import BaseField
from utils.debounce import Debouncer
from utils.errors import FrappeAPIError
from utils.expressions import is_empty

logger = logging.getLogger(__name__)


class FetchResolver:
    """
    Keeps `fetch_from` fields in step with the link they read from.

    One debounced task per *trigger* field coalesces rapid changes; one epoch
    per *dependent* field makes sure a slow response for an older value is
    thrown away once a newer change has been made.
    """

    def __init__(self, form, client, delay: Optional[float] = None):
        self.form = form
        self.client = client
        self._debouncer = Debouncer(settings.FETCH_DEBOUNCE_SECONDS if delay is None else delay)
        self._epochs: Dict[str, int] = {}

    def _bump(self, name: str) -> int:
        self._epochs[name] = self._epochs.get(name, 0) + 1
        return self._epochs[name]

    def is_current(self, name: str, epoch: int) -> bool:
        return not self.form.closed and self._epochs.get(name) == epoch

    def on_field_change(self, name: str, value: Any) -> None:
        dependents = self.form.schema.fetch_dependents(name)
        if not dependents:
            return
        epochs = {field.name: self._bump(field.name) for field in dependents}

        if is_empty(value):
            # Nothing to look up: clear now, and drop any lookup still waiting
            self._debouncer.cancel(name)
            for field in dependents:
                self.form.set_value(field.name, None, mark_dirty=False)
            return

        async def resolve() -> None:
            await self._resolve(value, dependents, epochs)

        self._debouncer.schedule(name, resolve)

    async def _resolve(self, value: Any, dependents: List[BaseField], epochs: Dict[str, int]) -> None:
        documents: Dict[str, Optional[Dict[str, Any]]] = {}
        for field in dependents:
            doctype = field.fetch_from.target_doctype
            if doctype in documents:
                continue
            try:
                documents[doctype] = await self.client.get_doc(doctype, value)
            except FrappeAPIError as e:
                logger.warning(f"⚠️ Could not fetch {doctype} '{value}' for {[f.name for f in dependents]}: {e}")
                documents[doctype] = None

        for field in dependents:
            if not self.is_current(field.name, epochs[field.name]):
                logger.debug(f"Discarding stale fetch of '{value}' for '{field.name}'")
                continue
            document = documents.get(field.fetch_from.target_doctype)
            if document is None:
                continue
            self.form.set_value(field.name, document.get(field.fetch_from.target_field), mark_dirty=False)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending()

    async def wait_idle(self) -> None:
        await self._debouncer.wait_idle()

    def close(self) -> None:
        self._debouncer.close()
