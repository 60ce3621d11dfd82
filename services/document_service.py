import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from models.schema import FormSchema
from services.form_session import FormSession
from utils.errors import (
    FormValidationError,
    FrappeAPIError,
    RenameError,
    SessionClosedError,
)
from utils.expressions import is_empty

logger = logging.getLogger(__name__)

# Concurrency tokens round-tripped unchanged on every update
TOKEN_FIELDS = ("modified", "docstatus")


class SaveResult(BaseModel):
    status: Literal["created", "updated", "nothing_to_save"]
    name: Optional[str] = None
    renamed_from: Optional[str] = None
    record: Dict[str, Any] = Field(default_factory=dict)


class BulkDeleteFailure(BaseModel):
    name: str
    message: str
    kind: str


class BulkDeleteResult(BaseModel):
    deleted: List[str] = Field(default_factory=list)
    errors: List[BulkDeleteFailure] = Field(default_factory=list)


class DocumentService:
    """
    Primary operations on documents behind a form: load, create, update
    (with rename), delete. Unlike lookups these fail loud: every backend
    error propagates to the caller with the server's messages attached.
    """

    def __init__(self, client, **session_options: Optional[float]):
        self.client = client
        self.session_options = session_options

    async def load(self, schema: FormSchema, docname: str) -> FormSession:
        logger.info(f"🌐 Loading {schema.doctype} {docname}")
        record = await self.client.get_doc(schema.doctype, docname)
        session = FormSession(schema, self.client, record, docname=record.get("name") or docname,
                              **self.session_options)
        session.start()
        return session

    def new(self, schema: FormSchema, values: Optional[Dict[str, Any]] = None) -> FormSession:
        """A session for a document not yet saved, optionally prefilled (e.g. when duplicating)."""
        session = FormSession(schema, self.client, **self.session_options)
        data_names = {field.name for field in schema.data_fields()}
        for name, value in (values or {}).items():
            if name not in data_names:
                logger.debug(f"Ignoring prefill for unknown field '{name}' on {schema.doctype}")
                continue
            session.set_value(name, value)
        session.start()
        return session

    async def save(self, session: FormSession) -> SaveResult:
        if session.closed:
            raise SessionClosedError(f"Session {session.id} is closed")

        # Never submit while a fetch or regeneration could still change the payload
        await session.wait_idle()

        errors = session.validate()
        if errors:
            raise FormValidationError(errors)

        schema = session.schema
        if session.is_new:
            return await self._create(session)

        if not session.is_dirty():
            logger.info(f"No changes to save for {schema.doctype} {session.docname}")
            return SaveResult(status="nothing_to_save", name=session.docname)

        renamed_from = None
        if schema.name_field:
            new_name = session.get_value(schema.name_field)
            if not is_empty(new_name) and new_name != session.docname:
                renamed_from = await self._rename(session, new_name)

        payload = session.build_submit_payload()
        if not payload and renamed_from:
            # Only the name changed; the rename already persisted it
            record = await self.client.get_doc(schema.doctype, session.docname)
        else:
            for token in TOKEN_FIELDS:
                if session.state.initial.get(token) is not None:
                    payload[token] = session.state.initial[token]
            record = await self.client.update_doc(schema.doctype, session.docname, payload)

        session.rebase(record)
        return SaveResult(status="updated", name=session.docname, renamed_from=renamed_from, record=record)

    async def _create(self, session: FormSession) -> SaveResult:
        schema = session.schema
        payload = session.build_submit_payload()
        if schema.autoname_placeholder:
            payload = {k: v for k, v in payload.items() if v != schema.autoname_placeholder}
        record = await self.client.insert_doc(schema.doctype, payload)
        session.rebase(record)
        return SaveResult(status="created", name=session.docname, record=record)

    async def _rename(self, session: FormSession, new_name: str) -> str:
        """Renames before the update; on failure nothing else is sent and the session keeps its id."""
        old_name = session.docname
        try:
            await self.client.rename_doc(session.schema.doctype, old_name, new_name)
        except FrappeAPIError as e:
            logger.error(f"❌ Rename of {session.schema.doctype} {old_name} -> {new_name} failed: {e}")
            raise RenameError(old_name, new_name, e) from e
        session.docname = new_name
        return old_name

    async def delete(self, schema: FormSchema, docname: str) -> None:
        await self.client.delete_doc(schema.doctype, docname)

    async def bulk_delete(self, doctype: str, names: List[str]) -> BulkDeleteResult:
        """Deletes one by one so each id reports its own outcome."""
        result = BulkDeleteResult()
        for name in names:
            try:
                await self.client.delete_doc(doctype, name)
            except FrappeAPIError as e:
                result.errors.append(BulkDeleteFailure(
                    name=name,
                    message="; ".join(e.messages),
                    kind=type(e).__name__,
                ))
            else:
                result.deleted.append(name)
        if result.errors:
            logger.warning(f"Bulk delete of {doctype}: {len(result.errors)} of {len(names)} failed")
        return result
