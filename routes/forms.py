# File: routes/forms.py

from fastapi import APIRouter, HTTPException, Request, status
from typing import Optional
import logging

from models.forms import (
    BulkDeleteRequest,
    CellUpdate,
    MatrixCellUpdate,
    RowAdd,
    RowsRemove,
    SearchResult,
    SessionCreate,
    SessionView,
    ValuesUpdate,
)
from schemas import get_schema
from services.document_service import BulkDeleteResult, DocumentService, SaveResult
from services.form_session import FormSession
from services.session_registry import SessionRegistry
from utils.errors import (
    AuthorizationError,
    ConflictError,
    DuplicateEntryError,
    FormEngineError,
    FormValidationError,
    FrappeAPIError,
    NotFoundError,
    RenameError,
    ServerValidationError,
    SessionClosedError,
    TransientError,
)

router = APIRouter(prefix="/forms", tags=["Forms"])
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = [
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DuplicateEntryError, status.HTTP_409_CONFLICT),
    (ServerValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (TransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (FrappeAPIError, status.HTTP_502_BAD_GATEWAY),
    (FormValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SessionClosedError, status.HTTP_404_NOT_FOUND),
]


def to_http_error(error: FormEngineError) -> HTTPException:
    """Maps an engine error onto an HTTP status with a `{"messages": [...]}` detail."""
    source = error.cause if isinstance(error, RenameError) else error
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(source, error_type):
            status_code = code
            break
    messages = getattr(error, "messages", None) or [str(error)]
    if isinstance(error, RenameError):
        messages = [str(error)] + [m for m in messages if m != str(error)]
    return HTTPException(status_code=status_code, detail={"kind": type(error).__name__, "messages": messages})


def _bad_request(error: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                         detail={"kind": "InvalidInput", "messages": [str(error).strip("'\"")]})


def _documents(request: Request) -> DocumentService:
    return request.app.state.documents


def _sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _schema(slug: str):
    try:
        return get_schema(slug)
    except KeyError:
        raise HTTPException(status_code=404, detail={"kind": "UnknownSchema", "messages": [f"No form named '{slug}'"]})


def _session(request: Request, session_id: str) -> FormSession:
    try:
        return _sessions(request).get(session_id)
    except SessionClosedError as e:
        raise to_http_error(e)


def session_view(session: FormSession) -> SessionView:
    return SessionView(
        id=session.id,
        doctype=session.schema.doctype,
        docname=session.docname,
        is_new=session.is_new,
        dirty=session.is_dirty(),
        busy=session.busy,
        changed=session.state.changed_fields(),
        values=session.snapshot(),
        tabs=session.render(),
    )


@router.post("/{schema}/sessions", response_model=SessionView, status_code=201, summary="Open a form session")
async def open_session(schema: str, body: SessionCreate, request: Request):
    """Loads `docname` into a new session, or starts a new document prefilled with `values`."""
    form_schema = _schema(schema)
    try:
        if body.docname:
            session = await _documents(request).load(form_schema, body.docname)
        else:
            session = _documents(request).new(form_schema, body.values)
    except FormEngineError as e:
        logger.error(f"Could not open {form_schema.doctype} form: {e}")
        raise to_http_error(e)
    _sessions(request).add(session)
    logger.info(f"Opened {form_schema.doctype} session {session.id}")
    return session_view(session)


@router.get("/sessions/{session_id}", response_model=SessionView, summary="Current state of a form session")
async def get_session(session_id: str, request: Request):
    return session_view(_session(request, session_id))


@router.patch("/sessions/{session_id}/values", response_model=SessionView, summary="Set one or more field values")
async def update_values(session_id: str, body: ValuesUpdate, request: Request):
    session = _session(request, session_id)
    try:
        session.set_values(body.values)
    except ValueError as e:
        raise _bad_request(e)
    return session_view(session)


@router.post("/sessions/{session_id}/tables/{field}/rows", response_model=SessionView, summary="Append a table row")
async def add_row(session_id: str, field: str, body: RowAdd, request: Request):
    session = _session(request, session_id)
    try:
        session.add_row(field, body.values)
    except ValueError as e:
        raise _bad_request(e)
    return session_view(session)


@router.delete("/sessions/{session_id}/tables/{field}/rows", response_model=SessionView, summary="Remove table rows")
async def remove_rows(session_id: str, field: str, body: RowsRemove, request: Request):
    session = _session(request, session_id)
    try:
        session.remove_rows(field, body.indices)
    except (ValueError, IndexError) as e:
        raise _bad_request(e)
    return session_view(session)


@router.patch("/sessions/{session_id}/tables/{field}/cells", response_model=SessionView, summary="Edit one table cell")
async def update_cell(session_id: str, field: str, body: CellUpdate, request: Request):
    session = _session(request, session_id)
    try:
        session.update_cell(field, body.index, body.column, body.value)
    except (ValueError, IndexError) as e:
        raise _bad_request(e)
    return session_view(session)


@router.get("/sessions/{session_id}/matrix/{field}", summary="Grid view of a matrix table")
async def get_matrix(session_id: str, field: str, request: Request, search: str = ""):
    session = _session(request, session_id)
    try:
        return session.matrix(field).view(search)
    except ValueError as e:
        raise _bad_request(e)


@router.put("/sessions/{session_id}/matrix/{field}", response_model=SessionView, summary="Set a matrix cell")
async def update_matrix_cell(session_id: str, field: str, body: MatrixCellUpdate, request: Request):
    session = _session(request, session_id)
    try:
        if body.state is not None:
            session.set_matrix_cell(field, body.row, body.column, body.state, body.toggle)
        if body.note is not None:
            session.set_matrix_note(field, body.row, body.column, body.note)
    except ValueError as e:
        raise _bad_request(e)
    return session_view(session)


@router.get("/sessions/{session_id}/search/{field}", response_model=SearchResult, summary="Search candidates for a Link field")
async def search_link(session_id: str, field: str, request: Request, q: str = "",
                      column: Optional[str] = None, debounce: bool = True, row: Optional[int] = None):
    """A newer search on the same field supersedes this one; it then answers `superseded: true`."""
    session = _session(request, session_id)
    try:
        options = await session.search_link(field, q, column, debounce, row)
    except ValueError as e:
        raise _bad_request(e)
    return SearchResult(options=options, superseded=options is None)


@router.post("/sessions/{session_id}/buttons/{field}", response_model=SessionView, summary="Press a button field")
async def press_button(session_id: str, field: str, request: Request):
    session = _session(request, session_id)
    try:
        await session.press(field)
    except ValueError as e:
        raise _bad_request(e)
    except FormEngineError as e:
        logger.error(f"❌ Button '{field}' on {session.schema.doctype} failed: {e}")
        raise to_http_error(e)
    return session_view(session)


@router.post("/sessions/{session_id}/submit", response_model=SaveResult, summary="Save the document")
async def submit(session_id: str, request: Request):
    session = _session(request, session_id)
    try:
        result = await _documents(request).save(session)
    except FormEngineError as e:
        logger.error(f"❌ Save of {session.schema.doctype} {session.docname or '(new)'} failed: {e}")
        raise to_http_error(e)
    logger.info(f"✅ {session.schema.doctype} {result.name}: {result.status}")
    return result


@router.delete("/sessions/{session_id}", status_code=204, summary="Close a form session")
async def close_session(session_id: str, request: Request):
    _sessions(request).close(session_id)


@router.post("/{schema}/bulk-delete", response_model=BulkDeleteResult, summary="Delete several documents")
async def bulk_delete(schema: str, body: BulkDeleteRequest, request: Request):
    form_schema = _schema(schema)
    return await _documents(request).bulk_delete(form_schema.doctype, body.names)
