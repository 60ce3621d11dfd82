import json
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from config import settings
from utils.errors import (
    AuthorizationError,
    ConflictError,
    DuplicateEntryError,
    FrappeAPIError,
    NotFoundError,
    ServerValidationError,
    TransientError,
)
from utils.frappe_messages import flatten_server_messages

logger = logging.getLogger(__name__)

RENAME_METHOD = "frappe.model.rename_doc.update_document_title"
RUN_DOC_METHOD = "run_doc_method"


def serialize_for_frappe(data: Any) -> Any:
    """Recursively converts values httpx cannot JSON-encode (dates, decimals)."""
    if isinstance(data, dict):
        return {key: serialize_for_frappe(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [serialize_for_frappe(value) for value in data]
    if isinstance(data, datetime):
        return data.isoformat(sep=" ")
    if isinstance(data, (date, time)):
        return data.isoformat()
    if isinstance(data, Decimal):
        return float(data)
    return data


# Helper to construct full Frappe URLs
def frappe_url(base_url: str, resource: str, path: Optional[str] = None) -> str:
    url = f"{base_url.rstrip('/')}/api/{resource}"
    if path:
        url += f"/{quote(path, safe='')}"
    return url


def _error_from_response(response: httpx.Response) -> FrappeAPIError:
    """Maps a failed Frappe response onto the error taxonomy."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    status_code = response.status_code
    exc_type = body.get("exc_type") or ""
    messages = flatten_server_messages(body)
    summary = messages[0] if messages else f"Frappe returned HTTP {status_code}"

    if status_code in (401, 403) or exc_type in ("PermissionError", "AuthenticationError"):
        return AuthorizationError(summary, status_code, messages, exc_type)
    if exc_type == "DuplicateEntryError" or status_code == 409:
        return DuplicateEntryError(summary, status_code, messages, exc_type)
    if exc_type == "TimestampMismatchError":
        return ConflictError(summary, status_code, messages, exc_type)
    if status_code == 404 or exc_type == "DoesNotExistError":
        return NotFoundError(summary, status_code, messages, exc_type)
    if 400 <= status_code < 500:
        return ServerValidationError(summary, status_code, messages, exc_type)
    return FrappeAPIError(summary, status_code, messages, exc_type)


class FrappeClient:
    """
    Thin async wrapper over the Frappe REST/RPC API.

    One `httpx.AsyncClient` is shared by every call; pass `http_client` to
    inject a preconfigured one (tests use `httpx.MockTransport`).
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 api_secret: Optional[str] = None, sid: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url or settings.FRAPPE_URL
        api_key = api_key or settings.FRAPPE_API_KEY
        api_secret = api_secret or settings.FRAPPE_API_SECRET
        sid = sid or settings.FRAPPE_SID

        headers = {"Accept": "application/json"}
        if api_key and api_secret:
            headers["Authorization"] = f"token {api_key}:{api_secret}"
        elif not sid:
            logger.warning("No Frappe credentials configured; requests will be anonymous.")

        self._client = http_client or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_SECONDS)
        self._headers = headers
        if sid and "Authorization" not in headers:
            self._client.cookies.set("sid", sid)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"🌐 Network error calling {method} {url}: {e}")
            raise TransientError(f"Frappe backend unreachable: {e}") from e

        logger.debug(f"📤 Frappe {method} {url}: {response.status_code}")
        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.error(f"Frappe returned an error: {response.status_code} - {error.messages}")
            raise error
        try:
            return response.json()
        except ValueError as e:
            raise FrappeAPIError(f"Invalid JSON from Frappe for {method} {url}", response.status_code) from e

    # --- Documents ---
    async def get_doc(self, doctype: str, name: str) -> Dict[str, Any]:
        url = frappe_url(self.base_url, f"resource/{quote(doctype, safe='')}", name)
        body = await self._request("GET", url)
        data = body.get("data")
        if not data:
            raise NotFoundError(f"{doctype} '{name}' not found.", 404)
        return data

    async def insert_doc(self, doctype: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = frappe_url(self.base_url, f"resource/{quote(doctype, safe='')}")
        body = await self._request("POST", url, json=serialize_for_frappe(payload))
        logger.info(f"✅ Created {doctype} {body.get('data', {}).get('name')}")
        return body.get("data", {})

    async def update_doc(self, doctype: str, name: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        PUT a partial document. `payload` must carry the `modified` token the
        document was loaded with; Frappe rejects it with a
        TimestampMismatchError when someone saved in between.
        """
        url = frappe_url(self.base_url, f"resource/{quote(doctype, safe='')}", name)
        body = await self._request("PUT", url, json=serialize_for_frappe(payload))
        logger.info(f"✅ Updated {doctype} {name}")
        return body.get("data", {})

    async def delete_doc(self, doctype: str, name: str) -> None:
        url = frappe_url(self.base_url, f"resource/{quote(doctype, safe='')}", name)
        await self._request("DELETE", url)
        logger.info(f"✅ {doctype} {name} deleted.")

    async def rename_doc(self, doctype: str, old_name: str, new_name: str) -> Any:
        url = frappe_url(self.base_url, f"method/{RENAME_METHOD}")
        data = {
            "doctype": doctype,
            "docname": old_name,
            "name": new_name,
            "merge": "0",
            "enqueue": "false",
        }
        body = await self._request("POST", url, data=data)
        logger.info(f"✅ Renamed {doctype} {old_name} -> {new_name}")
        return body.get("message")

    # --- Search / RPC ---
    async def search_link(self, doctype: str, filters: Optional[Dict[str, Any]] = None,
                          search_text: str = "", limit: Optional[int] = None) -> List[Dict[str, str]]:
        """Candidates for a Link field as [{label, value}], ordered by name."""
        query: List[List[Any]] = []
        if search_text and search_text.strip():
            query.append([doctype, "name", "like", f"%{search_text.strip()}%"])
        for key, value in (filters or {}).items():
            if value is not None and value != "":
                query.append([doctype, key, "=", value])

        params = {
            "fields": json.dumps(["name"]),
            "limit_page_length": str(limit or settings.LINK_SEARCH_LIMIT),
            "order_by": "name asc",
        }
        if query:
            params["filters"] = json.dumps(query)

        url = frappe_url(self.base_url, f"resource/{quote(doctype, safe='')}")
        body = await self._request("GET", url, params=params)
        return [{"label": row["name"], "value": row["name"]} for row in body.get("data", []) if "name" in row]

    async def run_doc_method(self, doc: Dict[str, Any], method: str) -> Any:
        """Calls a whitelisted controller method on an (unsaved) document."""
        url = frappe_url(self.base_url, f"method/{RUN_DOC_METHOD}")
        data = {"docs": json.dumps(serialize_for_frappe(doc)), "method": method}
        body = await self._request("POST", url, data=data)
        return body.get("message")

    async def ping(self) -> bool:
        url = frappe_url(self.base_url, "method/ping")
        try:
            body = await self._request("GET", url)
        except FrappeAPIError as e:
            logger.warning(f"Frappe ping failed: {e}")
            return False
        return body.get("message") == "pong"
