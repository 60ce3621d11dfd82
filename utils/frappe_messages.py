import json
import logging
import re
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_EXCEPTION_PREFIX_RE = re.compile(r"^[\w.]+(Error|Exception):\s*")


def _decode(raw: Any) -> Any:
    """JSON-decode strings that look like JSON, leave everything else alone."""
    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped[:1] in ("[", "{", '"'):
            try:
                return json.loads(stripped)
            except ValueError:
                return raw
    return raw


def _clean(text: str) -> str:
    text = _TAG_RE.sub("", text)
    return " ".join(text.split())


def _collect(value: Any, out: List[str]) -> None:
    value = _decode(value)
    if value is None:
        return
    if isinstance(value, list):
        for item in value:
            _collect(item, out)
    elif isinstance(value, dict):
        if "message" in value:
            _collect(value["message"], out)
        elif "title" in value:
            _collect(value["title"], out)
    else:
        text = _clean(str(value))
        if text:
            out.append(text)


def flatten_server_messages(body: Optional[Dict[str, Any]]) -> List[str]:
    """
    Turns a Frappe error response body into a flat list of display strings.

    Frappe reports validation problems in `_server_messages`, a JSON-encoded
    list whose items are themselves JSON-encoded `{"message": ...}` objects.
    When that is absent we fall back to `message`, then `exception`
    (with its "frappe.exceptions.XError:" prefix removed).
    """
    if not body:
        return []

    messages: List[str] = []
    if body.get("_server_messages"):
        _collect(body["_server_messages"], messages)

    if not messages and body.get("message"):
        _collect(body["message"], messages)

    if not messages and body.get("exception"):
        exception = str(body["exception"]).strip().splitlines()[-1]
        messages.append(_clean(_EXCEPTION_PREFIX_RE.sub("", exception)))

    # Preserve order, drop repeats
    seen = set()
    unique = []
    for message in messages:
        if message not in seen:
            seen.add(message)
            unique.append(message)
    return unique
