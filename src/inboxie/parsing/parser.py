from __future__ import annotations

import base64
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from inboxie.models import Message

_LINE_BREAKS = re.compile(r"[\r\n\t]+")
_NON_PRINTABLE = re.compile(r"[^\x20-\x7E\u00A0-\uFFFF]")
_WHITESPACE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """Flatten line breaks, drop non-printable characters and collapse spaces."""
    text = _LINE_BREAKS.sub(" ", text or "")
    text = _NON_PRINTABLE.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


# Body parts in order of preference.
_READABLE_TYPES = ("text/plain", "text/html")


def _b64url_text(data: str) -> str:
    # Gmail strips base64 padding on some parts.
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _walk_parts(payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Yield the payload and its nested parts in document order."""
    stack = [payload]
    while stack:
        part = stack.pop()
        yield part
        stack.extend(reversed(part.get("parts") or []))


def extract_body_from_payload(payload: Dict[str, Any]) -> str:
    """Single-part data first, then the first text/plain part, then the first text/html part."""
    inline = (payload.get("body") or {}).get("data")
    if inline:
        return _b64url_text(inline)

    first_of_type: Dict[str, str] = {}
    for part in _walk_parts(payload):
        mime_type = part.get("mimeType")
        data = (part.get("body") or {}).get("data")
        if data and mime_type in _READABLE_TYPES:
            first_of_type.setdefault(mime_type, data)

    for mime_type in _READABLE_TYPES:
        if mime_type in first_of_type:
            return _b64url_text(first_of_type[mime_type])
    return ""


def parse_message(msg: Dict[str, Any]) -> Message:
    """Normalize a full Gmail message resource into a Message."""
    payload = msg.get("payload", {}) or {}
    headers = {h["name"]: h["value"] for h in payload.get("headers", [])}
    internal_date_ms = int(msg.get("internalDate") or 0)

    return Message(
        message_id=msg["id"],
        thread_id=msg.get("threadId") or msg["id"],
        subject=clean_text(headers.get("Subject", "")),
        sender=clean_text(headers.get("From", "")),
        to=clean_text(headers.get("To", "")),
        snippet=clean_text(msg.get("snippet", "")),
        body=clean_text(extract_body_from_payload(payload)),
        received_at=datetime.fromtimestamp(internal_date_ms / 1000, tz=timezone.utc),
        label_ids=[str(x) for x in (msg.get("labelIds") or [])],
        headers=headers,
    )
