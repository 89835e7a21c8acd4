from __future__ import annotations

import base64
from datetime import datetime, timezone

from inboxie.parsing.parser import clean_text, extract_body_from_payload, parse_message


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def test_clean_text_flattens_and_collapses_whitespace() -> None:
    assert clean_text("Hello\r\n\tworld   again\x07") == "Hello world again"


def test_clean_text_keeps_unicode() -> None:
    assert clean_text("Grüße aus Köln") == "Grüße aus Köln"


def test_extract_body_prefers_plain_text_part() -> None:
    payload = {
        "mimeType": "multipart/alternative",
        "parts": [
            {"mimeType": "text/html", "body": {"data": _b64("<p>html</p>")}},
            {"mimeType": "text/plain", "body": {"data": _b64("plain text")}},
        ],
    }

    assert extract_body_from_payload(payload) == "plain text"


def test_extract_body_falls_back_to_html() -> None:
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [{"mimeType": "multipart/alternative", "parts": [{"mimeType": "text/html", "body": {"data": _b64("<b>hi</b>")}}]}],
    }

    assert extract_body_from_payload(payload) == "<b>hi</b>"


def test_extract_body_handles_missing_padding() -> None:
    assert extract_body_from_payload({"body": {"data": _b64("ab")}}) == "ab"


def test_parse_message_uses_internal_date(make_raw) -> None:
    received = datetime(2026, 10, 1, 8, 30, tzinfo=timezone.utc)

    message = parse_message(make_raw("m1", subject="Hello\nthere", received_at=received))

    assert message.message_id == "m1"
    assert message.subject == "Hello there"
    assert message.received_at == received
    assert message.to == "me@example.com"
    assert message.headers["Message-ID"] == "<m1@mail.example.com>"
    assert message.label_ids == ["INBOX"]


def test_extract_body_prefers_nested_plain_text_over_earlier_html() -> None:
    payload = {
        "mimeType": "multipart/mixed",
        "parts": [
            {"mimeType": "text/html", "body": {"data": _b64("<p>outer html</p>")}},
            {"mimeType": "multipart/alternative", "parts": [{"mimeType": "text/plain", "body": {"data": _b64("inner plain")}}]},
        ],
    }

    assert extract_body_from_payload(payload) == "inner plain"
