from __future__ import annotations

import re
from datetime import datetime, timedelta
from email.utils import parseaddr
from typing import Any, Dict, Optional

from inboxie.errors import MalformedOutput
from inboxie.models import URGENCY_LEVELS, Category, CategoryResult, Message, ReplyAssessment

# Categories that never need a personal reply.
NO_REPLY_CATEGORIES = frozenset({Category.NEWSLETTER, Category.SHOPPING})

NO_REPLY_SENDER = re.compile(
    r"no-?reply|do-?not-?reply|mailer-daemon|notifications?@|bounce",
    re.IGNORECASE,
)

DEFAULT_CONFIDENCE = 0.8


def _sender_address(sender: str) -> str:
    _, addr = parseaddr(sender or "")
    return (addr or sender or "").strip().lower()


def coerce_category(raw: Optional[Dict[str, Any]]) -> CategoryResult:
    """Validate a raw LLM answer against the closed category set. Never raises."""
    if not isinstance(raw, dict):
        return CategoryResult(Category.fallback(), 0.5, "Invalid model output, defaulted to Other")

    value = raw.get("category")
    by_name = {c.value.lower(): c for c in Category}
    category = by_name.get(value.strip().lower()) if isinstance(value, str) else None
    if category is None:
        return CategoryResult(Category.fallback(), 0.5, f"Invalid category {value!r}, defaulted to Other")

    try:
        confidence = float(raw.get("confidence", DEFAULT_CONFIDENCE))
    except (TypeError, ValueError):
        confidence = DEFAULT_CONFIDENCE
    confidence = min(1.0, max(0.0, confidence))

    reason = raw.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        reason = "Categorized by AI"
    return CategoryResult(category, confidence, reason.strip())


def reply_prefilter(
    message: Message,
    category: Category,
    now: datetime,
    window_days: int,
) -> Optional[ReplyAssessment]:
    """
    Decide reply need without the LLM when a deterministic rule applies.
    Returns None when the message has to be assessed by the model.
    """
    if category in NO_REPLY_CATEGORIES:
        return ReplyAssessment(False, f"no-reply category: {category.value}", "low")

    if NO_REPLY_SENDER.search(_sender_address(message.sender)):
        return ReplyAssessment(False, "no-reply sender", "low")

    if message.received_at < now - timedelta(days=window_days):
        return ReplyAssessment(False, f"older than {window_days} days", "low")

    return None


def coerce_reply_assessment(raw: Any) -> ReplyAssessment:
    """Strictly validate a reply assessment; anything off raises MalformedOutput."""
    if not isinstance(raw, dict):
        raise MalformedOutput("reply assessment is not an object")

    needs_reply = raw.get("needs_reply")
    if not isinstance(needs_reply, bool):
        raise MalformedOutput(f"needs_reply is not a boolean: {needs_reply!r}")

    urgency = raw.get("urgency")
    if urgency not in URGENCY_LEVELS:
        raise MalformedOutput(f"invalid urgency: {urgency!r}")

    reason = raw.get("reason")
    if not isinstance(reason, str):
        raise MalformedOutput("reason is missing")

    return ReplyAssessment(needs_reply, reason.strip(), urgency if needs_reply else "low")
