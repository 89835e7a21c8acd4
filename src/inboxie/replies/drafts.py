from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Callable, Dict, List, Optional

from inboxie.config.plans import PAID, can_use_feature
from inboxie.errors import DatastoreError, FeatureNotAvailable, InvalidRequest, NotFound, ProviderError
from inboxie.models import Message, ToneProfile
from inboxie.parsing.parser import parse_message

logger = logging.getLogger(__name__)

_REPLY_PREFIX = re.compile(r"^(re|aw|sv)\s*:\s*", flags=re.IGNORECASE)

MIN_TONE_SAMPLES = 5
# Sent bodies must be longer than this to count as a sample.
MIN_SAMPLE_CHARS = 50
TONE_MAX_AGE_DAYS = 30
SENT_QUERY = "in:sent"

FORMALITY_LEVELS = ("formal", "casual", "mixed")
LENGTH_LEVELS = ("brief", "moderate", "detailed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_reply_subject(subject: str) -> str:
    """Normalize to exactly one leading 'Re:' (also folds AW:/SV: prefixes)."""
    cleaned = subject.strip()
    while True:
        match = _REPLY_PREFIX.match(cleaned)
        if not match:
            break
        cleaned = cleaned[match.end():].strip()
    return f"Re: {cleaned}" if cleaned else "Re: (no subject)"


def quote_original(message: Message) -> str:
    date = message.headers.get("Date") or format_datetime(message.received_at)
    lines = (message.body or message.snippet).splitlines() or [""]
    quoted = "\n".join(f"> {line}" for line in lines)
    return f"On {date}, {message.sender} wrote:\n{quoted}"


def compose_reply(response: str, message: Message, include_quoting: bool = True) -> str:
    text = response.strip()
    if include_quoting:
        text = f"{text}\n\n{quote_original(message)}"
    return text


@dataclass(frozen=True)
class DraftResult:
    draft_id: str
    to: str
    subject: str
    body: str

    def to_dict(self) -> Dict[str, Any]:
        return {"draftId": self.draft_id, "replyTo": self.to, "subject": self.subject, "body": self.body}


@dataclass(frozen=True)
class GeneratedReply:
    text: str
    draft: Optional[DraftResult] = None
    warnings: List[str] = field(default_factory=list)


class ReplyDrafter:
    """
    Reply drafting for processed messages.

    quick_reply: user-written text with the quoted original.
    generate_reply: AI text in the user's learned tone (paid plans).
    train_tone: learn the tone profile from sent mail (paid plans).
    """

    def __init__(self, gmail: Any, llm: Any, store: Any, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._gmail = gmail
        self._llm = llm
        self._store = store
        self._clock = clock

    def _require_feature(self, user_id: str, feature: str, label: str) -> None:
        quota = self._store.check_limits(user_id)
        if not can_use_feature(quota.plan_type, feature):
            raise FeatureNotAvailable(
                f"{label} is a Pro feature. Please upgrade your plan.",
                data={"feature": feature, "requiredPlan": PAID, "currentPlan": quota.plan_type},
            )

    def _load_message(self, user_id: str, message_id: str) -> Message:
        if self._store.get_record(user_id, message_id) is None:
            raise NotFound("Email not found or access denied")
        try:
            raw = self._gmail.get_message(message_id)
        except ProviderError as exc:
            if exc.status == 404:
                raise NotFound("Email no longer exists in Gmail") from exc
            raise
        return parse_message(raw)

    def _draft(self, message: Message, body: str) -> DraftResult:
        subject = as_reply_subject(message.subject)
        draft_id = self._gmail.create_draft(
            message.sender,
            subject,
            body,
            thread_id=message.thread_id,
            in_reply_to=message.headers.get("Message-ID") or message.headers.get("Message-Id"),
        )
        logger.info("[draft] message_id=%s draft_id=%s", message.message_id, draft_id)
        return DraftResult(draft_id=draft_id, to=message.sender, subject=subject, body=body)

    def quick_reply(
        self,
        user_id: str,
        message_id: str,
        response: str,
        *,
        include_quoting: bool = True,
        used_ai: bool = False,
        ai_reply_method: str = "manual",
    ) -> DraftResult:
        if not message_id or not response.strip():
            raise InvalidRequest("Missing required fields: emailId and userResponse")

        message = self._load_message(user_id, message_id)
        result = self._draft(message, compose_reply(response, message, include_quoting))

        try:
            self._store.mark_replied(user_id, message_id, ai_reply_method if used_ai else None)
        except DatastoreError as exc:
            # The draft is already created.
            logger.warning("[draft] message_id=%s reply status not updated: %s", message_id, exc)
        return result

    def generate_reply(
        self,
        user_id: str,
        message_id: str,
        *,
        context: Optional[str] = None,
        include_quoting: bool = True,
        create_draft: bool = True,
    ) -> GeneratedReply:
        if not message_id:
            raise InvalidRequest("Missing required field: emailId")
        self._require_feature(user_id, "ai_replies", "AI response generation")

        message = self._load_message(user_id, message_id)
        tone = self._store.get_tone_profile(user_id)
        if tone is None:
            raise NotFound("No tone profile found. Please train your writing tone first.")

        warnings: List[str] = []
        days_old = (self._clock() - tone.last_training).days
        if days_old > TONE_MAX_AGE_DAYS:
            logger.info("[tone] user_id=%s profile is %d days old", user_id, days_old)
            warnings.append(
                f"Your tone profile is {days_old} days old. Consider retraining for more accurate results."
            )

        text = compose_reply(self._llm.generate_reply(message, tone, context), message, include_quoting)

        draft: Optional[DraftResult] = None
        if create_draft:
            try:
                draft = self._draft(message, text)
            except ProviderError as exc:
                logger.warning("[draft] message_id=%s draft not created: %s", message_id, exc)
                warnings.append("Reply generated, but the Gmail draft could not be created.")
        return GeneratedReply(text=text, draft=draft, warnings=warnings)

    def _sent_samples(self, count: int) -> List[Message]:
        page = self._gmail.list_messages(SENT_QUERY, None, count)
        samples: List[Message] = []
        for message_id in page.ids:
            try:
                message = parse_message(self._gmail.get_message(message_id))
            except ProviderError as exc:
                logger.warning("[tone] skipping sent message_id=%s: %s", message_id, exc)
                continue
            if len(message.body) > MIN_SAMPLE_CHARS:
                samples.append(message)
        return samples

    def train_tone(self, user_id: str, analyze_count: int = 50) -> ToneProfile:
        self._require_feature(user_id, "voice_training", "Tone training")

        # Gmail caps one list page at 500 ids.
        count = max(1, min(int(analyze_count), 500))
        samples = self._sent_samples(count)
        if len(samples) < MIN_TONE_SAMPLES:
            raise InvalidRequest(
                f"Not enough sent emails to analyze tone. Need at least {MIN_TONE_SAMPLES} sent emails.",
                data={"sentEmailsFound": len(samples), "minimumRequired": MIN_TONE_SAMPLES},
            )

        raw = self._llm.analyze_tone(samples)
        formality = raw.get("formality")
        length = raw.get("length")
        profile = ToneProfile(
            user_id=user_id,
            sent_emails_analyzed=len(samples),
            formality=formality if formality in FORMALITY_LEVELS else "mixed",
            length=length if length in LENGTH_LEVELS else "moderate",
            style=[str(s) for s in raw.get("style") or []],
            common_phrases=[str(p) for p in raw.get("common_phrases") or []],
            last_training=self._clock(),
        )
        self._store.save_tone_profile(profile)
        logger.info(
            "[tone] user_id=%s trained from=%d formality=%s length=%s",
            user_id,
            profile.sent_emails_analyzed,
            profile.formality,
            profile.length,
        )
        return profile
