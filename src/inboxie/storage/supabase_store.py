from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from inboxie.config.plans import FREE, PAID, get_email_limit
from inboxie.errors import ConfigurationError, DatastoreError
from inboxie.models import Category, ProcessingRecord, ToneProfile, UserAccount, UserQuota

logger = logging.getLogger(__name__)

USERS = "users"
EMAIL_CACHE = "email_cache"
TONE_PROFILES = "tone_profiles"

# PostgREST caps unranged selects at 1000 rows.
_PAGE = 1000
_UNIQUE_VIOLATION = "23505"
# PostgREST answers and network failures talking to it.
_DB_ERRORS = (APIError, httpx.HTTPError)


def _reason(exc: Exception) -> str:
    if isinstance(exc, APIError) and exc.message:
        return exc.message
    return f"{type(exc).__name__}: {exc}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _record_from_row(row: Dict[str, Any]) -> ProcessingRecord:
    try:
        category = Category(row.get("ai_category") or Category.OTHER.value)
    except ValueError:
        category = Category.OTHER
    return ProcessingRecord(
        message_id=row["id"],
        user_id=row["user_id"],
        thread_id=row.get("gmail_thread_id") or row["id"],
        category=category,
        reason=row.get("ai_reason") or "",
        needs_reply=bool(row.get("needs_reply")),
        reply_reason=row.get("reply_reason") or "",
        urgency=row.get("urgency") or "low",
        received_at=_parse_ts(row.get("date_iso")),
        processed_at=_parse_ts(row.get("processed_at")),
    )


class SupabaseStore:
    """
    Datastore adapter for users, processing records and tone profiles.
    Stores classification metadata only; message content stays in Gmail.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        *,
        alpha_mode: bool = False,
        client: Optional[Client] = None,
    ) -> None:
        if client is None:
            if not url or not key:
                raise ConfigurationError("Supabase URL and key must be configured.")
            client = create_client(url, key)
        self._client = client
        self._alpha_mode = alpha_mode

    def _table(self, name: str):
        return self._client.table(name)

    # --- Users ------------------------------------------------------------

    def _find_user(self, email: str) -> Optional[Dict[str, Any]]:
        resp = self._table(USERS).select("*").eq("email", email).limit(1).execute()
        return resp.data[0] if resp.data else None

    def get_or_create_user(self, email: str) -> UserAccount:
        try:
            row = self._find_user(email)
            if row is None:
                plan = PAID if self._alpha_mode else FREE
                try:
                    resp = (
                        self._table(USERS)
                        .insert(
                            {
                                "email": email,
                                "plan_type": plan,
                                "emails_processed": 0,
                                "created_at": _now_iso(),
                                "updated_at": _now_iso(),
                            }
                        )
                        .execute()
                    )
                    row = resp.data[0]
                    logger.info("[user] created email=%s plan=%s", email, plan)
                except APIError as exc:
                    if exc.code != _UNIQUE_VIOLATION:
                        raise
                    # Created concurrently by another request.
                    row = self._find_user(email)
                    if row is None:
                        raise
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to get or create user: {_reason(exc)}") from exc

        return UserAccount(
            user_id=str(row["id"]),
            email=row["email"],
            plan_type=row.get("plan_type") or FREE,
            emails_processed=int(row.get("emails_processed") or 0),
        )

    def check_limits(self, user_id: str) -> UserQuota:
        try:
            resp = (
                self._table(USERS)
                .select("plan_type, emails_processed")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to check user limits: {_reason(exc)}") from exc
        if not resp.data:
            raise DatastoreError(f"User not found: {user_id}")

        row = resp.data[0]
        plan = PAID if self._alpha_mode else (row.get("plan_type") or FREE)
        quota = UserQuota(
            user_id=user_id,
            plan_type=plan,
            emails_processed=int(row.get("emails_processed") or 0),
            limit=get_email_limit(plan),
        )
        logger.info("[quota] user_id=%s used=%d limit=%d plan=%s", user_id, quota.emails_processed, quota.limit, plan)
        return quota

    def update_email_count(self, user_id: str, increment: int = 1) -> int:
        # Read-modify-write; concurrent runs per user are blocked at the API layer.
        try:
            resp = self._table(USERS).select("emails_processed").eq("id", user_id).limit(1).execute()
            if not resp.data:
                raise DatastoreError(f"User not found: {user_id}")
            new_count = int(resp.data[0].get("emails_processed") or 0) + increment
            (
                self._table(USERS)
                .update({"emails_processed": new_count, "updated_at": _now_iso()})
                .eq("id", user_id)
                .execute()
            )
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to update user email count: {_reason(exc)}") from exc
        return new_count

    # --- Processing records -------------------------------------------------

    def exists(self, user_id: str, message_id: str) -> bool:
        try:
            resp = (
                self._table(EMAIL_CACHE)
                .select("id")
                .eq("user_id", user_id)
                .eq("id", message_id)
                .limit(1)
                .execute()
            )
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to check email: {_reason(exc)}") from exc
        return bool(resp.data)

    def save_record(self, record: ProcessingRecord) -> bool:
        """Insert a record. Returns False when it already exists."""
        row = {
            "id": record.message_id,
            "user_id": record.user_id,
            "gmail_thread_id": record.thread_id,
            "ai_category": record.category.value,
            "ai_reason": record.reason,
            "needs_reply": record.needs_reply,
            "reply_reason": record.reply_reason,
            "urgency": record.urgency,
            "date_iso": record.received_at.isoformat(),
            "processed_at": record.processed_at.isoformat(),
            "created_at": _now_iso(),
        }
        try:
            self._table(EMAIL_CACHE).insert(row).execute()
        except _DB_ERRORS as exc:
            if getattr(exc, "code", None) == _UNIQUE_VIOLATION:
                return False
            raise DatastoreError(f"Failed to save email {record.message_id}: {_reason(exc)}") from exc
        return True

    def list_processed_ids(self, user_id: str) -> Set[str]:
        ids: Set[str] = set()
        start = 0
        try:
            while True:
                resp = (
                    self._table(EMAIL_CACHE)
                    .select("id")
                    .eq("user_id", user_id)
                    .range(start, start + _PAGE - 1)
                    .execute()
                )
                rows = resp.data or []
                ids.update(row["id"] for row in rows if row.get("id"))
                if len(rows) < _PAGE:
                    break
                start += _PAGE
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to list processed emails: {_reason(exc)}") from exc
        logger.info("[records] user_id=%s processed_ids=%d", user_id, len(ids))
        return ids

    def list_processed(self, user_id: str, limit: int = 100) -> List[ProcessingRecord]:
        try:
            resp = (
                self._table(EMAIL_CACHE)
                .select("*")
                .eq("user_id", user_id)
                .order("processed_at", desc=True)
                .limit(limit)
                .execute()
            )
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to list processed emails: {_reason(exc)}") from exc
        return [_record_from_row(row) for row in resp.data or []]

    def get_record(self, user_id: str, message_id: str) -> Optional[ProcessingRecord]:
        try:
            resp = (
                self._table(EMAIL_CACHE)
                .select("*")
                .eq("user_id", user_id)
                .eq("id", message_id)
                .limit(1)
                .execute()
            )
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to load email {message_id}: {_reason(exc)}") from exc
        return _record_from_row(resp.data[0]) if resp.data else None

    def category_counts(self, user_id: str) -> Dict[str, int]:
        try:
            resp = self._table(EMAIL_CACHE).select("ai_category").eq("user_id", user_id).execute()
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to count categories: {_reason(exc)}") from exc
        counts: Dict[str, int] = {}
        for row in resp.data or []:
            category = row.get("ai_category") or Category.OTHER.value
            counts[category] = counts.get(category, 0) + 1
        return counts

    def pending_replies(self, user_id: str) -> List[ProcessingRecord]:
        try:
            resp = (
                self._table(EMAIL_CACHE)
                .select("*")
                .eq("user_id", user_id)
                .eq("needs_reply", True)
                .order("date_iso", desc=True)
                .execute()
            )
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to list pending replies: {_reason(exc)}") from exc
        return [_record_from_row(row) for row in resp.data or []]

    def mark_replied(self, user_id: str, message_id: str, method: Optional[str] = None) -> None:
        update: Dict[str, Any] = {"reply_status": "draft_created", "needs_reply": False}
        if method:
            update["ai_replied_at"] = _now_iso()
            update["ai_reply_method"] = method
        try:
            self._table(EMAIL_CACHE).update(update).eq("id", message_id).eq("user_id", user_id).execute()
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to update reply status: {_reason(exc)}") from exc

    # --- Tone profiles ------------------------------------------------------

    def get_tone_profile(self, user_id: str) -> Optional[ToneProfile]:
        try:
            resp = self._table(TONE_PROFILES).select("*").eq("user_id", user_id).limit(1).execute()
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to load tone profile: {_reason(exc)}") from exc
        if not resp.data:
            return None
        row = resp.data[0]
        traits = row.get("tone_characteristics") or {}
        return ToneProfile(
            user_id=user_id,
            sent_emails_analyzed=int(row.get("sent_emails_analyzed") or 0),
            formality=traits.get("formality", "mixed"),
            length=traits.get("length", "moderate"),
            style=list(traits.get("style") or []),
            common_phrases=list(traits.get("common_phrases") or []),
            last_training=_parse_ts(row.get("last_training")),
        )

    def save_tone_profile(self, profile: ToneProfile) -> None:
        row = {
            "user_id": profile.user_id,
            "sent_emails_analyzed": profile.sent_emails_analyzed,
            "tone_characteristics": {
                "formality": profile.formality,
                "length": profile.length,
                "style": profile.style,
                "common_phrases": profile.common_phrases,
            },
            "last_training": profile.last_training.isoformat(),
        }
        try:
            self._table(TONE_PROFILES).upsert(row, on_conflict="user_id").execute()
        except _DB_ERRORS as exc:
            raise DatastoreError(f"Failed to save tone profile: {_reason(exc)}") from exc
