from __future__ import annotations

import asyncio
import base64
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest

from inboxie.config.plans import FREE, get_email_limit
from inboxie.config.settings import PipelineConfig
from inboxie.errors import DatastoreError, ProviderError
from inboxie.gmail.client import MessagePage
from inboxie.models import (
    Category,
    Label,
    Message,
    ProcessingRecord,
    RunSummary,
    ToneProfile,
    UserAccount,
    UserQuota,
)
from inboxie.pipeline.orchestrator import Orchestrator

USER_ID = "user-1"


def raw_message(
    message_id: str,
    *,
    subject: str = "Project update",
    sender: str = "Alice Example <alice@example.com>",
    body: str = "Could you review the attached plan by Friday?",
    received_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """A Gmail `messages.get(format=full)` resource."""
    received_at = received_at or datetime.now(timezone.utc) - timedelta(hours=1)
    data = base64.urlsafe_b64encode(body.encode("utf-8")).decode("ascii").rstrip("=")
    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "snippet": body[:100],
        "internalDate": str(int(received_at.timestamp() * 1000)),
        "labelIds": ["INBOX"],
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": sender},
                {"name": "To", "value": "me@example.com"},
                {"name": "Date", "value": "Mon, 19 Oct 2026 09:00:00 +0000"},
                {"name": "Message-ID", "value": f"<{message_id}@mail.example.com>"},
            ],
            "body": {"data": data},
        },
    }


class FakeGmail:
    """In-memory mailbox. Inbox order is insertion order; page tokens are offsets."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.inbox: Dict[str, Dict[str, Any]] = {}
        self.sent: Dict[str, Dict[str, Any]] = {}
        self.labels: Dict[str, str] = {}
        self.message_labels: Dict[str, List[str]] = {}
        self.drafts: List[Dict[str, Any]] = []
        self.list_calls: List[Tuple[str, Optional[str], int]] = []
        self.get_calls: List[str] = []
        self.created_labels: List[str] = []
        self.modify_calls: List[str] = []
        self.fail_get: Set[str] = set()
        self.fail_modify: Set[str] = set()
        self.fail_list_after_first = False
        # Names whose creation answers 409 after silently adding the label.
        self.conflict_on_create: Set[str] = set()
        self.email = "me@example.com"

    def add(self, raw: Dict[str, Any]) -> None:
        self.inbox[raw["id"]] = raw

    def add_sent(self, raw: Dict[str, Any]) -> None:
        self.sent[raw["id"]] = raw

    def list_messages(self, query: str = "in:inbox", page_token: Optional[str] = None, max_results: int = 50) -> MessagePage:
        with self._lock:
            self.list_calls.append((query, page_token, max_results))
        if page_token is not None and self.fail_list_after_first:
            raise ProviderError("list failed", status=503)
        source = self.sent if query == "in:sent" else self.inbox
        ids = list(source)
        start = int(page_token or 0)
        page = ids[start:start + max_results]
        more = start + max_results < len(ids)
        return MessagePage(ids=page, next_page_token=str(start + max_results) if more else None)

    def get_message(self, message_id: str, fmt: str = "full") -> Dict[str, Any]:
        with self._lock:
            self.get_calls.append(message_id)
        if message_id in self.fail_get:
            raise ProviderError(f"get {message_id} failed", status=500)
        raw = self.inbox.get(message_id) or self.sent.get(message_id)
        if raw is None:
            raise ProviderError("not found", status=404)
        return raw

    def list_labels(self) -> List[Label]:
        with self._lock:
            return [Label(label_id=i, name=n) for i, n in self.labels.items()]

    def create_label(self, name: str, color: Optional[Dict[str, str]] = None) -> str:
        with self._lock:
            self.created_labels.append(name)
            label_id = f"Label_{len(self.labels) + 1}"
            self.labels[label_id] = name
        if name in self.conflict_on_create:
            raise ProviderError("Label name exists or conflicts", status=409)
        return label_id

    def modify_message(self, message_id: str, add_label_ids: List[str]) -> None:
        with self._lock:
            self.modify_calls.append(message_id)
        if message_id in self.fail_modify:
            raise ProviderError("modify failed", status=500)
        with self._lock:
            self.message_labels.setdefault(message_id, []).extend(add_label_ids)

    def create_draft(self, to: str, subject: str, body: str, *, thread_id: Optional[str] = None, in_reply_to: Optional[str] = None) -> str:
        with self._lock:
            draft_id = f"draft-{len(self.drafts) + 1}"
            self.drafts.append(
                {"id": draft_id, "to": to, "subject": subject, "body": body, "thread_id": thread_id, "in_reply_to": in_reply_to}
            )
        return draft_id

    def get_profile(self) -> Dict[str, Any]:
        return {"emailAddress": self.email}


class FakeLLM:
    """Scripted LLM. Per-message answers may be a value or an exception to raise."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.categories: Dict[str, Any] = {}
        self.replies: Dict[str, Any] = {}
        self.default_category: Any = "Work"
        self.default_reply: Dict[str, Any] = {"needs_reply": True, "reason": "Direct question", "urgency": "medium"}
        self.tone: Dict[str, Any] = {
            "formality": "casual",
            "length": "brief",
            "style": ["direct"],
            "common_phrases": ["Cheers"],
        }
        self.classify_calls: List[str] = []
        self.assess_calls: List[str] = []
        self.generate_calls: List[Tuple[str, Optional[str]]] = []
        self.tone_samples: List[Message] = []

    def classify(self, message: Message) -> Dict[str, Any]:
        with self._lock:
            self.classify_calls.append(message.message_id)
        answer = self.categories.get(message.message_id, self.default_category)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, dict):
            return answer
        return {"category": answer, "confidence": 0.9, "reason": "looks like it"}

    def assess_reply(self, message: Message) -> Any:
        with self._lock:
            self.assess_calls.append(message.message_id)
        answer = self.replies.get(message.message_id, self.default_reply)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def analyze_tone(self, sent: List[Message]) -> Dict[str, Any]:
        self.tone_samples = list(sent)
        return dict(self.tone)

    def generate_reply(self, message: Message, tone: ToneProfile, context: Optional[str] = None) -> str:
        self.generate_calls.append((message.message_id, context))
        return "Thanks, that works for me."


class FakeStore:
    """Datastore with the SupabaseStore surface, kept in dicts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.users: Dict[str, Dict[str, Any]] = {}
        self.records: Dict[Tuple[str, str], ProcessingRecord] = {}
        self.replied: Dict[str, Optional[str]] = {}
        self.tones: Dict[str, ToneProfile] = {}
        self.increments: List[int] = []
        self.fail_save: Set[str] = set()
        self.fail_increment = False
        self.limit_checks = 0

    def add_user(self, user_id: str = USER_ID, *, plan_type: str = FREE, emails_processed: int = 0, email: str = "me@example.com") -> None:
        self.users[user_id] = {"email": email, "plan_type": plan_type, "emails_processed": emails_processed}

    def get_or_create_user(self, email: str) -> UserAccount:
        for user_id, row in self.users.items():
            if row["email"] == email:
                return UserAccount(user_id, email, row["plan_type"], row["emails_processed"])
        user_id = f"user-{len(self.users) + 1}"
        self.add_user(user_id, email=email)
        return UserAccount(user_id, email, FREE, 0)

    def check_limits(self, user_id: str) -> UserQuota:
        self.limit_checks += 1
        row = self.users[user_id]
        return UserQuota(user_id, row["plan_type"], row["emails_processed"], get_email_limit(row["plan_type"]))

    def update_email_count(self, user_id: str, increment: int = 1) -> int:
        if self.fail_increment:
            raise DatastoreError("increment failed")
        with self._lock:
            self.increments.append(increment)
            self.users[user_id]["emails_processed"] += increment
            return self.users[user_id]["emails_processed"]

    def exists(self, user_id: str, message_id: str) -> bool:
        return (user_id, message_id) in self.records

    def save_record(self, record: ProcessingRecord) -> bool:
        if record.message_id in self.fail_save:
            raise DatastoreError(f"save {record.message_id} failed")
        with self._lock:
            key = (record.user_id, record.message_id)
            if key in self.records:
                return False
            self.records[key] = record
            return True

    def list_processed_ids(self, user_id: str) -> Set[str]:
        return {mid for uid, mid in self.records if uid == user_id}

    def get_record(self, user_id: str, message_id: str) -> Optional[ProcessingRecord]:
        return self.records.get((user_id, message_id))

    def category_counts(self, user_id: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for (uid, _), record in self.records.items():
            if uid == user_id:
                counts[record.category.value] = counts.get(record.category.value, 0) + 1
        return counts

    def pending_replies(self, user_id: str) -> List[ProcessingRecord]:
        return [r for (uid, _), r in self.records.items() if uid == user_id and r.needs_reply]

    def mark_replied(self, user_id: str, message_id: str, method: Optional[str] = None) -> None:
        self.replied[message_id] = method
        key = (user_id, message_id)
        if key in self.records:
            self.records[key] = replace(self.records[key], needs_reply=False)

    def get_tone_profile(self, user_id: str) -> Optional[ToneProfile]:
        return self.tones.get(user_id)

    def save_tone_profile(self, profile: ToneProfile) -> None:
        self.tones[profile.user_id] = profile


def processed_record(message_id: str, *, user_id: str = USER_ID, category: Category = Category.WORK, needs_reply: bool = True, urgency: str = "high") -> ProcessingRecord:
    return ProcessingRecord(
        message_id=message_id,
        user_id=user_id,
        thread_id=f"thread-{message_id}",
        category=category,
        reason="looks like it",
        needs_reply=needs_reply,
        reply_reason="Direct question",
        urgency=urgency,
        received_at=datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_raw() -> Callable[..., Dict[str, Any]]:
    return raw_message


@pytest.fixture
def make_record() -> Callable[..., ProcessingRecord]:
    return processed_record


@pytest.fixture
def gmail() -> FakeGmail:
    return FakeGmail()


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def store() -> FakeStore:
    fake = FakeStore()
    fake.add_user()
    return fake


@pytest.fixture
def fast_config() -> PipelineConfig:
    return PipelineConfig(gmail_rate=None, llm_rate=None, batch_delay=0.0, call_timeout=5.0)


@pytest.fixture
def run_pipeline(gmail: FakeGmail, llm: FakeLLM, store: FakeStore, fast_config: PipelineConfig) -> Callable[..., RunSummary]:
    def run(*, batch_size: Optional[int] = None, email_limit: Optional[int] = None, label_prefix: str = "", config: Optional[PipelineConfig] = None, cancel_after: Optional[int] = None) -> RunSummary:
        async def go() -> RunSummary:
            cancel = asyncio.Event()

            def progress(step: str, payload: Dict[str, Any]) -> None:
                if cancel_after is not None and step == "batch_done" and payload["metrics"]["batches"] >= cancel_after:
                    cancel.set()

            orchestrator = Orchestrator(
                gmail,
                llm,
                store,
                config=config or fast_config,
                label_prefix=label_prefix,
                progress_cb=progress,
            )
            return await orchestrator.run(USER_ID, batch_size=batch_size, email_limit=email_limit, cancel=cancel)

        return asyncio.run(go())

    return run
