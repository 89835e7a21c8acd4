from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Category(str, Enum):
    WORK = "Work"
    PERSONAL = "Personal"
    NEWSLETTER = "Newsletter"
    SHOPPING = "Shopping"
    SUPPORT = "Support"
    OTHER = "Other"

    @classmethod
    def fallback(cls) -> "Category":
        return cls.OTHER


URGENCY_LEVELS = ("low", "medium", "high")


@dataclass(frozen=True)
class Message:
    message_id: str
    thread_id: str
    subject: str
    sender: str
    snippet: str
    body: str
    received_at: datetime
    to: str = ""
    label_ids: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CategoryResult:
    category: Category
    confidence: float
    reason: str


@dataclass(frozen=True)
class ReplyAssessment:
    needs_reply: bool
    reason: str
    urgency: str = "low"


@dataclass(frozen=True)
class Classification:
    message: Message
    category: CategoryResult
    reply: ReplyAssessment


@dataclass(frozen=True)
class Label:
    label_id: str
    name: str


@dataclass(frozen=True)
class ProcessingRecord:
    message_id: str
    user_id: str
    thread_id: str
    category: Category
    reason: str
    needs_reply: bool
    reply_reason: str
    urgency: str
    received_at: datetime
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_classification(cls, user_id: str, item: Classification) -> "ProcessingRecord":
        return cls(
            message_id=item.message.message_id,
            user_id=user_id,
            thread_id=item.message.thread_id or item.message.message_id,
            category=item.category.category,
            reason=item.category.reason,
            needs_reply=item.reply.needs_reply,
            reply_reason=item.reply.reason,
            urgency=item.reply.urgency,
            received_at=item.message.received_at,
        )


@dataclass(frozen=True)
class UserQuota:
    user_id: str
    plan_type: str
    emails_processed: int
    limit: int

    @property
    def can_process(self) -> bool:
        return self.emails_processed < self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.emails_processed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planType": self.plan_type,
            "emailsProcessed": self.emails_processed,
            "limit": self.limit,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class UserAccount:
    user_id: str
    email: str
    plan_type: str
    emails_processed: int


@dataclass(frozen=True)
class ToneProfile:
    user_id: str
    sent_emails_analyzed: int
    formality: str
    length: str
    style: List[str]
    common_phrases: List[str]
    last_training: datetime


@dataclass
class RunSummary:
    status: str = "running"
    batches: int = 0
    fetched: int = 0
    processed: int = 0
    failed: int = 0
    labeled: int = 0
    label_failed: int = 0
    needs_reply: int = 0
    by_category: Dict[str, int] = field(default_factory=dict)
    by_urgency: Dict[str, int] = field(default_factory=lambda: {u: 0 for u in URGENCY_LEVELS})
    elapsed_ms: int = 0
    error: Optional[Dict[str, Any]] = None
    quota: Optional[Dict[str, Any]] = None
