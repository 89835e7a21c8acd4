from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from inboxie.config.settings import PipelineConfig
from inboxie.errors import MalformedOutput
from inboxie.models import Category, CategoryResult, Classification, Message, ReplyAssessment
from inboxie.pipeline.isolation import isolate
from inboxie.pipeline.policy import coerce_category, coerce_reply_assessment, reply_prefilter
from inboxie.pipeline.ratelimit import TokenBucket

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClassifierStage:
    """
    Categorize each message and assess whether it needs a reply.

    Messages run concurrently within chunks; results come back in input order,
    correlated by message id.
    """

    def __init__(
        self,
        llm: Any,
        *,
        config: PipelineConfig,
        limiter: TokenBucket,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._llm = llm
        self._config = config
        self._limiter = limiter
        self._clock = clock

    async def _categorize(self, message: Message) -> CategoryResult:
        await self._limiter.acquire()
        outcome = await isolate(
            f"classify {message.message_id}",
            self._llm.classify,
            message,
            timeout=self._config.call_timeout,
        )
        if not outcome.ok:
            return CategoryResult(Category.fallback(), 0.5, f"Error in categorization: {outcome.error_text}")
        return coerce_category(outcome.value)

    async def _assess(self, message: Message, category: Category) -> ReplyAssessment:
        skipped = reply_prefilter(message, category, self._clock(), self._config.reply_window_days)
        if skipped is not None:
            return skipped

        await self._limiter.acquire()
        outcome = await isolate(
            f"assess_reply {message.message_id}",
            self._llm.assess_reply,
            message,
            timeout=self._config.call_timeout,
        )
        if not outcome.ok:
            return ReplyAssessment(False, f"analysis error: {outcome.error_text}", "low")
        try:
            return coerce_reply_assessment(outcome.value)
        except MalformedOutput as exc:
            logger.warning("[classify] message_id=%s malformed reply assessment: %s", message.message_id, exc)
            return ReplyAssessment(False, f"analysis error: {exc}", "low")

    async def _classify_one(self, message: Message) -> Classification:
        category = await self._categorize(message)
        reply = await self._assess(message, category.category)
        logger.info(
            "[classify] message_id=%s category=%s needs_reply=%s urgency=%s",
            message.message_id,
            category.category.value,
            reply.needs_reply,
            reply.urgency,
        )
        return Classification(message=message, category=category, reply=reply)

    async def classify(self, messages: List[Message]) -> List[Classification]:
        by_id: Dict[str, Classification] = {}
        size = max(1, self._config.classify_chunk_size)
        for start in range(0, len(messages), size):
            chunk = messages[start:start + size]
            for item in await asyncio.gather(*(self._classify_one(m) for m in chunk)):
                by_id[item.message.message_id] = item
        return [by_id[m.message_id] for m in messages]
