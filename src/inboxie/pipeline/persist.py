from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from inboxie.config.settings import PipelineConfig
from inboxie.models import Category, Classification, ProcessingRecord
from inboxie.pipeline.isolation import call, isolate
from inboxie.pipeline.ratelimit import TokenBucket

logger = logging.getLogger(__name__)


@dataclass
class PersistResult:
    labeled: int = 0
    label_failed: int = 0
    persisted: int = 0
    duplicates: int = 0
    failed: int = 0
    records: List[ProcessingRecord] = field(default_factory=list)


class ApplyPersistStage:
    """Apply category labels, write processing records, then bump the user's quota."""

    def __init__(self, gmail: Any, store: Any, *, config: PipelineConfig, limiter: TokenBucket) -> None:
        self._gmail = gmail
        self._store = store
        self._config = config
        self._limiter = limiter

    async def _apply_labels(self, classifications: List[Classification], label_map: Dict[Category, str], result: PersistResult) -> None:
        # Strictly sequential, in batch order.
        for item in classifications:
            message_id = item.message.message_id
            label_id = label_map.get(item.category.category)
            if not label_id:
                continue
            await self._limiter.acquire()
            outcome = await isolate(
                f"modify_message {message_id}",
                self._gmail.modify_message,
                message_id,
                [label_id],
                timeout=self._config.call_timeout,
            )
            if outcome.ok:
                result.labeled += 1
                logger.info("[label] message_id=%s label=%s", message_id, item.category.category.value)
            else:
                result.label_failed += 1

    async def _save_records(self, records: List[ProcessingRecord], result: PersistResult) -> None:
        size = max(1, self._config.persist_chunk_size)
        for start in range(0, len(records), size):
            chunk = records[start:start + size]
            outcomes = await asyncio.gather(
                *(
                    isolate(
                        f"save_record {r.message_id}",
                        self._store.save_record,
                        r,
                        timeout=self._config.call_timeout,
                    )
                    for r in chunk
                )
            )
            for record, outcome in zip(chunk, outcomes):
                if not outcome.ok:
                    result.failed += 1
                elif outcome.value:
                    result.persisted += 1
                    result.records.append(record)
                else:
                    result.duplicates += 1
                    logger.info("[persist] message_id=%s already recorded", record.message_id)

    async def apply_and_persist(
        self,
        user_id: str,
        classifications: List[Classification],
        label_map: Dict[Category, str],
    ) -> PersistResult:
        result = PersistResult()
        await self._apply_labels(classifications, label_map, result)

        records = [ProcessingRecord.from_classification(user_id, item) for item in classifications]
        await self._save_records(records, result)

        if result.persisted:
            # Not isolated; a failure here halts the run.
            await call(
                self._store.update_email_count,
                user_id,
                result.persisted,
                timeout=self._config.call_timeout,
            )
        logger.info(
            "[persist] labeled=%d persisted=%d duplicates=%d failed=%d",
            result.labeled,
            result.persisted,
            result.duplicates,
            result.failed,
        )
        return result
