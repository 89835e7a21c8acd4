from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from inboxie.config.settings import PipelineConfig
from inboxie.errors import InboxieError, QuotaExceeded
from inboxie.models import RunSummary, UserQuota
from inboxie.pipeline.classifier import ClassifierStage
from inboxie.pipeline.fetcher import BatchFetcher
from inboxie.pipeline.isolation import call
from inboxie.pipeline.labels import LabelReconciler
from inboxie.pipeline.persist import ApplyPersistStage, PersistResult
from inboxie.pipeline.ratelimit import TokenBucket

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Dict[str, Any]], None]


class Orchestrator:
    """
    Drive batches of FETCHING -> CLASSIFYING -> LABELING -> PERSISTING until
    the mailbox has nothing new, the quota or a ceiling is hit, or the run is cancelled.

    Adapters are injected; label cache, processed ids and totals live for one run.
    """

    def __init__(
        self,
        gmail: Any,
        llm: Any,
        store: Any,
        *,
        config: Optional[PipelineConfig] = None,
        label_prefix: str = "",
        progress_cb: Optional[ProgressCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or PipelineConfig()
        self._gmail = gmail
        self._llm = llm
        self._store = store
        self._label_prefix = label_prefix
        self._progress_cb = progress_cb
        self._sleep = sleep

    def _report(self, step: str, *, detail: Optional[str] = None, **extra: Any) -> None:
        if not self._progress_cb:
            return
        payload: Dict[str, Any] = {"detail": detail}
        payload.update(extra)
        self._progress_cb(step, payload)

    @staticmethod
    def _tally(summary: RunSummary, result: PersistResult) -> None:
        summary.processed += result.persisted
        summary.failed += result.failed
        summary.labeled += result.labeled
        summary.label_failed += result.label_failed
        for record in result.records:
            key = record.category.value
            summary.by_category[key] = summary.by_category.get(key, 0) + 1
            if record.needs_reply:
                summary.needs_reply += 1
                summary.by_urgency[record.urgency] = summary.by_urgency.get(record.urgency, 0) + 1

    async def run(
        self,
        user_id: str,
        *,
        batch_size: Optional[int] = None,
        email_limit: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> RunSummary:
        cfg = self.config
        batch_size = batch_size or cfg.default_batch_size
        started = time.perf_counter()
        summary = RunSummary()

        gmail_bucket = TokenBucket(cfg.gmail_rate, name="gmail")
        llm_bucket = TokenBucket(cfg.llm_rate, name="llm")
        fetcher = BatchFetcher(self._gmail, config=cfg, limiter=gmail_bucket)
        classifier = ClassifierStage(self._llm, config=cfg, limiter=llm_bucket)
        labels = LabelReconciler(self._gmail, config=cfg, limiter=gmail_bucket, prefix=self._label_prefix)
        persist = ApplyPersistStage(self._gmail, self._store, config=cfg, limiter=gmail_bucket)

        quota: Optional[UserQuota] = None
        processed_ids: Optional[Set[str]] = None

        logger.info("[run] user_id=%s batch_size=%d email_limit=%s", user_id, batch_size, email_limit)
        try:
            while True:
                if cancel is not None and cancel.is_set():
                    summary.status = "cancelled"
                    break
                if summary.batches >= cfg.max_batches:
                    summary.status = "batch_limit"
                    break
                if email_limit is not None and summary.processed >= email_limit:
                    summary.status = "email_limit"
                    break

                self._report("check_quota", detail="Checking quota")
                quota = await call(self._store.check_limits, user_id, timeout=cfg.call_timeout)
                if not quota.can_process:
                    if summary.batches == 0:
                        raise QuotaExceeded(quota)
                    summary.status = "quota_exhausted"
                    break

                n = min(batch_size, quota.remaining)
                if email_limit is not None:
                    n = min(n, email_limit - summary.processed)

                if processed_ids is None:
                    processed_ids = set(
                        await call(self._store.list_processed_ids, user_id, timeout=cfg.call_timeout)
                    )

                batch_no = summary.batches + 1
                self._report("fetching", detail=f"Fetching batch {batch_no}", batch=batch_no, requested=n)
                fetched = await fetcher.fetch(n, processed_ids)
                summary.fetched += len(fetched.messages)
                summary.failed += len(fetched.failed)
                # Selected ids that all failed to load do not mean the inbox is done.
                if not fetched.messages and (fetched.exhausted or not fetched.failed):
                    summary.status = "complete"
                    break

                if fetched.messages:
                    self._report("classifying", detail=f"Classifying {len(fetched.messages)} messages", batch=batch_no)
                    classifications = await classifier.classify(fetched.messages)

                    self._report("labeling", detail="Applying labels", batch=batch_no)
                    label_map = await labels.reconcile(c.category.category for c in classifications)

                    self._report("persisting", detail="Saving results", batch=batch_no)
                    result = await persist.apply_and_persist(user_id, classifications, label_map)

                    processed_ids.update(m.message_id for m in fetched.messages)
                    self._tally(summary, result)
                    quota = replace(quota, emails_processed=quota.emails_processed + result.persisted)
                else:
                    result = PersistResult()

                summary.batches += 1
                logger.info(
                    "[batch] n=%d processed=%d failed=%d labeled=%d",
                    batch_no,
                    result.persisted,
                    result.failed + len(fetched.failed),
                    result.labeled,
                )
                self._report("batch_done", detail=f"Batch {batch_no} done", metrics=asdict(summary))

                if fetched.exhausted:
                    summary.status = "complete"
                    break
                await self._sleep(cfg.batch_delay)

        except QuotaExceeded as exc:
            logger.info("[run] user_id=%s quota exceeded before processing", user_id)
            summary.status = "quota_exceeded"
            summary.error = exc.to_dict()
        except InboxieError as exc:
            logger.exception("[run] user_id=%s halted after %d batches", user_id, summary.batches)
            summary.status = "failed"
            summary.error = exc.to_dict()
        except Exception as exc:
            logger.exception("[run] user_id=%s crashed after %d batches", user_id, summary.batches)
            summary.status = "failed"
            summary.error = InboxieError(f"Unexpected error: {type(exc).__name__}: {exc}").to_dict()

        summary.quota = quota.to_dict() if quota is not None else None
        summary.elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "[run] user_id=%s status=%s batches=%d processed=%d failed=%d elapsed_ms=%d",
            user_id,
            summary.status,
            summary.batches,
            summary.processed,
            summary.failed,
            summary.elapsed_ms,
        )
        self._report("done", detail="Run completed", metrics=asdict(summary))
        return summary
