from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set

from inboxie.config.settings import PipelineConfig
from inboxie.models import Message
from inboxie.parsing.parser import parse_message
from inboxie.pipeline.isolation import FATAL_ERRORS, call, isolate
from inboxie.pipeline.ratelimit import TokenBucket

logger = logging.getLogger(__name__)

INBOX_QUERY = "in:inbox"


@dataclass(frozen=True)
class FetchResult:
    messages: List[Message] = field(default_factory=list)
    # Ids seen while listing, processed ones included.
    listed: int = 0
    # Selected ids whose details could not be loaded.
    failed: List[str] = field(default_factory=list)
    # True when the listing reached the end of the mailbox with nothing left over.
    exhausted: bool = False


class BatchFetcher:
    """
    Collect up to n unprocessed inbox messages, fetching details in concurrent waves.

    Ids whose details fail to load are remembered and not selected again by
    this fetcher, so one fetcher belongs to one run.
    """

    def __init__(
        self,
        gmail: Any,
        *,
        config: PipelineConfig,
        limiter: TokenBucket,
        query: str = INBOX_QUERY,
    ) -> None:
        self._gmail = gmail
        self._config = config
        self._limiter = limiter
        self._query = query
        self._failed: Set[str] = set()

    async def _list_new_ids(self, n: int, processed_ids: Set[str]):
        cfg = self._config
        new_ids: List[str] = []
        listed = 0
        page_token: Optional[str] = None
        end_of_mailbox = False
        first_page = True

        while len(new_ids) < n and listed < cfg.max_fetch:
            await self._limiter.acquire()
            try:
                page = await call(
                    self._gmail.list_messages,
                    self._query,
                    page_token,
                    cfg.page_size,
                    timeout=cfg.call_timeout,
                )
            except FATAL_ERRORS:
                raise
            except Exception as exc:
                if first_page:
                    raise
                logger.warning("[fetch] list page failed after %d ids: %s: %s", listed, type(exc).__name__, exc)
                break
            first_page = False

            listed += len(page.ids)
            for mid in page.ids:
                if mid not in processed_ids and mid not in self._failed and mid not in new_ids:
                    new_ids.append(mid)

            if len(page.ids) < cfg.page_size or not page.next_page_token:
                end_of_mailbox = True
                break
            page_token = page.next_page_token

        exhausted = end_of_mailbox and len(new_ids) <= n
        return new_ids[:n], listed, exhausted

    def _load(self, message_id: str) -> Message:
        return parse_message(self._gmail.get_message(message_id))

    async def _fetch_one(self, message_id: str):
        await self._limiter.acquire()
        return await isolate(
            f"get_message {message_id}",
            self._load,
            message_id,
            timeout=self._config.call_timeout,
        )

    async def fetch(self, n: int, processed_ids: Set[str]) -> FetchResult:
        if n <= 0:
            return FetchResult()

        ids, listed, exhausted = await self._list_new_ids(n, processed_ids)
        logger.info("[fetch] listed=%d new=%d exhausted=%s", listed, len(ids), exhausted)

        messages: List[Message] = []
        failed: List[str] = []
        wave = max(1, self._config.fetch_wave_size)
        for start in range(0, len(ids), wave):
            wave_ids = ids[start:start + wave]
            outcomes = await asyncio.gather(*(self._fetch_one(mid) for mid in wave_ids))
            for mid, outcome in zip(wave_ids, outcomes):
                if outcome.ok:
                    messages.append(outcome.value)
                else:
                    failed.append(mid)

        if failed:
            self._failed.update(failed)
            logger.warning("[fetch] skipped=%d messages whose details could not be loaded", len(failed))
        return FetchResult(messages=messages, listed=listed, failed=failed, exhausted=exhausted)
