from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from inboxie.config.settings import PipelineConfig
from inboxie.errors import ProviderError
from inboxie.gmail.label_colors import color_for
from inboxie.models import Category
from inboxie.pipeline.isolation import isolate
from inboxie.pipeline.ratelimit import TokenBucket

logger = logging.getLogger(__name__)


class LabelReconciler:
    """
    Map categories to Gmail label ids, creating missing labels once per run.
    Lookups are case-insensitive on the display name.
    """

    def __init__(
        self,
        gmail: Any,
        *,
        config: PipelineConfig,
        limiter: TokenBucket,
        prefix: str = "",
    ) -> None:
        self._gmail = gmail
        self._config = config
        self._limiter = limiter
        self._prefix = prefix
        # lower-cased name -> label id; None until the mailbox labels are listed.
        self._cache: Optional[Dict[str, str]] = None

    def label_name(self, category: Category) -> str:
        return f"{self._prefix}{category.value}"

    async def _refresh(self) -> bool:
        await self._limiter.acquire()
        outcome = await isolate("list_labels", self._gmail.list_labels, timeout=self._config.call_timeout)
        if not outcome.ok:
            return False
        self._cache = {label.name.lower(): label.label_id for label in outcome.value if label.name}
        return True

    async def _create(self, category: Category, name: str) -> None:
        await self._limiter.acquire()
        outcome = await isolate(
            f"create_label {name}",
            self._gmail.create_label,
            name,
            color_for(category.value),
            timeout=self._config.call_timeout,
        )
        if outcome.ok and outcome.value:
            self._cache[name.lower()] = outcome.value
            logger.info("[label] created name=%s id=%s", name, outcome.value)
            return

        if isinstance(outcome.error, ProviderError) and outcome.error.status == 409:
            # Created elsewhere since we listed; pick it up.
            logger.info("[label] conflict name=%s, reloading labels", name)
            if await self._refresh() and name.lower() in self._cache:
                return
        logger.warning("[label] unmapped name=%s for this run", name)

    async def reconcile(self, categories: Iterable[Category]) -> Dict[Category, str]:
        if self._cache is None and not await self._refresh():
            logger.warning("[label] could not list labels; batch stays unlabeled")
            return {}

        mapping: Dict[Category, str] = {}
        for category in sorted(set(categories), key=lambda c: c.value):
            name = self.label_name(category)
            if name.lower() not in self._cache:
                await self._create(category, name)
            label_id = self._cache.get(name.lower())
            if label_id:
                mapping[category] = label_id
        return mapping
