from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from inboxie.errors import AuthenticationFailed, ConfigurationError, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that make continuing the run pointless.
FATAL_ERRORS = (AuthenticationFailed, ConfigurationError)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[Exception] = None

    @property
    def error_text(self) -> str:
        if self.error is None:
            return ""
        return f"{type(self.error).__name__}: {self.error}"


async def call(fn: Callable[..., T], *args: Any, timeout: Optional[float] = None, **kwargs: Any) -> T:
    """Run a blocking adapter call in a worker thread, bounded by timeout."""
    task = asyncio.to_thread(functools.partial(fn, *args, **kwargs))
    try:
        return await asyncio.wait_for(task, timeout=timeout)
    except asyncio.TimeoutError as exc:
        name = getattr(fn, "__name__", "call")
        raise ProviderError(f"{name} timed out after {timeout}s") from exc


async def isolate(action: str, fn: Callable[..., T], *args: Any, timeout: Optional[float] = None, **kwargs: Any) -> Outcome[T]:
    """
    Run one per-message/per-label operation and record its result.

    Failures are logged and returned as Outcome(ok=False); only FATAL_ERRORS escape.
    """
    try:
        value = await call(fn, *args, timeout=timeout, **kwargs)
    except FATAL_ERRORS:
        raise
    except Exception as exc:
        logger.warning("[isolated] action=%s err=%s: %s", action, type(exc).__name__, exc)
        return Outcome(ok=False, error=exc)
    return Outcome(ok=True, value=value)
