from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from time import time
from typing import Any, Dict, List, Optional

from inboxie.errors import RunInProgress


@dataclass
class RunStatus:
    state: str = "idle"
    step: str = "idle"
    detail: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    summary: Optional[Dict[str, Any]] = None
    # Rolling window of recent errors for UI visibility.
    recent_errors: List[Dict[str, Any]] = field(default_factory=list)
    updated_at: float = field(default_factory=time)


class RunStatusStore:
    """Per-user run status. At most one run per user is active at a time."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._status: Dict[str, RunStatus] = {}

    def begin(self, user_id: str) -> None:
        with self._lock:
            current = self._status.get(user_id)
            if current is not None and current.state == "running":
                raise RunInProgress("A processing run is already in progress for this user.")
            self._status[user_id] = RunStatus(state="running", step="starting", detail="Starting run")

    def update(self, user_id: str, **fields: Any) -> None:
        # Lock keeps polling snapshots consistent across threads.
        with self._lock:
            status = self._status.setdefault(user_id, RunStatus())
            for key, value in fields.items():
                if hasattr(status, key):
                    setattr(status, key, value)
            status.updated_at = time()

    def snapshot(self, user_id: str) -> Dict[str, Any]:
        with self._lock:
            status = self._status.get(user_id) or RunStatus()
            return {
                "state": status.state,
                "step": status.step,
                "detail": status.detail,
                "metrics": dict(status.metrics),
                "summary": status.summary,
                "recent_errors": list(status.recent_errors),
                "updated_at": status.updated_at,
            }


run_status_store = RunStatusStore()
