from __future__ import annotations

from typing import Any, Dict, List

from inboxie.models import URGENCY_LEVELS


def user_stats(store: Any, user_id: str) -> Dict[str, Any]:
    """Quota usage, per-category counts and pending replies grouped by urgency."""
    quota = store.check_limits(user_id)
    counts = store.category_counts(user_id)

    pending: Dict[str, List[Dict[str, Any]]] = {level: [] for level in URGENCY_LEVELS}
    for record in store.pending_replies(user_id):
        pending.setdefault(record.urgency, []).append(
            {
                "id": record.message_id,
                "threadId": record.thread_id,
                "category": record.category.value,
                "reason": record.reply_reason,
                "urgency": record.urgency,
                "receivedAt": record.received_at.isoformat(),
            }
        )

    return {
        "quota": quota.to_dict(),
        "categoryCounts": counts,
        "totalProcessed": sum(counts.values()),
        "pendingReplies": pending,
        "pendingReplyCount": sum(len(items) for items in pending.values()),
    }
