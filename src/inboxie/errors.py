from __future__ import annotations

from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from inboxie.models import UserQuota


class InboxieError(Exception):
    """Base error. status_code is the HTTP status the API layer answers with."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, data: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data:
            payload["data"] = dict(self.data)
        return payload


class ConfigurationError(InboxieError):
    code = "configuration_error"


class AuthenticationFailed(InboxieError):
    status_code = 401
    code = "authentication_failed"


class QuotaExceeded(InboxieError):
    status_code = 429
    code = "quota_exceeded"

    def __init__(self, quota: "UserQuota") -> None:
        if quota.plan_type == "free":
            message = "Email limit reached. Upgrade to Pro for more emails!"
        else:
            message = "Email limit reached."
        super().__init__(
            message,
            data={
                "planType": quota.plan_type,
                "emailsProcessed": quota.emails_processed,
                "limit": quota.limit,
            },
        )
        self.quota = quota


class FeatureNotAvailable(InboxieError):
    status_code = 403
    code = "feature_not_available"


class NotFound(InboxieError):
    status_code = 404
    code = "not_found"


class RunInProgress(InboxieError):
    status_code = 409
    code = "run_in_progress"


class ProviderError(InboxieError):
    status_code = 502
    code = "provider_error"

    def __init__(self, message: str, *, status: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        # HTTP status reported by the upstream provider, if any.
        self.status = status


class DatastoreError(InboxieError):
    code = "datastore_error"


class MalformedOutput(InboxieError):
    code = "malformed_output"


class InvalidRequest(InboxieError):
    status_code = 400
    code = "invalid_request"
