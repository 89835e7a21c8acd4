# src/inboxie/app/run.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional

from inboxie.config.plans import get_plan_config
from inboxie.config.settings import PipelineConfig, Settings, load_settings
from inboxie.errors import ConfigurationError
from inboxie.gmail.client import GmailClient, GmailClientConfig
from inboxie.llm.client import OpenAIClient
from inboxie.models import RunSummary, UserAccount
from inboxie.pipeline.isolation import call
from inboxie.pipeline.orchestrator import Orchestrator
from inboxie.storage.supabase_store import SupabaseStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    gmail: Any
    llm: Any
    store: Any


def load_gmail_config(settings: Settings, access_token: Optional[str] = None) -> GmailClientConfig:
    """Access token for the HTTP path; cached token + client secrets for local CLI runs."""
    if access_token:
        return GmailClientConfig(access_token=access_token)

    credentials_path = settings.secrets_dir / "credentials.json"
    if not credentials_path.exists():
        raise ConfigurationError(
            f"Missing Gmail credentials at {credentials_path}. "
            "Did you configure INBOXIE_SECRETS_DIR?"
        )
    return GmailClientConfig(
        credentials_path=credentials_path,
        token_path=settings.secrets_dir / "gmail_token.json",
        user_id="me",
    )


def build_services(settings: Settings, access_token: Optional[str] = None) -> Services:
    gmail = GmailClient(load_gmail_config(settings, access_token))
    gmail.connect()
    llm = OpenAIClient(
        settings.openai_api_key,
        model=settings.openai_model,
        reply_model=settings.openai_reply_model,
    )
    store = SupabaseStore(settings.supabase_url, settings.supabase_key, alpha_mode=settings.alpha_mode)
    return Services(gmail=gmail, llm=llm, store=store)


def resolve_user(services: Services) -> UserAccount:
    email = (services.gmail.get_profile().get("emailAddress") or "").strip().lower()
    if not email:
        raise ConfigurationError("Could not resolve the authenticated Gmail address.")
    return services.store.get_or_create_user(email)


async def process_mailbox(
    services: Services,
    user_id: str,
    *,
    label_prefix: str = "",
    batch_size: Optional[int] = None,
    email_limit: Optional[int] = None,
    config: Optional[PipelineConfig] = None,
    progress_cb: Optional[Callable[[str, Dict[str, Any]], None]] = None,
    cancel: Optional[asyncio.Event] = None,
) -> RunSummary:
    """Run the orchestrator once for a user. Batch size defaults to the plan's."""
    config = config or PipelineConfig()
    if batch_size is None:
        quota = await call(services.store.check_limits, user_id, timeout=config.call_timeout)
        batch_size = get_plan_config(quota.plan_type).batch_size

    orchestrator = Orchestrator(
        services.gmail,
        services.llm,
        services.store,
        config=config,
        label_prefix=label_prefix,
        progress_cb=progress_cb,
    )
    return await orchestrator.run(user_id, batch_size=batch_size, email_limit=email_limit, cancel=cancel)


def run_once(
    *,
    batch_size: Optional[int] = None,
    email_limit: Optional[int] = None,
    progress_cb: Optional[Callable[[str, Dict[str, Any]], None]] = None,
) -> Dict[str, Any]:
    """
    Execute a single local processing run and return a machine-readable summary.

    Uses the cached OAuth token in the secrets dir (browser login on first use).
    """
    settings = load_settings()
    services = build_services(settings)
    account = resolve_user(services)
    logger.info("[run] connected as %s plan=%s", account.email, account.plan_type)

    summary = asyncio.run(
        process_mailbox(
            services,
            account.user_id,
            label_prefix=settings.label_prefix,
            batch_size=batch_size,
            email_limit=email_limit,
            progress_cb=progress_cb,
        )
    )
    return asdict(summary)
