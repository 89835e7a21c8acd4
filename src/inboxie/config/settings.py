import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env once, globally
load_dotenv()

# Project root (independent of current working directory).
PROJECT_ROOT = Path(__file__).resolve().parents[3]


def resolve_dir(env_key: str, default: str) -> Path:
    """
    Resolve a directory path from ENV.
    Relative paths are resolved against PROJECT_ROOT.
    """
    value = os.getenv(env_key, default)
    path = Path(value)

    if not path.is_absolute():
        path = PROJECT_ROOT / path

    return path


def _env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() == "true"


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str]
    openai_model: str
    openai_reply_model: str
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    alpha_mode: bool
    secrets_dir: Path
    # Prepended to every category label name, e.g. "Inboxie/".
    label_prefix: str = ""


@dataclass(frozen=True)
class PipelineConfig:
    # Gmail list page size (API maximum we rely on).
    page_size: int = 50
    # Hard ceiling on ids listed in one fetch.
    max_fetch: int = 500
    # Concurrent detail fetches per wave.
    fetch_wave_size: int = 10
    classify_chunk_size: int = 5
    persist_chunk_size: int = 10
    max_batches: int = 20
    default_batch_size: int = 10
    reply_window_days: int = 14
    # Seconds; applied to every adapter call made by the pipeline.
    call_timeout: float = 30.0
    # Requests per second. None disables throttling.
    gmail_rate: Optional[float] = 10.0
    llm_rate: Optional[float] = 20.0
    batch_delay: float = 0.5


def load_settings() -> Settings:
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("INBOXIE_OPENAI_MODEL", "gpt-4o-mini"),
        openai_reply_model=os.getenv("INBOXIE_OPENAI_REPLY_MODEL", "gpt-4o"),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY"),
        alpha_mode=_env_flag("ALPHA_MODE"),
        secrets_dir=resolve_dir("INBOXIE_SECRETS_DIR", "secrets"),
        label_prefix=os.getenv("INBOXIE_LABEL_PREFIX", ""),
    )
