from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_DIR_ENV_VAR = "INBOXIE_LOG_DIR"
LOG_LEVEL_ENV_VAR = "INBOXIE_LOG_LEVEL"


def _running_in_cloud() -> bool:
    cloud_markers = (
        "K_SERVICE",
        "CLOUD_RUN_SERVICE",
        "CLOUD_RUN_JOB",
        "VERCEL",
    )
    return any(os.getenv(marker) for marker in cloud_markers)


def configure_logging() -> Optional[Path]:
    """
    Ensure logging is configured for the current process.

    Returns the active log file path when running locally, otherwise None.
    """
    if getattr(configure_logging, "_configured", False):
        return getattr(configure_logging, "_log_path", None)

    log_path: Optional[Path] = None
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if not _running_in_cloud():
        log_dir = Path(os.getenv(LOG_DIR_ENV_VAR, "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = log_dir / f"inboxie_{timestamp}.log"
        handlers.append(logging.FileHandler(log_path, mode="w", encoding="utf-8"))

    level = logging.getLevelName(os.getenv(LOG_LEVEL_ENV_VAR, "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=handlers,
        force=True,
    )

    configure_logging._configured = True  # type: ignore[attr-defined]
    configure_logging._log_path = log_path  # type: ignore[attr-defined]
    return log_path
