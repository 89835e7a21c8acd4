import argparse
import json
import logging

from inboxie.app.run import run_once
from inboxie.logging_utils import configure_logging

logger = logging.getLogger("inboxie.scripts.run_once")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process the local user's Gmail inbox once.")
    parser.add_argument("--batch-size", type=int, default=None, help="Messages per batch (default: plan batch size)")
    parser.add_argument("--email-limit", type=int, default=None, help="Stop after this many processed messages")
    parser.add_argument("--verbose", action="store_true", help="Log every pipeline step")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    log_path = configure_logging()
    if log_path:
        logger.info("Logging to %s", log_path)

    def progress_cb(step: str, event: dict) -> None:
        if args.verbose:
            logger.info("[progress] step=%s detail=%s", step, event.get("detail"))

    summary = run_once(
        batch_size=args.batch_size,
        email_limit=args.email_limit,
        progress_cb=progress_cb,
    )
    print(json.dumps(summary, indent=2, default=str))
    if summary.get("status") in ("failed", "quota_exceeded"):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
