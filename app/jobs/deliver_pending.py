"""
Delivery sweep job for queued submissions (delivery_mode=worker).

Delivers due pending_send submissions to the target chat. Can be run as a
CLI command or scheduled via cron, as an alternative to POST /worker/deliver.
"""

import asyncio
import logging
import sys

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.services.delivery import run_delivery_sweep

logger = logging.getLogger(__name__)


def run_sweep(limit: int | None = None) -> dict:
    """
    Run one delivery sweep with its own session.

    Args:
        limit: Maximum number of submissions to deliver in this run

    Returns:
        {"processed": int, "errors": list[str], "duration_ms": int}
    """
    db: Session = SessionLocal()
    try:
        return asyncio.run(run_delivery_sweep(db, batch_limit=limit))
    finally:
        db.close()


def main() -> None:
    """CLI entrypoint for the delivery sweep."""
    import argparse

    parser = argparse.ArgumentParser(description="Deliver queued photo submissions")
    parser.add_argument(
        "--limit",
        type=int,
        default=settings.worker_batch_limit,
        help=f"Maximum number of submissions to deliver (default: {settings.worker_batch_limit})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info(f"Starting delivery sweep (limit={args.limit})")

    try:
        results = run_sweep(limit=args.limit)

        logger.info(
            f"Sweep completed: processed={results['processed']}, "
            f"errors={len(results['errors'])}, duration_ms={results['duration_ms']}"
        )

        # Exit with error code if there were failures
        if results["errors"]:
            sys.exit(1)

    except Exception as e:
        logger.error(f"Delivery sweep job failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
