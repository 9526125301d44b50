"""
Scheduler entry point for the periodic sweeps.

    python -m app.maintenance sweep-deliveries
    python -m app.maintenance close-auctions
    python -m app.maintenance all

Each run is one pass; scheduling (cron, k8s CronJob, ...) lives outside.
"""
import argparse
import logging
import sys

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.auction_service import AuctionService

logger = logging.getLogger("app.maintenance")

TASKS = ("sweep-deliveries", "close-auctions", "all")


def run(task: str, db: Session) -> dict:
    svc = AuctionService()
    result = {}
    if task in ("close-auctions", "all"):
        result["closed"] = svc.close_ended_auctions(db)
    if task in ("sweep-deliveries", "all"):
        result["expired"] = [str(pid) for pid in svc.sweep_expired_deliveries(db)]
    return result


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="app.maintenance", description=__doc__.splitlines()[1])
    parser.add_argument("task", choices=TASKS)
    args = parser.parse_args(argv)

    configure_logging(get_settings())

    db: Session = SessionLocal()
    try:
        result = run(args.task, db)
    finally:
        db.close()

    logger.info("[maintenance] task=%s result=%s", args.task, result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
