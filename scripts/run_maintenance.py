"""
External runner for the periodic booking jobs (cron / systemd timer):

    python scripts/run_maintenance.py release   [--minutes 30]
    python scripts/run_maintenance.py cleanup
    python scripts/run_maintenance.py restore
    python scripts/run_maintenance.py reminders
"""

import argparse
import logging

from nailbook.database import SessionLocal
from nailbook.redis_client import redis_client
from nailbook.services.bookings.recovery import restore_missing_slots
from nailbook.services.bookings.sweeper import release_expired_pending_bookings
from nailbook.services.events import EventEmitter
from nailbook.services.reminder_checker import check_upcoming_bookings
from nailbook.services.slots.store import delete_expired_slots

logger = logging.getLogger("nailbook.maintenance")


def main():
    parser = argparse.ArgumentParser(description="Run a booking maintenance job once")
    parser.add_argument("job", choices=["release", "cleanup", "restore", "reminders"])
    parser.add_argument("--minutes", type=int, default=None, help="release threshold override")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    events = EventEmitter(redis_client)
    events.start()
    db = SessionLocal()
    try:
        if args.job == "release":
            result = release_expired_pending_bookings(db, args.minutes, events=events)
            logger.info(f"released={result.released} skipped={len(result.skipped)} failed={len(result.failed)}")
        elif args.job == "cleanup":
            logger.info(f"deleted={delete_expired_slots(db)}")
        elif args.job == "restore":
            report = restore_missing_slots(db, events=events)
            for failure in report.failed:
                logger.warning(f"{failure.booking_code}: {'; '.join(failure.diagnostics)}")
        else:
            logger.info(f"reminders={check_upcoming_bookings(db, redis_client, events)}")
    finally:
        db.close()
        events.stop()


if __name__ == "__main__":
    main()
