"""
Opens stale associated bookings to the open market.

A PENDING booking that no associated vendor has taken within
`VISIBILITY_PROMOTION_DELAY` seconds becomes visible to every vendor.
Several promoter processes may run, a Redis lock keeps passes exclusive.
"""

import time
import logging
from datetime import datetime, timedelta, timezone
from typing import List
from sqlalchemy.orm import Session

from cabhub.src.constants import PROMOTION_INTERVAL, VISIBILITY_PROMOTION_DELAY
from cabhub.src.db import sessionMaker, Booking
from cabhub.src.lifecycle import promoteStaleBookings
from cabhub.src.redis import acquireLock, releaseLock

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Promoter")


def promoteOnce(session: Session) -> List[int]:
    lock = None
    try:
        lock = acquireLock(Booking.__tablename__)
        cutoff = datetime.now(timezone.utc) - timedelta(
            seconds=VISIBILITY_PROMOTION_DELAY
        )
        promoted = promoteStaleBookings(session, cutoff)
        if promoted:
            logger.info(f"Opened {len(promoted)} bookings to market: {promoted}")
        return promoted
    finally:
        releaseLock(lock)


def runPromoter(session: Session):
    while True:
        try:
            promoteOnce(session)
        except Exception:
            session.rollback()
            logger.exception("Promoter loop failed")
        finally:
            time.sleep(PROMOTION_INTERVAL)


def main():
    try:
        with sessionMaker() as session:
            runPromoter(session)
    except Exception:
        logger.exception("promoter.py failed")


if __name__ == "__main__":
    main()
