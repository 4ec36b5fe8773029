import datetime, logging
from cabhub.src.db import sessionMaker, AccountToken
from sqlalchemy.orm import Session
from sqlalchemy import delete

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Cleaner")


def removeExpiredTokens(session: Session) -> int:
    currentTime = datetime.datetime.now(datetime.timezone.utc)
    result = session.execute(
        delete(AccountToken).where(AccountToken.expires_at < currentTime)
    )
    session.commit()
    deletedCount = result.rowcount
    logger.info(f"Removed {deletedCount} tokens from {AccountToken.__tablename__} table")
    return deletedCount


def main():
    try:
        with sessionMaker() as session:
            removeExpiredTokens(session)
    except Exception:
        logger.exception("cleaner.py failed")


if __name__ == "__main__":
    main()
