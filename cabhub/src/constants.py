"""
Application configuration and constants for CabHub API Server.

This module centralizes environment-based configuration, resource limits,
booking lifecycle timings, timezones, and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ
from zoneinfo import ZoneInfo


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "CabHub API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@cabhub.com")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "cabhub")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "cabhub-core-server")


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")

# Pub/sub channel prefix of the row change feed
CHANGE_FEED_PREFIX = "changes"


# ---------------------------------------------------------------------------
# Resource upper limits
# ---------------------------------------------------------------------------
MAX_ACCOUNT_TOKENS = 5  # Maximum tokens per account
MAX_TOKEN_VALIDITY = 7 * 24 * 60 * 60  # Token validity (in seconds, 7 days)


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_REGISTRATION_NUMBER = r"^[A-Z]{2}[0-9]{2}[A-Z]{0,2}[0-9]{1,4}$"


# ---------------------------------------------------------------------------
# Booking lifecycle constants
# ---------------------------------------------------------------------------
BOOKING_NUMBER_PREFIX = "BK"
PICKUP_TIME_TOLERANCE = int(
    environ.get("PICKUP_TIME_TOLERANCE", 5 * 60)
)  # Allowed pickup lag behind now (in seconds)
VISIBILITY_PROMOTION_DELAY = int(
    environ.get("VISIBILITY_PROMOTION_DELAY", 30 * 60)
)  # Age of a pending booking before it is opened to market (in seconds)
PROMOTION_INTERVAL = int(
    environ.get("PROMOTION_INTERVAL", 60)
)  # Sleep between promoter passes (in seconds)
MIN_RATING = 1
MAX_RATING = 5


# ---------------------------------------------------------------------------
# Timezone constants
# ---------------------------------------------------------------------------
TMZ_PRIMARY = ZoneInfo("UTC")


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)
