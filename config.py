import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as detailslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "detailslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Slot dates/times are wall-clock times in the business timezone
    BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "Europe/London")

    # Identity is established upstream; the gateway forwards these headers
    ACTOR_ID_HEADER = "X-Actor-Id"
    ACTOR_ROLE_HEADER = "X-Actor-Role"

    BOOKING_REFERENCE_PREFIX = os.getenv("BOOKING_REFERENCE_PREFIX", "L4D")

    # Business policy defaults (fees in pence); overridable via business_policies table
    CANCELLATION_WINDOW_HOURS = int(os.getenv("CANCELLATION_WINDOW_HOURS", "24"))
    LATE_CANCELLATION_FEE = int(os.getenv("LATE_CANCELLATION_FEE", "0"))
    RESCHEDULE_WINDOW_HOURS = int(os.getenv("RESCHEDULE_WINDOW_HOURS", "24"))
    RESCHEDULE_FEE = int(os.getenv("RESCHEDULE_FEE", "0"))
    MAX_RESCHEDULES = int(os.getenv("MAX_RESCHEDULES", "3"))

    # Used by `flask expire-reschedules` when --hours is not given
    RESCHEDULE_REQUEST_TTL_HOURS = int(os.getenv("RESCHEDULE_REQUEST_TTL_HOURS", "48"))

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}
    LOG_LEVEL = "WARNING"
    CREATE_TABLES = True
