import os
from dotenv import load_dotenv
import sentry_sdk

load_dotenv()

# Sentry goes first so import-time failures in the farm modules are reported
_sentry_dsn = os.getenv("SENTRY_DSN")
if _sentry_dsn:
    sentry_sdk.init(
        dsn=_sentry_dsn,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        environment=os.getenv("FLASK_ENV", "production"),
    )

# Read directly by their modules rather than through Config:
#   DATABASE_URL, DATA_DIR    -> db.py
#   REDIS_URL                 -> cache.py
#   OPENWEATHER_API_KEY       -> weather_service.py
#   LOG_DIR, LOG_FORMAT       -> logging_config.py


def _flag(name, default):
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


class Config:
    # Flask
    FLASK_SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "happyharvests-secret-key-change-in-production")
    DEBUG = _flag("FLASK_DEBUG", "false")
    PORT = int(os.getenv("FLASK_PORT", "5001"))
    SESSION_HOURS = int(os.getenv("SESSION_HOURS", "8"))

    # Every request runs as user 1 with admin rights
    DEMO_MODE = _flag("DEMO_MODE", "false")

    # Active nursery sowings allowed per nursery per day
    DAILY_NURSERY_SOW_LIMIT = int(os.getenv("DAILY_NURSERY_SOW_LIMIT", "20"))
    # Non-removed plantings allowed per bed per planted date
    DAILY_BED_PLANT_LIMIT = int(os.getenv("DAILY_BED_PLANT_LIMIT", "5"))

    # Page cache for list reads; redis when REDIS_URL answers, diskcache otherwise
    PAGE_CACHE_ENABLED = _flag("PAGE_CACHE_ENABLED", "true")
    PAGE_CACHE_TTL = int(os.getenv("PAGE_CACHE_TTL", "300"))  # seconds
