from pathlib import Path
import os

import dj_database_url
import sentry_sdk
from dotenv import load_dotenv
from sentry_sdk.integrations.django import DjangoIntegration


BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")  # explicit .env location

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY") or os.getenv("SECRET_KEY") or "dev-key"


def _get_bool_env(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.lower() in {"1", "true", "yes", "on"}


def _get_list_env(name: str) -> list[str]:
    raw_value = os.getenv(name, "")
    if not raw_value:
        return []
    parts = raw_value.replace(";", ",").split(",")
    return [p.strip() for p in parts if p.strip()]


DEBUG = _get_bool_env("DJANGO_DEBUG", _get_bool_env("DEBUG", True))

ALLOWED_HOSTS = list(dict.fromkeys(["localhost", "127.0.0.1"] + _get_list_env("DJANGO_ALLOWED_HOSTS")))

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",

    # Project apps
    "core",
    "payroll",
]

default_db = "sqlite:///" + str((BASE_DIR / "db.sqlite3").resolve())
database_url = os.getenv("DATABASE_URL", default_db)
DATABASES = {"default": dj_database_url.parse(database_url)}

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "America/New_York")
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# --- Ledger ---

# Largest debit/credit difference a journal entry may carry.
LEDGER_BALANCE_TOLERANCE = os.getenv("LEDGER_BALANCE_TOLERANCE", "0.01")
LEDGER_ENTRY_NUMBER_MAX_ATTEMPTS = int(os.getenv("LEDGER_ENTRY_NUMBER_MAX_ATTEMPTS", "5"))
LEDGER_SEED_CHART_ON_BUSINESS_CREATE = _get_bool_env("LEDGER_SEED_CHART_ON_BUSINESS_CREATE", False)

# --- Bank reconciliation ---

RECONCILIATION_MATCH_TOLERANCE_DAYS = int(os.getenv("RECONCILIATION_MATCH_TOLERANCE_DAYS", "7"))
RECONCILIATION_MATCH_AMOUNT_TOLERANCE = os.getenv("RECONCILIATION_MATCH_AMOUNT_TOLERANCE", "0.01")

# --- Sentry ---

SENTRY_DSN = os.getenv("SENTRY_DSN", "")

if not DEBUG and SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        integrations=[DjangoIntegration()],
        traces_sample_rate=0.1,
        send_default_pii=False,
        environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
    )

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "core": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
        },
        "payroll": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
        },
    },
}
