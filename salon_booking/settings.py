# salon_booking/settings.py
#
# Purpose:
# - Django settings for the salon scheduling service.
#
# Notes for developers:
# - Every value can be overridden through environment variables so the same
#   file works for local development (SQLite, console email) and production
#   (PostgreSQL, SMTP).
# - SALON_BOOKING holds the booking-rule defaults. Individual salons may
#   override most of them (see salons.models.Salon and
#   booking.services.rules.get_booking_rules).
#
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key-change-me")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "127.0.0.1,localhost,testserver").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "salons",
    "booking",
    "schedules",
    "notifications",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "salon_booking.urls"
WSGI_APPLICATION = "salon_booking.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# -------------------------
# Database
# -------------------------
# SQLite for development. Set DB_ENGINE=django.db.backends.postgresql (plus the
# DB_* variables) in production.
# The reservation commit serialises writers per staff member with row locks
# (SELECT ... FOR UPDATE). SQLite ignores those, so its transactions start
# IMMEDIATE instead: a second writer waits at BEGIN for the first to commit,
# then sees its appointment. The test database is a file so threads share it.
DB_ENGINE = os.getenv("DB_ENGINE", "django.db.backends.sqlite3")
if DB_ENGINE.endswith("sqlite3"):
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
            "OPTIONS": {
                "transaction_mode": "IMMEDIATE",
                "timeout": int(os.getenv("DB_TIMEOUT", "20")),
            },
            "TEST": {
                "NAME": os.getenv("DB_TEST_NAME", str(BASE_DIR / "test_db.sqlite3")),
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": os.getenv("DB_NAME", "salon_booking"),
            "USER": os.getenv("DB_USER", ""),
            "PASSWORD": os.getenv("DB_PASSWORD", ""),
            "HOST": os.getenv("DB_HOST", "localhost"),
            "PORT": os.getenv("DB_PORT", "5432"),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -------------------------
# Time
# -------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "Europe/Zurich")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# -------------------------
# Django REST framework
# -------------------------
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
}

# -------------------------
# Email
# -------------------------
# Console backend prints messages to the terminal. Switch to SMTP in prod.
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
try:
    EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
except ValueError:
    EMAIL_PORT = 587
EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS", True)
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_TIMEOUT = 10
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "bookings@salon.local")

# -------------------------
# Booking rules (defaults)
# -------------------------
SALON_BOOKING = {
    "SLOT_GRANULARITY_MINUTES": int(os.getenv("SLOT_GRANULARITY_MINUTES", "15")),
    "LEAD_TIME_MINUTES": int(os.getenv("LEAD_TIME_MINUTES", "0")),
    "HORIZON_DAYS": int(os.getenv("HORIZON_DAYS", "90")),
    "RESERVATION_TIMEOUT_MINUTES": int(os.getenv("RESERVATION_TIMEOUT_MINUTES", "15")),
    "CHAINED_SERVICE_GAP_MINUTES": int(os.getenv("CHAINED_SERVICE_GAP_MINUTES", "0")),
    "NO_SHOW_GRACE_MINUTES": int(os.getenv("NO_SHOW_GRACE_MINUTES", "30")),
    "CANCELLATION_CUTOFF_MINUTES": int(os.getenv("CANCELLATION_CUTOFF_MINUTES", "120")),
}

# -------------------------
# Logging
# -------------------------
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "booking": {
            "handlers": ["console"],
            "level": os.getenv("BOOKING_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "notifications": {
            "handlers": ["console"],
            "level": os.getenv("BOOKING_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "django.security": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": True,
        },
    },
}
