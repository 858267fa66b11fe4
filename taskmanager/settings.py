"""
Django settings for the task manager API.

Values come from taskmanager.config (environment + optional .env);
nothing here should need editing per deployment.
"""

import logging
import sys

from .config import get_settings
from .logging_setup import setup_logging

TASKMANAGER = get_settings()

BASE_DIR = TASKMANAGER.db_path.parent

SECRET_KEY = TASKMANAGER.secret_key
DEBUG = TASKMANAGER.debug
ALLOWED_HOSTS = TASKMANAGER.allowed_hosts

INSTALLED_APPS = [
    "taskmanager",
    "tasks",
    "chat",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "taskmanager.middleware.CorsMiddleware",
    "taskmanager.middleware.RateLimitMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "taskmanager.urls"
WSGI_APPLICATION = "taskmanager.wsgi.application"
APPEND_SLASH = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": str(TASKMANAGER.db_path),
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "taskmanager",
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

# JSON bodies up to 10 MB
DATA_UPLOAD_MAX_MEMORY_SIZE = 10 * 1024 * 1024

SECURE_CONTENT_TYPE_NOSNIFF = True
SECURE_REFERRER_POLICY = "no-referrer"
X_FRAME_OPTIONS = "DENY"

# ---- project settings ----
CORS_ALLOWED_ORIGIN = TASKMANAGER.frontend_url
RATE_LIMIT_REQUESTS = TASKMANAGER.rate_limit_requests
RATE_LIMIT_WINDOW_SECONDS = TASKMANAGER.rate_limit_window_seconds

# ---- logging ----
LOGGING_CONFIG = None

_TESTING = (len(sys.argv) > 1 and sys.argv[1] == "test") or "pytest" in sys.modules

BASE_DIR.mkdir(parents=True, exist_ok=True)
setup_logging(
    log_dir=None if _TESTING else TASKMANAGER.log_dir,
    console_level=logging.WARNING if _TESTING else getattr(logging, TASKMANAGER.log_level, logging.INFO),
)
