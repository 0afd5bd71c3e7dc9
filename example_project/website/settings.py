"""Django settings for the example project exercised by the integration tests."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
REPOSITORY_ROOT = BASE_DIR.parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-secret-key-graphql-testkit")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS: list[str] = ["*"]

INSTALLED_APPS = [
    "daphne",
    "channels",
    "django.contrib.staticfiles",
    "graphene_django",
]

MIDDLEWARE = [
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "example_project.website.urls"
ASGI_APPLICATION = "example_project.website.asgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
        # The live server runs in another process and cannot share an in-memory database.
        "TEST": {"NAME": BASE_DIR / "test_db.sqlite3"},
    }
}

STATIC_URL = "static/"
USE_TZ = True
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

GRAPHENE = {
    "SCHEMA": "example_project.website.schema.schema",
}

GRAPHQL_URL = "graphql/"

GRAPHQL_TESTKIT = {
    "SUBSCRIPTION_PATH": "subscriptions",
    "GRAPHQL_URL": f"/{GRAPHQL_URL}",
    "RESOURCE_DIRS": [str(REPOSITORY_ROOT / "tests" / "resources")],
    "POLL_INTERVAL_MS": 100,
    "ACKNOWLEDGEMENT_TIMEOUT_MS": 10000,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"console": {"class": "logging.StreamHandler"}},
    "loggers": {
        "graphql_testkit": {
            "handlers": ["console"],
            "level": os.environ.get("GRAPHQL_TESTKIT_LOG_LEVEL", "WARNING"),
        },
    },
}
