"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Session cookie ───────────────────────────────────────────────────
SESSION_COOKIE_NAME = "auth-session"
SESSION_MAX_AGE = 60 * 60 * 24 * 7  # 1 week

# Optional HS256 signing key; unset means the cookie carries plain JSON.
SESSION_SECRET = os.getenv("SESSION_SECRET") or None

APP_ENV = os.getenv("APP_ENV", "development")
COOKIE_SECURE = APP_ENV == "production"

# ── Routing ──────────────────────────────────────────────────────────
LOGIN_PATH = "/login"
ADMIN_PREFIX = "/admin"
ADMIN_HOME = "/admin/users"
NURSE_HOME = "/"
LOGTAIL_PATH = "/api/logtail"

# Served to everyone, logged in or not.
PUBLIC_ASSET_PATHS = frozenset({"/logo.png"})

# ── Database ─────────────────────────────────────────────────────────
DEFAULT_DB_URI = "sqlite:///emr.db"

# ── LLM ──────────────────────────────────────────────────────────────
MODEL_NAME = os.getenv("LLM_MODEL", "gpt-4.1-mini")
LLM_TEMPERATURE = 0.3
MAX_TRANSCRIPT_CHARS = 20000

# ── Remote log sink ──────────────────────────────────────────────────
LOG_SINK_URL = os.getenv("LOG_SINK_URL") or None
LOG_SINK_TOKEN = os.getenv("LOG_SINK_TOKEN", "")
LOG_SINK_TIMEOUT = 5
LOG_LEVELS = ("debug", "info", "warn", "error")


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
