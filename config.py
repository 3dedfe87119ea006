"""Configuration for the geotag upload service."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_int(value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


# Storage
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "./uploads")).resolve()  # final images with committed metadata
TEMP_DIR = Path(os.getenv("TEMP_DIR", "./temp")).resolve()  # preview uploads, removed after reading

# Database
DATABASE_PATH = Path(os.getenv("DATABASE_PATH", "./db/auth.db")).resolve()
LEGACY_DATABASE_PATH = Path(os.getenv("LEGACY_DATABASE_PATH", "./temp/auth.db")).resolve()
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{DATABASE_PATH}")

# Sessions (cookie carries a JWT naming a server-side session row)
SESSION_SECRET = os.getenv("SESSION_SECRET", "change-me-in-production-use-long-random-string")
SESSION_ALGORITHM = "HS256"
SESSION_EXPIRE_HOURS = _parse_int(os.getenv("SESSION_EXPIRE_HOURS"), 8)
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "tagger_session")
COOKIE_SECURE = _parse_bool(os.getenv("COOKIE_SECURE"))
TRUST_PROXY = _parse_bool(os.getenv("TRUST_PROXY"))  # use X-Forwarded-For for the client address

# Login throttling
LOGIN_WINDOW_SECONDS = _parse_int(os.getenv("LOGIN_WINDOW_SECONDS"), 15 * 60)
LOGIN_MAX_ATTEMPTS = _parse_int(os.getenv("LOGIN_MAX_ATTEMPTS"), 10)
LOGIN_SKIP_SUCCESSFUL = _parse_bool(os.getenv("LOGIN_SKIP_SUCCESSFUL"), default=True)

# Password hashing (bcrypt cost factor)
BCRYPT_ROUNDS = _parse_int(os.getenv("BCRYPT_ROUNDS"), 10)

# Tag engine
EXIFTOOL_PATH = os.getenv("EXIFTOOL_PATH", "exiftool")
