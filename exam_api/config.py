"""Application configuration and constants."""
import json
import os
from pathlib import Path


def _parse_int_env(name: str, default: int) -> int:
    """Parse integer from environment variable."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_part_table_env(name: str) -> dict[int, int]:
    """Parse a JSON object of part -> seconds from environment variable."""
    raw = os.environ.get(name)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(data, dict):
        return {}
    table = {}
    for part, seconds in data.items():
        try:
            table[int(part)] = int(seconds)
        except (TypeError, ValueError):
            continue
    return table


# Database
DB_DIR = Path(os.environ.get("DB_DIR", Path.cwd() / "data"))
DB_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = os.environ.get(
    "DATABASE_URL", f"sqlite:///{DB_DIR / 'exam_sessions.db'}"
)

# Auto-save
AUTO_SAVE_INTERVAL_SECONDS = _parse_int_env("AUTO_SAVE_INTERVAL_SECONDS", 30)

# Time budget
DEFAULT_SECONDS_PER_QUESTION = _parse_int_env("DEFAULT_SECONDS_PER_QUESTION", 60)
PART_SECONDS_PER_QUESTION = _parse_part_table_env("PART_SECONDS_PER_QUESTION")

# Retention
CANCELLED_RETENTION_DAYS = _parse_int_env("CANCELLED_RETENTION_DAYS", 90)
SESSIONS_CLEANUP_INTERVAL_SECONDS = _parse_int_env(
    "SESSIONS_CLEANUP_INTERVAL_SECONDS", 24 * 60 * 60
)

# Authentication
SECRET_KEY = os.environ.get(
    "SECRET_KEY",
    "CHANGE_ME_IN_PRODUCTION_USE_openssl_rand_hex_32"
)
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = _parse_int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
