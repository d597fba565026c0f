"""Runtime settings read from the environment (and ``.env``)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .db.engine import DEFAULT_SQLITE_URL, ROOT_DIR
from .db.utils import resolve_sqlite_url


def _int_setting(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_SQLITE_URL
    draw_max_attempts: int = 3
    access_code_length: int = 6
    recent_winners_limit: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``env`` (defaults to ``os.environ`` after loading ``.env``)."""
        if env is None:
            load_dotenv()
            env = os.environ
        database_url = env.get("DB_URL")
        return cls(
            database_url=(
                resolve_sqlite_url(database_url, ROOT_DIR)
                if database_url
                else DEFAULT_SQLITE_URL
            ),
            draw_max_attempts=_int_setting(env, "DRAW_MAX_ATTEMPTS", 3),
            access_code_length=_int_setting(env, "ACCESS_CODE_LENGTH", 6),
            recent_winners_limit=_int_setting(env, "RECENT_WINNERS_LIMIT", 10),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging for scripts."""
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["Settings", "configure_logging"]
