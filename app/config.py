"""Application configuration helpers backed by environment variables."""

from __future__ import annotations

import os
from functools import lru_cache

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _read_flag(name: str) -> bool | None:
    """Return the parsed boolean value for ``name`` if explicitly set."""

    value = os.getenv(name)
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized.lower() in _TRUE_VALUES


def _read_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default

__all__ = [
    "is_dev_no_auth",
    "is_rls_enforced",
    "is_session_cookie_secure",
    "get_session_cookie_name",
    "get_feed_queue_size",
    "get_feed_keepalive_seconds",
]


@lru_cache(maxsize=1)
def is_dev_no_auth() -> bool:
    """Return ``True`` when a synthetic developer identity replaces OIDC."""

    flag = _read_flag("DEV_NO_AUTH")
    if flag is None:
        return False
    return flag


@lru_cache(maxsize=1)
def is_rls_enforced() -> bool:
    """Return ``True`` when Postgres row-level security should be installed and bound."""

    flag = _read_flag("RLS_ENFORCE")
    if flag is None:
        return False
    return flag


@lru_cache(maxsize=1)
def get_session_cookie_name() -> str:
    return os.getenv("SESSION_COOKIE_NAME", "").strip() or "bookmarks_session"


@lru_cache(maxsize=1)
def is_session_cookie_secure() -> bool:
    """Return ``True`` when the session cookie must only travel over HTTPS."""

    flag = _read_flag("SESSION_COOKIE_SECURE")
    if flag is None:
        return True
    return flag


@lru_cache(maxsize=1)
def get_feed_queue_size() -> int:
    """Per-subscription buffer; events beyond it are dropped."""

    return _read_int("FEED_QUEUE_SIZE", 100)


@lru_cache(maxsize=1)
def get_feed_keepalive_seconds() -> int:
    return _read_int("FEED_KEEPALIVE_SECONDS", 15)
