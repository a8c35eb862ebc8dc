"""Tests for environment-backed configuration helpers."""

from __future__ import annotations

import pytest

from app.config import (
    get_feed_keepalive_seconds,
    get_feed_queue_size,
    get_session_cookie_name,
    is_dev_no_auth,
    is_rls_enforced,
    is_session_cookie_secure,
)

_HELPERS = [
    is_dev_no_auth,
    is_rls_enforced,
    is_session_cookie_secure,
    get_session_cookie_name,
    get_feed_queue_size,
    get_feed_keepalive_seconds,
]


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    """Ensure cached flags are reset between tests."""

    for name in (
        "DEV_NO_AUTH",
        "RLS_ENFORCE",
        "SESSION_COOKIE_SECURE",
        "SESSION_COOKIE_NAME",
        "FEED_QUEUE_SIZE",
        "FEED_KEEPALIVE_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    for helper in _HELPERS:
        helper.cache_clear()
    try:
        yield
    finally:
        for helper in _HELPERS:
            helper.cache_clear()


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, False),
        ("", False),
        ("0", False),
        ("off", False),
        ("1", True),
        ("true", True),
        ("yes", True),
        ("On", True),
        (" 1 ", True),
    ],
)
def test_is_dev_no_auth(value, expected, monkeypatch):
    if value is not None:
        monkeypatch.setenv("DEV_NO_AUTH", value)
    assert is_dev_no_auth() is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, False), ("0", False), ("no", False), ("1", True), ("TRUE", True)],
)
def test_is_rls_enforced(value, expected, monkeypatch):
    if value is not None:
        monkeypatch.setenv("RLS_ENFORCE", value)
    assert is_rls_enforced() is expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, True), ("", True), ("0", False), ("false", False), ("1", True)],
)
def test_session_cookie_secure_defaults_on(value, expected, monkeypatch):
    if value is not None:
        monkeypatch.setenv("SESSION_COOKIE_SECURE", value)
    assert is_session_cookie_secure() is expected


def test_session_cookie_name(monkeypatch):
    assert get_session_cookie_name() == "bookmarks_session"

    monkeypatch.setenv("SESSION_COOKIE_NAME", "sb")
    get_session_cookie_name.cache_clear()
    assert get_session_cookie_name() == "sb"


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, 100), ("", 100), ("abc", 100), ("0", 100), ("-3", 100), ("8", 8)],
)
def test_feed_queue_size(value, expected, monkeypatch):
    if value is not None:
        monkeypatch.setenv("FEED_QUEUE_SIZE", value)
    assert get_feed_queue_size() == expected


def test_feed_keepalive_seconds(monkeypatch):
    assert get_feed_keepalive_seconds() == 15

    monkeypatch.setenv("FEED_KEEPALIVE_SECONDS", "2")
    get_feed_keepalive_seconds.cache_clear()
    assert get_feed_keepalive_seconds() == 2
