from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.formatting import count_label, format_date, link_href


def test_format_date_uses_short_month_and_12_hour_clock():
    value = datetime(2026, 10, 19, 15, 4, tzinfo=timezone.utc)
    assert format_date(value, timezone.utc) == "Oct 19, 2026, 03:04 PM"


def test_format_date_converts_to_target_zone():
    value = datetime(2026, 1, 9, 1, 30, tzinfo=timezone.utc)
    assert format_date(value, timezone(timedelta(hours=-5))) == "Jan 8, 2026, 08:30 PM"


def test_format_date_treats_naive_values_as_utc():
    assert format_date(datetime(2026, 3, 1, 0, 5), timezone.utc) == "Mar 1, 2026, 12:05 AM"
    assert format_date(None) == ""


@pytest.mark.parametrize(
    ("count", "expected"),
    [(0, "0 bookmarks"), (1, "1 bookmark"), (2, "2 bookmarks")],
)
def test_count_label(count, expected):
    assert count_label(count) == expected


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://example.com/a", "https://example.com/a"),
        ("HTTP://example.com", "HTTP://example.com"),
        ("mailto:me@example.com", "mailto:me@example.com"),
        ("javascript:alert(1)", "#"),
        ("data:text/html,hi", "#"),
        ("", "#"),
        (None, "#"),
    ],
)
def test_link_href_only_allows_linkable_schemes(url, expected):
    assert link_href(url) == expected
