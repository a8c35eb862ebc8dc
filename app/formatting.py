from datetime import datetime, timezone
from typing import Optional


def format_date(value: Optional[datetime], tz=None) -> str:
    """Render a timestamp as ``Oct 9, 2026, 03:04 PM`` in ``tz`` (local by default)."""

    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    local = value.astimezone(tz)
    return f"{local:%b} {local.day}, {local:%Y}, {local:%I:%M %p}"


def count_label(count: int, noun: str = "bookmark") -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


_LINKABLE_SCHEMES = ("http", "https", "mailto", "ftp")


def link_href(url: Optional[str]) -> str:
    """Only hand linkable schemes to an ``href``; anything else is inert."""

    if not url:
        return "#"
    scheme, sep, _ = url.partition(":")
    if sep and scheme.lower() in _LINKABLE_SCHEMES:
        return url
    return "#"
