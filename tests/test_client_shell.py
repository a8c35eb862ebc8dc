from __future__ import annotations

import io
from datetime import timezone

from app.client.shell import render
from tests.factories import newest_first


def test_render_lists_items_with_count_and_pending_marker(monkeypatch):
    monkeypatch.setattr("app.client.shell.format_date", lambda value: value.astimezone(timezone.utc).isoformat())
    out = io.StringIO()

    render(newest_first("B2", "B1"), pending={"b1"}, out=out)

    lines = out.getvalue().splitlines()
    assert lines[0] == "2 bookmarks"
    assert lines[1] == "- B2"
    assert "- B1 (deleting)" in lines
    assert "  https://example.com/b2" in lines


def test_render_empty_state():
    out = io.StringIO()
    render([], out=out)
    assert out.getvalue().splitlines() == ["0 bookmarks", "No bookmarks"]
