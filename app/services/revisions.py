"""Per-owner view revisions and snapshot validators.

A mutation revalidates the views that render its owner's data. The ETag
handed to readers is computed from the rows actually read, so it also moves
when another process or an operator changes the table.
"""

from __future__ import annotations

import hashlib
import threading
from typing import Dict, Iterable, Tuple

BOOKMARKS_VIEW = "/bookmarks"

_lock = threading.Lock()
_revisions: Dict[Tuple[str, str], int] = {}


def revalidate_path(path: str, owner_user_id: str) -> int:
    """Invalidate ``path`` for ``owner_user_id``; returns the new revision."""

    key = (path, owner_user_id)
    with _lock:
        revision = _revisions.get(key, 0) + 1
        _revisions[key] = revision
        return revision


def current_revision(path: str, owner_user_id: str) -> int:
    with _lock:
        return _revisions.get((path, owner_user_id), 0)


def etag_for(owner_user_id: str, rows: Iterable) -> str:
    """Weak validator over the ids, titles, urls and ``updated_at`` of ``rows``."""

    digest = hashlib.sha256(owner_user_id.encode("utf-8"))
    count = 0
    for row in rows:
        count += 1
        updated = row.updated_at.isoformat() if row.updated_at else ""
        for part in (row.id, row.url, row.title, updated):
            digest.update(b"\x1f")
            digest.update(str(part).encode("utf-8"))
        digest.update(b"\x1e")
    return f'W/"{count}-{digest.hexdigest()[:32]}"'


def reset_revisions() -> None:
    with _lock:
        _revisions.clear()
