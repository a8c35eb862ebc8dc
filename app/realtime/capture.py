"""Turn committed ``Bookmark`` writes into change feed events.

Changes are collected per session during flush and published only once the
transaction commits; a rollback discards them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import event, inspect
from sqlmodel import Session

from ..models import Bookmark
from ..schemas import BookmarkRecord, DeleteEvent, InsertEvent, UpdateEvent
from .feed import ChangeFeed, get_change_feed


logger = logging.getLogger(__name__)

PENDING_KEY = "bookmark_change_events"

_COLUMNS = ("id", "owner_user_id", "url", "title", "created_at", "updated_at")


def _snapshot(obj: Bookmark) -> Dict[str, Any]:
    return {name: getattr(obj, name) for name in _COLUMNS}


def _previous_snapshot(obj: Bookmark) -> Dict[str, Any]:
    state = inspect(obj)
    values: Dict[str, Any] = {}
    for name in _COLUMNS:
        history = state.attrs[name].history
        if history.deleted:
            values[name] = history.deleted[0]
        else:
            values[name] = getattr(obj, name)
    return values


def _record(values: Dict[str, Any]) -> BookmarkRecord:
    return BookmarkRecord.model_validate(values)


def _after_flush(session, flush_context) -> None:
    pending: List[Any] = session.info.setdefault(PENDING_KEY, [])
    now = datetime.now(timezone.utc)
    for obj in session.new:
        if isinstance(obj, Bookmark):
            pending.append(InsertEvent(new=_record(_snapshot(obj)), commit_timestamp=now))
    for obj in session.dirty:
        if isinstance(obj, Bookmark) and session.is_modified(obj, include_collections=False):
            pending.append(
                UpdateEvent(
                    new=_record(_snapshot(obj)),
                    old=_record(_previous_snapshot(obj)),
                    commit_timestamp=now,
                )
            )


def _before_flush(session, flush_context, instances) -> None:
    # Deleted rows are snapshotted while they can still be loaded.
    pending: List[Any] = session.info.setdefault(PENDING_KEY, [])
    now = datetime.now(timezone.utc)
    for obj in session.deleted:
        if isinstance(obj, Bookmark):
            pending.append(DeleteEvent(old=_record(_snapshot(obj)), commit_timestamp=now))


def _after_commit(session) -> None:
    events = session.info.pop(PENDING_KEY, None)
    if not events:
        return
    feed: ChangeFeed = get_change_feed()
    for change in events:
        try:
            feed.publish(change)
        except Exception:  # noqa: BLE001
            # the write is already committed
            logger.exception("Failed to publish %s event for bookmark %s", change.type, change.record.id)


def _after_rollback(session, previous_transaction) -> None:
    session.info.pop(PENDING_KEY, None)


def install_change_capture() -> None:
    """Register the session hooks once per process."""

    if event.contains(Session, "after_flush", _after_flush):
        return
    event.listen(Session, "before_flush", _before_flush)
    event.listen(Session, "after_flush", _after_flush)
    event.listen(Session, "after_commit", _after_commit)
    event.listen(Session, "after_soft_rollback", _after_rollback)
