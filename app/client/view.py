"""Live bookmark list for one open view."""

import asyncio
import logging
from typing import Callable, Optional, Protocol, Tuple

from ..errors import FeedDisconnect
from ..realtime.reconciler import BookmarkListReconciler
from ..schemas import BookmarkRecord


logger = logging.getLogger(__name__)


class BookmarksApi(Protocol):
    async def list_bookmarks(self): ...

    async def create_bookmark(self, url: str, title: str): ...

    async def delete_bookmark(self, bookmark_id: str): ...

    def stream_changes(self): ...


class BookmarkListView:
    """Snapshot once, then follow the change feed until closed.

    Mutations never touch the list directly. Only feed events do, so a failed
    delete leaves the item in place and a successful one removes it when its
    Delete event arrives.
    """

    def __init__(
        self,
        api: BookmarksApi,
        *,
        on_change: Optional[Callable[[Tuple[BookmarkRecord, ...]], None]] = None,
        alert: Optional[Callable[[str], None]] = None,
        reconnect_delay: float = 2.0,
    ):
        self.api = api
        self.on_change = on_change
        self.alert = alert
        self.reconnect_delay = reconnect_delay
        self.reconciler = BookmarkListReconciler()
        self._follow_task: Optional[asyncio.Task] = None

    @property
    def items(self) -> Tuple[BookmarkRecord, ...]:
        return self.reconciler.items

    async def open(self) -> None:
        snapshot = await self.api.list_bookmarks()
        self.reconciler = BookmarkListReconciler(snapshot)
        self._notify()
        self._follow_task = asyncio.create_task(self._follow())

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.reconciler.items)

    async def _follow(self) -> None:
        while not self.reconciler.released:
            try:
                async for event in self.api.stream_changes():
                    if self.reconciler.apply(event):
                        self._notify()
            except FeedDisconnect as exc:
                logger.debug("Change feed disconnected: %s", exc)
            if self.reconciler.released:
                return
            # Events missed while disconnected are not replayed.
            await asyncio.sleep(self.reconnect_delay)

    async def create(self, url: str, title: str) -> Optional[str]:
        result = await self.api.create_bookmark(url, title)
        if result.ok:
            return None
        return result.error or "Failed to add bookmark"

    async def delete(self, bookmark_id: str) -> bool:
        if not self.reconciler.mark_pending(bookmark_id):
            return False
        self._notify()
        try:
            result = await self.api.delete_bookmark(bookmark_id)
        finally:
            self.reconciler.clear_pending(bookmark_id)
            self._notify()
        if not result.ok:
            if self.alert is not None:
                self.alert(result.error or "Failed to delete bookmark")
            return False
        return True

    async def close(self) -> None:
        self.reconciler.release()
        task, self._follow_task = self._follow_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
