"""Ordered bookmark list kept in step with the change feed."""

from __future__ import annotations

from typing import FrozenSet, Iterable, List, Set, Tuple, Union

from ..schemas import BookmarkRecord, DeleteEvent, InsertEvent, UpdateEvent


ChangeEvent = Union[InsertEvent, UpdateEvent, DeleteEvent]


class BookmarkListReconciler:
    """Authoritative in-memory list for one open view, newest first.

    Events are applied strictly in arrival order. Inserts are prepended without
    re-sorting, updates replace in place and deletes remove by id; updates and
    deletes for ids not in the list are ignored. Ids in ``pending`` only gate
    repeated delete requests: a pending item stays listed until its Delete
    event arrives.
    """

    def __init__(self, initial: Iterable[BookmarkRecord] = ()):
        self._items: List[BookmarkRecord] = list(initial)
        self._pending: Set[str] = set()
        self._released = False

    @property
    def items(self) -> Tuple[BookmarkRecord, ...]:
        return tuple(self._items)

    @property
    def ids(self) -> List[str]:
        return [item.id for item in self._items]

    @property
    def pending(self) -> FrozenSet[str]:
        return frozenset(self._pending)

    @property
    def released(self) -> bool:
        return self._released

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(tuple(self._items))

    def _index_of(self, bookmark_id: str) -> int:
        for index, item in enumerate(self._items):
            if item.id == bookmark_id:
                return index
        return -1

    def apply(self, event: ChangeEvent) -> bool:
        """Apply one feed event; returns ``True`` when the list changed."""

        if self._released:
            return False
        if isinstance(event, InsertEvent):
            self._items.insert(0, event.new)
            return True
        if isinstance(event, UpdateEvent):
            index = self._index_of(event.new.id)
            if index < 0:
                return False
            self._items[index] = event.new
            return True
        if isinstance(event, DeleteEvent):
            index = self._index_of(event.old.id)
            if index < 0:
                return False
            del self._items[index]
            return True
        raise TypeError(f"Unsupported change event: {type(event).__name__}")

    def mark_pending(self, bookmark_id: str) -> bool:
        """Flag a delete as in flight; ``False`` if it already was."""

        if bookmark_id in self._pending:
            return False
        self._pending.add(bookmark_id)
        return True

    def clear_pending(self, bookmark_id: str) -> None:
        self._pending.discard(bookmark_id)

    def is_pending(self, bookmark_id: str) -> bool:
        return bookmark_id in self._pending

    def release(self) -> None:
        self._released = True
        self._pending.clear()
