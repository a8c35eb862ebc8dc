"""httpx wrapper for the bookmarks HTTP API and its change feed."""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx

from ..errors import FeedDisconnect
from ..schemas import (
    ActionResult,
    BookmarkRecord,
    BookmarksSnapshot,
    DeleteEvent,
    InsertEvent,
    UpdateEvent,
    decode_change_event,
)


logger = logging.getLogger(__name__)

GENERIC_ERROR = "An unexpected error occurred"

ChangeEvent = Union[InsertEvent, UpdateEvent, DeleteEvent]


def _problem_message(resp: httpx.Response, fallback: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        message = body.get("message") or body.get("title") or body.get("error")
        if message:
            return str(message)
    return fallback


class BookmarksApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers: Dict[str, str] = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, transport=transport)

    async def __aenter__(self) -> "BookmarksApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_bookmarks(self) -> List[BookmarkRecord]:
        """Fetch the caller's snapshot, newest first.

        Raises :class:`httpx.HTTPStatusError` for non-2xx replies so callers
        can tell a signed-out session from an empty list.
        """

        resp = await self._client.get("/v1/bookmarks")
        resp.raise_for_status()
        return list(BookmarksSnapshot.model_validate(resp.json()).items)

    async def _mutate(self, method: str, path: str, fallback: str, **kwargs: Any) -> ActionResult:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Bookmark %s request failed: %s", method, exc)
            return ActionResult(success=False, error=GENERIC_ERROR)
        if resp.is_success:
            try:
                return ActionResult.model_validate(resp.json())
            except ValueError:
                return ActionResult(success=True)
        return ActionResult(success=False, error=_problem_message(resp, fallback))

    async def create_bookmark(self, url: str, title: str) -> ActionResult:
        return await self._mutate(
            "POST",
            "/v1/bookmarks",
            "Failed to add bookmark",
            json={"url": url, "title": title},
        )

    async def delete_bookmark(self, bookmark_id: str) -> ActionResult:
        return await self._mutate("DELETE", f"/v1/bookmarks/{bookmark_id}", "Failed to delete bookmark")

    async def stream_changes(self) -> AsyncIterator[ChangeEvent]:
        """Yield decoded events from the server-sent change feed.

        Comment frames (keepalives) and malformed payloads are skipped. Any
        transport failure or server close raises :class:`FeedDisconnect`.
        """

        try:
            async with self._client.stream(
                "GET",
                "/v1/bookmarks/changes",
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(None, connect=10.0),
            ) as resp:
                if resp.status_code != 200:
                    raise FeedDisconnect(f"Change feed refused with HTTP {resp.status_code}")
                data_lines: List[str] = []
                async for line in resp.aiter_lines():
                    if line.startswith(":"):
                        continue
                    if line.startswith("data:"):
                        data_lines.append(line[5:].lstrip())
                        continue
                    if line == "" and data_lines:
                        payload = "\n".join(data_lines)
                        data_lines = []
                        try:
                            yield decode_change_event(payload)
                        except FeedDisconnect:
                            logger.debug("Dropping malformed change frame")
        except httpx.HTTPError as exc:
            raise FeedDisconnect(str(exc)) from exc
        raise FeedDisconnect("Change feed closed by server")
