import asyncio
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import StreamingResponse

from ..auth import Identity, get_current_identity, get_optional_identity
from ..config import get_feed_keepalive_seconds
from ..db import get_session
from ..realtime.feed import ChangeFeed, Subscription, get_change_feed
from ..schemas import (
    ActionResult,
    BookmarkCreate,
    BookmarkRecord,
    BookmarksSnapshot,
    encode_change_event,
)
from ..security.csrf import csrf_protect
from ..services import bookmarks as bookmark_service
from ..services.revisions import BOOKMARKS_VIEW, current_revision, etag_for


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])


def _feed_for(request: Request) -> ChangeFeed:
    return getattr(request.app.state, "change_feed", None) or get_change_feed()


@router.get("", response_model=BookmarksSnapshot)
@router.get("/", response_model=BookmarksSnapshot, include_in_schema=False)
def list_bookmarks(
    response: Response,
    identity: Identity = Depends(get_current_identity),
    session=Depends(get_session),
    if_none_match: Optional[str] = Header(default=None),
):
    rows = bookmark_service.list_bookmarks(session, identity)
    etag = etag_for(identity.user_id, rows)
    if if_none_match and if_none_match == etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers={"ETag": etag})
    response.headers["ETag"] = etag
    response.headers["Cache-Control"] = "private, no-cache"
    return BookmarksSnapshot(
        items=[BookmarkRecord.model_validate(row) for row in rows],
        total=len(rows),
        revision=current_revision(BOOKMARKS_VIEW, identity.user_id),
    )


@router.post(
    "",
    response_model=ActionResult,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(csrf_protect)],
)
def create_bookmark(
    body: BookmarkCreate,
    identity: Optional[Identity] = Depends(get_optional_identity),
    session=Depends(get_session),
):
    bookmark = bookmark_service.create_bookmark(
        session,
        identity,
        body.url,
        body.title,
        owner_user_id=body.owner_user_id,
    )
    return ActionResult(success=True, bookmark=BookmarkRecord.model_validate(bookmark))


@router.delete("/{bookmark_id}", response_model=ActionResult, dependencies=[Depends(csrf_protect)])
def delete_bookmark(
    bookmark_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    session=Depends(get_session),
):
    deleted = bookmark_service.delete_bookmark(session, identity, bookmark_id)
    return ActionResult(success=True, deleted=deleted)


def _encode_frame(payload: str) -> str:
    return f"data: {payload}\n\n"


async def _change_event_stream(
    *,
    request: Request,
    subscription: Subscription,
    keepalive: float,
) -> AsyncGenerator[str, None]:
    try:
        while True:
            if await request.is_disconnected():
                logger.debug("Change feed client disconnected for %s", subscription.value)
                return
            event = await subscription.get(timeout=keepalive)
            if subscription.closed:
                return
            if event is None:
                yield ": keepalive\n\n"
                continue
            yield _encode_frame(encode_change_event(event))
    except asyncio.CancelledError:  # pragma: no cover - handled by server internals
        logger.debug("Change feed stream cancelled for %s", subscription.value)
        raise
    finally:
        subscription.close()


@router.get("/changes", summary="Live changes", description="Server-sent events for the caller's bookmarks.")
async def stream_changes(
    request: Request,
    identity: Identity = Depends(get_current_identity),
):
    subscription = _feed_for(request).subscribe("bookmark", "owner_user_id", identity.user_id)
    stream = _change_event_stream(
        request=request,
        subscription=subscription,
        keepalive=float(get_feed_keepalive_seconds()),
    )
    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    return StreamingResponse(stream, media_type="text/event-stream", headers=headers)
