"""Bookmark mutation service.

Every operation receives the identity resolved for the current request and
checks it itself; nothing here trusts an identity cached from an earlier
call. Ownership is always taken from that identity and every delete is
filtered on ``owner_user_id`` even where the database enforces the same rule
through row-level security.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import AnyUrl, TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..auth.session import Identity
from ..errors import InvalidInput, StoreFailure, Unauthenticated
from ..models import Bookmark
from ..observability.metrics import record_mutation
from .revisions import BOOKMARKS_VIEW, revalidate_path


logger = logging.getLogger(__name__)

_URL_ADAPTER: TypeAdapter[AnyUrl] = TypeAdapter(AnyUrl)


def _require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None or not identity.user_id:
        raise Unauthenticated()
    return identity


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_url(url: str) -> str:
    """Return ``url`` when it parses as an absolute URL."""

    try:
        parsed = _URL_ADAPTER.validate_python(url)
    except ValidationError as exc:
        raise InvalidInput("Invalid URL format") from exc
    if not parsed.scheme:
        raise InvalidInput("Invalid URL format")
    return url


def create_bookmark(
    session: Session,
    identity: Optional[Identity],
    url: Optional[str],
    title: Optional[str],
    *,
    owner_user_id: Optional[str] = None,
) -> Bookmark:
    try:
        caller = _require_identity(identity)
        url_value = _clean(url)
        title_value = _clean(title)
        if not url_value or not title_value:
            raise InvalidInput("URL and title are required")
        validate_url(url_value)
    except (Unauthenticated, InvalidInput) as exc:
        record_mutation("create", exc.code)
        raise

    if owner_user_id and owner_user_id != caller.user_id:
        logger.debug(
            "Ignoring client-supplied owner %s; bookmark belongs to %s",
            owner_user_id,
            caller.user_id,
        )

    bookmark = Bookmark(owner_user_id=caller.user_id, url=url_value, title=title_value)
    try:
        session.add(bookmark)
        session.commit()
        session.refresh(bookmark)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Error adding bookmark for %s", caller.user_id)
        record_mutation("create", StoreFailure.code)
        raise StoreFailure("Failed to add bookmark")

    revalidate_path(BOOKMARKS_VIEW, caller.user_id)
    record_mutation("create", "success")
    logger.info("Bookmark %s created for %s", bookmark.id, caller.user_id)
    return bookmark


def delete_bookmark(session: Session, identity: Optional[Identity], bookmark_id: str) -> int:
    """Delete ``bookmark_id`` if the caller owns it; returns rows affected.

    An unknown id and a bookmark owned by someone else both report zero rows
    rather than an error.
    """

    try:
        caller = _require_identity(identity)
    except Unauthenticated as exc:
        record_mutation("delete", exc.code)
        raise

    stmt = select(Bookmark).where(
        Bookmark.id == bookmark_id,
        Bookmark.owner_user_id == caller.user_id,
    )
    try:
        rows = session.exec(stmt).all()
        for row in rows:
            session.delete(row)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Error deleting bookmark %s for %s", bookmark_id, caller.user_id)
        record_mutation("delete", StoreFailure.code)
        raise StoreFailure("Failed to delete bookmark")

    revalidate_path(BOOKMARKS_VIEW, caller.user_id)
    record_mutation("delete", "success" if rows else "noop")
    logger.info("Deleted %d bookmark(s) with id %s for %s", len(rows), bookmark_id, caller.user_id)
    return len(rows)


def list_bookmarks(session: Session, identity: Optional[Identity]) -> List[Bookmark]:
    """The caller's bookmarks, newest first."""

    caller = _require_identity(identity)
    stmt = (
        select(Bookmark)
        .where(Bookmark.owner_user_id == caller.user_id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
    )
    try:
        return list(session.exec(stmt).all())
    except SQLAlchemyError:
        logger.exception("Error fetching bookmarks for %s", caller.user_id)
        raise StoreFailure("Failed to load bookmarks")
