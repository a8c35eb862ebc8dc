from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("SQLMODEL_CREATE_ALL", "1")
    from app.db import init_db
    from app.realtime.feed import reset_change_feed
    from app.services.revisions import reset_revisions

    init_db()
    reset_change_feed()
    reset_revisions()
    yield
    reset_change_feed()


def _all_rows():
    from app.db import get_session_ctx
    from app.models import Bookmark

    with get_session_ctx() as session:
        return list(session.exec(select(Bookmark)).all())


def test_create_assigns_owner_from_identity():
    from app.db import get_session_ctx
    from app.services.bookmarks import create_bookmark
    from tests.factories import identity

    with get_session_ctx() as session:
        bookmark = create_bookmark(
            session,
            identity("u1"),
            " https://example.com/a ",
            " Example ",
            owner_user_id="someone-else",
        )

    assert bookmark.owner_user_id == "u1"
    assert bookmark.url == "https://example.com/a"
    assert bookmark.title == "Example"
    rows = _all_rows()
    assert [(row.owner_user_id, row.title) for row in rows] == [("u1", "Example")]


def test_create_bumps_revision():
    from app.db import get_session_ctx
    from app.services.bookmarks import create_bookmark
    from app.services.revisions import BOOKMARKS_VIEW, current_revision
    from tests.factories import identity

    assert current_revision(BOOKMARKS_VIEW, "u1") == 0
    with get_session_ctx() as session:
        create_bookmark(session, identity("u1"), "https://example.com", "Example")
    assert current_revision(BOOKMARKS_VIEW, "u1") == 1
    assert current_revision(BOOKMARKS_VIEW, "u2") == 0


@pytest.mark.parametrize(
    ("url", "title", "message"),
    [
        ("not a url", "Title", "Invalid URL format"),
        ("", "Title", "URL and title are required"),
        ("https://example.com", "   ", "URL and title are required"),
        (None, None, "URL and title are required"),
    ],
)
def test_create_rejects_invalid_input_without_writing(url, title, message):
    from app.db import get_session_ctx
    from app.errors import InvalidInput
    from app.services.bookmarks import create_bookmark
    from tests.factories import identity

    with get_session_ctx() as session:
        with pytest.raises(InvalidInput) as excinfo:
            create_bookmark(session, identity("u1"), url, title)

    assert excinfo.value.public_message == message
    assert excinfo.value.status_code == 400
    assert _all_rows() == []


def test_create_requires_identity():
    from app.db import get_session_ctx
    from app.errors import Unauthenticated
    from app.services.bookmarks import create_bookmark

    with get_session_ctx() as session:
        with pytest.raises(Unauthenticated) as excinfo:
            create_bookmark(session, None, "https://example.com", "Example")

    assert excinfo.value.public_message == "Not authenticated"
    assert _all_rows() == []


def test_create_store_failure_is_reported_generically(monkeypatch):
    from app.db import get_session_ctx
    from app.errors import StoreFailure
    from app.services.bookmarks import create_bookmark
    from tests.factories import identity

    with get_session_ctx() as session:

        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(session, "commit", broken_commit)
        with pytest.raises(StoreFailure) as excinfo:
            create_bookmark(session, identity("u1"), "https://example.com", "Example")

    assert excinfo.value.public_message == "Failed to add bookmark"
    assert "disk full" not in excinfo.value.public_message
    assert _all_rows() == []


def test_delete_only_touches_callers_rows():
    from app.db import get_session_ctx
    from app.services.bookmarks import delete_bookmark
    from tests.factories import identity, seed_bookmarks

    with get_session_ctx() as session:
        mine, theirs = seed_bookmarks(
            session,
            [
                ("u1", "Mine", "https://example.com/mine", 1),
                ("u2", "Theirs", "https://example.com/theirs", 2),
            ],
        )
        mine_id, theirs_id = mine.id, theirs.id

    with get_session_ctx() as session:
        assert delete_bookmark(session, identity("u1"), theirs_id) == 0
        assert delete_bookmark(session, identity("u1"), "does-not-exist") == 0
        assert delete_bookmark(session, identity("u1"), mine_id) == 1

    assert [row.id for row in _all_rows()] == [theirs_id]


def test_delete_requires_identity():
    from app.db import get_session_ctx
    from app.errors import Unauthenticated
    from app.services.bookmarks import delete_bookmark

    with get_session_ctx() as session:
        with pytest.raises(Unauthenticated):
            delete_bookmark(session, None, "abc")


def test_list_is_scoped_and_newest_first():
    from app.db import get_session_ctx
    from app.services.bookmarks import list_bookmarks
    from tests.factories import identity, seed_bookmarks

    with get_session_ctx() as session:
        seed_bookmarks(
            session,
            [
                ("u1", "Older", "https://example.com/1", 1),
                ("u2", "Other", "https://example.com/2", 2),
                ("u1", "Newer", "https://example.com/3", 3),
            ],
        )

    with get_session_ctx() as session:
        rows = list_bookmarks(session, identity("u1"))

    assert [row.title for row in rows] == ["Newer", "Older"]
