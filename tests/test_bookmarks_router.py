from __future__ import annotations

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    # In-memory SQLite
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("SQLMODEL_CREATE_ALL", "1")
    monkeypatch.delenv("DEV_NO_AUTH", raising=False)
    monkeypatch.delenv("CSRF_ENABLED", raising=False)
    from app.config import is_dev_no_auth
    from app.realtime.feed import reset_change_feed
    from app.services.revisions import reset_revisions

    is_dev_no_auth.cache_clear()
    reset_change_feed()
    reset_revisions()
    yield
    is_dev_no_auth.cache_clear()
    reset_change_feed()


def _make_client(user_id: str | None = "u1") -> TestClient:
    from app.auth import get_optional_identity
    from app.db import init_db
    from app.main import create_app
    from tests.factories import identity

    app = create_app()
    init_db()
    if user_id is not None:
        app.dependency_overrides[get_optional_identity] = lambda: identity(user_id)
    return TestClient(app, raise_server_exceptions=False)


def test_create_then_list_returns_callers_bookmarks():
    client = _make_client("u1")

    r = client.post(
        "/v1/bookmarks",
        json={"url": "https://example.com/a", "title": "Alpha", "owner_user_id": "u2"},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["error"] is None
    assert body["bookmark"]["owner_user_id"] == "u1"

    r2 = client.get("/v1/bookmarks")
    assert r2.status_code == 200
    data = r2.json()
    assert data["total"] == 1
    assert data["items"][0]["title"] == "Alpha"
    assert data["revision"] == 1


def test_list_hides_other_users_rows():
    from app.db import get_session_ctx
    from tests.factories import seed_bookmarks

    client = _make_client("u1")
    with get_session_ctx() as session:
        seed_bookmarks(
            session,
            [
                ("u1", "Mine", "https://example.com/mine", 1),
                ("u2", "Theirs", "https://example.com/theirs", 2),
            ],
        )

    data = client.get("/v1/bookmarks").json()
    assert [item["title"] for item in data["items"]] == ["Mine"]


def test_invalid_url_is_problem_json_400():
    client = _make_client("u1")

    r = client.post("/v1/bookmarks", json={"url": "not a url", "title": "Bad"})

    assert r.status_code == 400
    assert r.headers["content-type"].startswith("application/problem+json")
    assert r.json()["message"] == "Invalid URL format"
    assert client.get("/v1/bookmarks").json()["total"] == 0


def test_delete_of_foreign_id_reports_success_with_zero_rows():
    from app.db import get_session_ctx
    from tests.factories import seed_bookmarks

    client = _make_client("u1")
    with get_session_ctx() as session:
        (theirs,) = seed_bookmarks(session, [("u2", "Theirs", "https://example.com/t", 1)])
        theirs_id = theirs.id

    r = client.delete(f"/v1/bookmarks/{theirs_id}")
    assert r.status_code == 200
    assert r.json() == {"success": True, "error": None, "bookmark": None, "deleted": 0}


def test_delete_own_bookmark():
    client = _make_client("u1")
    created = client.post("/v1/bookmarks", json={"url": "https://example.com", "title": "X"}).json()

    r = client.delete(f"/v1/bookmarks/{created['bookmark']['id']}")

    assert r.json()["deleted"] == 1
    assert client.get("/v1/bookmarks").json()["total"] == 0


def test_etag_changes_after_mutation():
    client = _make_client("u1")

    first = client.get("/v1/bookmarks")
    etag = first.headers["ETag"]
    assert client.get("/v1/bookmarks", headers={"If-None-Match": etag}).status_code == 304

    client.post("/v1/bookmarks", json={"url": "https://example.com", "title": "X"})

    after = client.get("/v1/bookmarks", headers={"If-None-Match": etag})
    assert after.status_code == 200
    assert after.headers["ETag"] != etag


def test_unauthenticated_calls_are_rejected():
    client = _make_client(None)

    r = client.get("/v1/bookmarks")
    assert r.status_code == 401
    assert r.headers["content-type"].startswith("application/problem+json")

    r2 = client.post("/v1/bookmarks", json={"url": "https://example.com", "title": "X"})
    assert r2.status_code == 401
    assert r2.json()["message"] == "Not authenticated"

    r3 = client.delete("/v1/bookmarks/abc")
    assert r3.status_code == 401


def test_csrf_required_for_cookie_sessions(monkeypatch):
    monkeypatch.setenv("CSRF_ENABLED", "1")
    client = _make_client("u1")

    r = client.post("/v1/bookmarks", json={"url": "https://example.com", "title": "X"})
    assert r.status_code == 403

    client.cookies.set("csrf_token", "tok")
    r2 = client.post(
        "/v1/bookmarks",
        json={"url": "https://example.com", "title": "X"},
        headers={"X-CSRF-Token": "tok"},
    )
    assert r2.status_code == 201

    r3 = client.post(
        "/v1/bookmarks",
        json={"url": "https://example.com", "title": "Y"},
        headers={"Authorization": "Bearer anything"},
    )
    assert r3.status_code == 201


def test_change_stream_requires_identity():
    client = _make_client(None)
    assert client.get("/v1/bookmarks/changes").status_code == 401


def test_metrics_count_mutations():
    from prometheus_client.parser import text_string_to_metric_families

    def read(client, outcome):
        for family in text_string_to_metric_families(client.get("/metrics").text):
            for sample in family.samples:
                if sample.name == "bookmark_mutations_total" and sample.labels == {
                    "action": "create",
                    "outcome": outcome,
                }:
                    return sample.value
        return 0.0

    client = _make_client("u1")
    before_ok, before_bad = read(client, "success"), read(client, "invalid_input")
    client.post("/v1/bookmarks", json={"url": "https://example.com", "title": "X"})
    client.post("/v1/bookmarks", json={"url": "nope", "title": "X"})
    assert read(client, "success") == before_ok + 1
    assert read(client, "invalid_input") == before_bad + 1


def test_etag_tracks_rows_written_outside_the_api():
    from app.db import get_session_ctx
    from tests.factories import seed_bookmarks

    client = _make_client("u1")
    etag = client.get("/v1/bookmarks").headers["ETag"]

    # e.g. another worker or an operator writing straight to the table
    with get_session_ctx() as session:
        seed_bookmarks(session, [("u1", "Direct", "https://example.com/direct", 1)])

    r = client.get("/v1/bookmarks", headers={"If-None-Match": etag})
    assert r.status_code == 200
    assert [item["title"] for item in r.json()["items"]] == ["Direct"]
    assert r.headers["ETag"] != etag


def test_etag_ignores_other_owners_rows():
    from app.db import get_session_ctx
    from tests.factories import seed_bookmarks

    client = _make_client("u1")
    etag = client.get("/v1/bookmarks").headers["ETag"]

    with get_session_ctx() as session:
        seed_bookmarks(session, [("u2", "Theirs", "https://example.com/theirs", 1)])

    assert client.get("/v1/bookmarks", headers={"If-None-Match": etag}).status_code == 304
