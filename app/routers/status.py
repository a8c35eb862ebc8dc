from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from ..db import get_session, is_postgres
from ..realtime.feed import get_change_feed
from ..schemas import StatusResponse


router = APIRouter(tags=["status"])


@router.get("/status", response_model=StatusResponse)
def get_status():
    return StatusResponse()


@router.get("/status/db", response_model=dict)
def db_status(request: Request, session=Depends(get_session)):
    ok = True
    details = {"backend": "postgres" if is_postgres() else "other"}
    try:
        session.exec(text("SELECT 1")).one()
    except Exception as e:  # noqa: BLE001
        ok = False
        details["error"] = str(e)
    if ok and is_postgres():
        try:
            rls = session.exec(
                text("SELECT relrowsecurity FROM pg_class WHERE relname = 'bookmark'")
            ).scalar()
            details["bookmark_rls_enabled"] = bool(rls)
        except Exception as e:  # noqa: BLE001
            details["rls_check_error"] = str(e)
    feed = getattr(request.app.state, "change_feed", None) or get_change_feed()
    details["change_feed_subscriptions"] = feed.subscription_count()
    return {"ok": ok, "details": details}
