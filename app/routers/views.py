"""Server-rendered entry and list pages."""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from ..auth import Identity, get_optional_identity, require_view_identity
from ..db import get_session
from ..errors import ENTRY_ROUTE, BookmarkError, StoreFailure, Unauthenticated
from ..formatting import count_label, format_date, link_href
from ..security.csrf import (
    CSRF_COOKIE_NAME,
    csrf_token_matches,
    is_csrf_enabled,
    new_csrf_token,
)
from ..services import bookmarks as bookmark_service


logger = logging.getLogger(__name__)

router = APIRouter(tags=["views"], include_in_schema=False)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
templates.env.filters["format_date"] = format_date
templates.env.filters["count_label"] = count_label
templates.env.filters["link_href"] = link_href

LIST_ROUTE = "/bookmarks"


def _render_list(
    request: Request,
    session,
    identity: Identity,
    *,
    form_error: Optional[str] = None,
    alert: Optional[str] = None,
    form_values: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
):
    try:
        bookmarks = bookmark_service.list_bookmarks(session, identity)
    except StoreFailure as exc:
        logger.warning("Rendering %s without bookmarks: %s", LIST_ROUTE, exc.public_message)
        bookmarks = []
        alert = alert or exc.public_message
    csrf_token = request.cookies.get(CSRF_COOKIE_NAME) or new_csrf_token()
    response = templates.TemplateResponse(
        request,
        "bookmarks.html",
        {
            "identity": identity,
            "bookmarks": bookmarks,
            "form_error": form_error,
            "form_values": form_values or {},
            "alert": alert,
            "csrf_token": csrf_token,
        },
        status_code=status_code,
    )
    response.headers["Cache-Control"] = "no-store"
    response.set_cookie(CSRF_COOKIE_NAME, csrf_token, httponly=True, samesite="lax")
    return response


def _form_token_ok(request: Request, csrf_token: Optional[str]) -> bool:
    if not is_csrf_enabled():
        return True
    return csrf_token_matches(request.cookies.get(CSRF_COOKIE_NAME), csrf_token)


@router.get("/")
def entry(request: Request, identity: Optional[Identity] = Depends(get_optional_identity)):
    if identity is not None:
        return RedirectResponse(LIST_ROUTE, status_code=status.HTTP_303_SEE_OTHER)
    return templates.TemplateResponse(request, "landing.html", {})


@router.get(LIST_ROUTE)
def bookmarks_page(
    request: Request,
    identity: Identity = Depends(require_view_identity),
    session=Depends(get_session),
):
    return _render_list(request, session, identity)


@router.post(f"{LIST_ROUTE}/add")
def add_bookmark(
    request: Request,
    url: str = Form(default=""),
    title: str = Form(default=""),
    csrf_token: Optional[str] = Form(default=None),
    identity: Optional[Identity] = Depends(get_optional_identity),
    session=Depends(get_session),
):
    if identity is None:
        return RedirectResponse(ENTRY_ROUTE, status_code=status.HTTP_303_SEE_OTHER)
    if not _form_token_ok(request, csrf_token):
        return _render_list(
            request,
            session,
            identity,
            form_error="Your session expired, please try again",
            form_values={"url": url, "title": title},
            status_code=status.HTTP_403_FORBIDDEN,
        )
    try:
        bookmark_service.create_bookmark(session, identity, url, title)
    except Unauthenticated:
        return RedirectResponse(ENTRY_ROUTE, status_code=status.HTTP_303_SEE_OTHER)
    except BookmarkError as exc:
        return _render_list(
            request,
            session,
            identity,
            form_error=exc.public_message,
            form_values={"url": url, "title": title},
            status_code=exc.status_code,
        )
    return RedirectResponse(LIST_ROUTE, status_code=status.HTTP_303_SEE_OTHER)


@router.post(LIST_ROUTE + "/{bookmark_id}/delete")
def remove_bookmark(
    request: Request,
    bookmark_id: str,
    csrf_token: Optional[str] = Form(default=None),
    identity: Optional[Identity] = Depends(get_optional_identity),
    session=Depends(get_session),
):
    if identity is None:
        return RedirectResponse(ENTRY_ROUTE, status_code=status.HTTP_303_SEE_OTHER)
    if not _form_token_ok(request, csrf_token):
        return _render_list(
            request,
            session,
            identity,
            alert="Your session expired, please try again",
            status_code=status.HTTP_403_FORBIDDEN,
        )
    try:
        bookmark_service.delete_bookmark(session, identity, bookmark_id)
    except Unauthenticated:
        return RedirectResponse(ENTRY_ROUTE, status_code=status.HTTP_303_SEE_OTHER)
    except BookmarkError as exc:
        return _render_list(request, session, identity, alert=exc.public_message, status_code=exc.status_code)
    return RedirectResponse(LIST_ROUTE, status_code=status.HTTP_303_SEE_OTHER)
