"""Sign-in and sign-out entry points.

Credentials never pass through this service: sign-in is the OIDC
authorization-code flow and the resulting ID token is kept in an HTTP-only
session cookie that the session guard verifies on every request.
"""

import logging
import secrets
from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse

from ..auth.oidc import build_authorization_url, exchange_code, new_state, verify_token
from ..config import get_session_cookie_name, is_dev_no_auth, is_session_cookie_secure
from ..errors import ENTRY_ROUTE


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

STATE_COOKIE_NAME = "oidc_state"
STATE_MAX_AGE = 600
AFTER_SIGN_IN_ROUTE = "/bookmarks"


def _callback_url(request: Request) -> str:
    return str(request.url_for("auth_callback"))


@router.get("/login")
def login(request: Request):
    if is_dev_no_auth():
        return RedirectResponse(AFTER_SIGN_IN_ROUTE, status_code=303)
    state = new_state()
    try:
        location = build_authorization_url(state, _callback_url(request))
    except (RuntimeError, httpx.HTTPError):
        logger.exception("Unable to build the identity provider sign-in URL")
        raise HTTPException(status_code=503, detail="Sign-in is temporarily unavailable")
    response = RedirectResponse(location, status_code=303)
    response.set_cookie(
        STATE_COOKIE_NAME,
        state,
        max_age=STATE_MAX_AGE,
        httponly=True,
        secure=is_session_cookie_secure(),
        samesite="lax",
    )
    return response


@router.get("/callback", name="auth_callback")
def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
):
    expected_state = request.cookies.get(STATE_COOKIE_NAME)
    if error or not code or not state or not expected_state or not secrets.compare_digest(state, expected_state):
        # failed sign-in returns silently to the entry page
        logger.info("Discarding sign-in callback (error=%s, has_code=%s)", error, bool(code))
        response = RedirectResponse(ENTRY_ROUTE, status_code=303)
        response.delete_cookie(STATE_COOKIE_NAME)
        return response
    try:
        id_token = exchange_code(code, _callback_url(request))
        claims = verify_token(id_token)
    except HTTPException as exc:
        logger.info("Identity provider returned an unusable token: %s", exc.detail)
        return RedirectResponse(ENTRY_ROUTE, status_code=303)
    except (RuntimeError, httpx.HTTPError):
        logger.exception("Authorization code exchange failed")
        return RedirectResponse(ENTRY_ROUTE, status_code=303)

    logger.info("Signed in %s", claims.get("sub"))
    response = RedirectResponse(AFTER_SIGN_IN_ROUTE, status_code=303)
    response.delete_cookie(STATE_COOKIE_NAME)
    response.set_cookie(
        get_session_cookie_name(),
        id_token,
        httponly=True,
        secure=is_session_cookie_secure(),
        samesite="lax",
    )
    return response


@router.post("/logout")
def logout():
    response = RedirectResponse(ENTRY_ROUTE, status_code=303)
    response.delete_cookie(get_session_cookie_name())
    return response
