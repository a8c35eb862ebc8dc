import os
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request, status

CSRF_COOKIE_NAME = "csrf_token"


def is_csrf_enabled() -> bool:
    return os.getenv("CSRF_ENABLED", "0") in ("1", "true", "TRUE")


def new_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def csrf_token_matches(cookie_value: Optional[str], supplied: Optional[str]) -> bool:
    """Double-submit check: the submitted token must echo the cookie."""

    if not cookie_value or not supplied:
        return False
    return secrets.compare_digest(cookie_value, supplied)


async def csrf_protect(request: Request, x_csrf_token: str | None = Header(default=None)) -> None:
    """CSRF guard for cookie-authenticated API calls.

    With CSRF_ENABLED=1, requests carrying the session cookie must send an
    X-CSRF-Token header equal to the csrf_token cookie. Bearer-token clients
    are not exposed to CSRF and skip the check.
    """
    if not is_csrf_enabled():
        return
    if request.headers.get("authorization"):
        return
    if not csrf_token_matches(request.cookies.get(CSRF_COOKIE_NAME), x_csrf_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing CSRF token")
