"""Session guard: resolve the caller's identity once per request.

The identity is read from an ``Authorization: Bearer`` header (API clients)
or from the session cookie set by the sign-in callback (browsers). A missing
or invalid credential is not an error at this layer; it simply yields no
identity, and each consumer decides whether to answer 401 or redirect.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import get_session_cookie_name, is_dev_no_auth
from ..errors import LoginRequired
from .oidc import dev_claims, resolve_email, resolve_name, summarize_identity, verify_token


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

_IDENTITY_STATE = "identity"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Identity":
        return cls(
            user_id=str(claims["sub"]),
            email=resolve_email(claims),
            name=resolve_name(claims),
        )


def resolve_identity(
    bearer_token: Optional[str] = None,
    session_token: Optional[str] = None,
) -> Optional[Identity]:
    """Return the authenticated identity, or ``None`` when there is none."""

    if is_dev_no_auth():
        logger.debug("DEV_NO_AUTH enabled; returning synthetic developer identity")
        return Identity.from_claims(dev_claims())

    token = bearer_token or session_token
    if not token:
        return None
    try:
        claims = verify_token(token)
    except HTTPException as exc:
        logger.debug("Rejected %s credential: %s", "bearer" if bearer_token else "session", exc.detail)
        return None
    except Exception:  # noqa: BLE001
        logger.warning("Unable to verify credential against the identity provider", exc_info=True)
        return None
    logger.debug("Authenticated %s", summarize_identity(claims))
    return Identity.from_claims(claims)


def _bearer_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header:
        return None
    parts = header.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip() or None
    return None


def identity_from_request(request: Request) -> Optional[Identity]:
    """Resolve (and memoize on ``request.state``) the identity for ``request``."""

    if hasattr(request.state, _IDENTITY_STATE):
        return getattr(request.state, _IDENTITY_STATE)
    identity = resolve_identity(
        _bearer_from_request(request),
        request.cookies.get(get_session_cookie_name()),
    )
    setattr(request.state, _IDENTITY_STATE, identity)
    return identity


def get_optional_identity(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Identity]:
    return identity_from_request(request)


def get_current_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return identity


def require_view_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    """Guard for protected pages; anonymous visitors go back to the entry route."""

    if identity is None:
        raise LoginRequired()
    return identity
