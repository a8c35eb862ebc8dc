import logging
import os
import secrets
import time
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from fastapi import HTTPException, status
from jose import jwt
from jose.utils import base64url_decode


logger = logging.getLogger(__name__)

_EMAIL_CANDIDATES: Sequence[str] = ("email", "mail", "upn", "preferred_username")
_NAME_CANDIDATES: Sequence[str] = ("name", "given_name", "nickname")


def summarize_identity(claims: Optional[Mapping[str, Any]]) -> str:
    """Return a stable, human-readable description for a claims mapping."""

    if not isinstance(claims, Mapping):
        return "anonymous"
    parts = []
    sub = claims.get("sub")
    if sub:
        parts.append(f"sub={sub}")
    email = claims.get("email")
    if email:
        parts.append(f"email={email}")
    return ", ".join(parts) if parts else "anonymous"


def _first_string(claims: Mapping[str, Any], candidates: Sequence[str]) -> Optional[str]:
    for key in candidates:
        value = claims.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def resolve_email(claims: Mapping[str, Any]) -> Optional[str]:
    return _first_string(claims, _EMAIL_CANDIDATES)


def resolve_name(claims: Mapping[str, Any]) -> Optional[str]:
    return _first_string(claims, _NAME_CANDIDATES)


class OIDCConfig:
    def __init__(self):
        # Accept either the issuer base or the full discovery URL
        issuer = os.getenv("OIDC_ISSUER", "")
        if issuer.endswith("/.well-known/openid-configuration"):
            issuer = issuer[: -len("/.well-known/openid-configuration")]
        self.issuer: str = issuer
        self.audience: Optional[str] = os.getenv("OIDC_AUDIENCE")
        self.client_id: Optional[str] = os.getenv("OIDC_CLIENT_ID")
        self.client_secret: Optional[str] = os.getenv("OIDC_CLIENT_SECRET")
        self.redirect_uri: Optional[str] = os.getenv("OIDC_REDIRECT_URI")
        self.scopes: str = os.getenv("OIDC_SCOPES", "openid email profile")
        # Discovered from the issuer when not provided
        self.jwks_url: Optional[str] = os.getenv("OIDC_JWKS_URL")
        self.authorization_endpoint: Optional[str] = os.getenv("OIDC_AUTHORIZATION_ENDPOINT")
        self.token_endpoint: Optional[str] = os.getenv("OIDC_TOKEN_ENDPOINT")

    def resolve_endpoint(self, name: str) -> Optional[str]:
        explicit = getattr(self, name, None)
        if explicit:
            return explicit
        discovery = get_oidc_discovery()
        value = discovery.get(name) if isinstance(discovery, Mapping) else None
        return value.strip() if isinstance(value, str) and value.strip() else None


@lru_cache(maxsize=1)
def get_oidc_config() -> OIDCConfig:
    return OIDCConfig()


@lru_cache(maxsize=1)
def get_oidc_discovery() -> Dict[str, Any]:
    cfg = get_oidc_config()
    if not cfg.issuer:
        return {}
    url = cfg.issuer.rstrip("/") + "/.well-known/openid-configuration"
    with httpx.Client(timeout=5.0) as client:
        r = client.get(url)
        r.raise_for_status()
        return r.json()


@lru_cache(maxsize=1)
def get_jwks() -> Dict[str, Any]:
    cfg = get_oidc_config()
    jwks_url = cfg.jwks_url
    if not jwks_url:
        jwks_url = get_oidc_discovery().get("jwks_uri")
    if not jwks_url:
        raise RuntimeError("OIDC_JWKS_URL or issuer discovery jwks_uri is required")
    with httpx.Client(timeout=5.0) as client:
        r = client.get(jwks_url)
        r.raise_for_status()
        return r.json()


def oidc_startup_event() -> None:
    # Best-effort prefetch to warm caches; failures are retried lazily.
    if not get_oidc_config().issuer and not get_oidc_config().jwks_url:
        return
    try:
        get_jwks()
    except Exception:  # noqa: BLE001
        logger.warning("Unable to prefetch OIDC signing keys; will retry on first sign-in", exc_info=True)


def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _validate_exp(payload: Dict[str, Any]) -> None:
    exp = payload.get("exp")
    try:
        exp_value = float(exp)
    except (TypeError, ValueError):
        logger.debug("OIDC token for %s has invalid 'exp' claim: %r", summarize_identity(payload), exp)
        raise _unauthorized("Token expired")
    if time.time() > exp_value:
        logger.debug("OIDC token for %s expired at %s", summarize_identity(payload), exp_value)
        raise _unauthorized("Token expired")


def _validate_iss_aud(payload: Dict[str, Any], cfg: OIDCConfig) -> None:
    iss = payload.get("iss")
    if cfg.issuer and iss != cfg.issuer:
        logger.debug("OIDC issuer mismatch: expected %s got %s", cfg.issuer, iss)
        raise _unauthorized("Invalid issuer")
    expected = cfg.audience or cfg.client_id
    if not expected:
        return
    aud = payload.get("aud")
    audiences = aud if isinstance(aud, list) else [aud]
    if expected not in audiences:
        logger.debug("OIDC audience mismatch: expected %s got %s", expected, aud)
        raise _unauthorized("Invalid audience")


def _decode_header(token: str) -> Dict[str, Any]:
    try:
        header_segment = token.split(".")[0]
        header_data = base64url_decode(header_segment.encode("utf-8"))
        return jwt.json.loads(header_data)
    except Exception:  # noqa: BLE001
        logger.debug("Failed to decode JWT header", exc_info=True)
        raise _unauthorized("Invalid token header")


def verify_token(token: str) -> Dict[str, Any]:
    """Verify an OIDC JWT against the provider's JWKS and return its claims."""

    cfg = get_oidc_config()
    header = _decode_header(token)
    kid = header.get("kid")
    if not kid:
        raise _unauthorized("Missing kid in token")
    jwks = get_jwks()
    key = _find_key(jwks, kid)
    if not key:
        logger.debug("JWKS did not contain key for kid %s", kid)
        raise _unauthorized("Unknown signing key")
    try:
        payload = jwt.decode(token, key, options={"verify_aud": False, "verify_at_hash": False})
    except Exception:  # noqa: BLE001
        logger.debug("Failed to verify JWT signature for kid %s", kid, exc_info=True)
        raise _unauthorized("Invalid token signature")
    _validate_exp(payload)
    _validate_iss_aud(payload, cfg)
    if not payload.get("sub"):
        raise _unauthorized("Token has no subject")
    return payload


def dev_claims() -> Dict[str, Any]:
    return {
        "sub": os.getenv("DEV_USER_SUB", "dev-user"),
        "email": os.getenv("DEV_USER_EMAIL", "dev@example.com"),
        "name": os.getenv("DEV_USER_NAME", "Developer"),
        "dev_no_auth": True,
    }


def new_state() -> str:
    return secrets.token_urlsafe(24)


def build_authorization_url(state: str, redirect_uri: str) -> str:
    """Return the provider URL that starts the authorization-code flow."""

    cfg = get_oidc_config()
    endpoint = cfg.resolve_endpoint("authorization_endpoint")
    if not endpoint or not cfg.client_id:
        raise RuntimeError("OIDC_ISSUER (or OIDC_AUTHORIZATION_ENDPOINT) and OIDC_CLIENT_ID are required")
    query = urlencode(
        {
            "response_type": "code",
            "client_id": cfg.client_id,
            "redirect_uri": cfg.redirect_uri or redirect_uri,
            "scope": cfg.scopes,
            "state": state,
        }
    )
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{query}"


def exchange_code(code: str, redirect_uri: str) -> str:
    """Trade an authorization code for the ID token that becomes the session."""

    cfg = get_oidc_config()
    endpoint = cfg.resolve_endpoint("token_endpoint")
    if not endpoint or not cfg.client_id:
        raise RuntimeError("OIDC_ISSUER (or OIDC_TOKEN_ENDPOINT) and OIDC_CLIENT_ID are required")
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": cfg.redirect_uri or redirect_uri,
        "client_id": cfg.client_id,
    }
    if cfg.client_secret:
        data["client_secret"] = cfg.client_secret
    with httpx.Client(timeout=10.0) as client:
        r = client.post(endpoint, data=data, headers={"Accept": "application/json"})
        r.raise_for_status()
        body = r.json()
    id_token = body.get("id_token") if isinstance(body, Mapping) else None
    if not id_token:
        raise _unauthorized("Provider did not return an ID token")
    return id_token
