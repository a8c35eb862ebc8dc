"""Identity resolution and the session guard used by routes and views."""

from __future__ import annotations

from .session import (
    Identity,
    get_current_identity,
    get_optional_identity,
    identity_from_request,
    require_view_identity,
    resolve_identity,
)

__all__ = [
    "Identity",
    "get_current_identity",
    "get_optional_identity",
    "identity_from_request",
    "require_view_identity",
    "resolve_identity",
]
