import os

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from ..config import get_session_cookie_name


def _scrub_session(event, hint):
    """Never ship the session cookie (an ID token) to Sentry."""

    request = event.get("request") or {}
    cookies = request.get("cookies")
    if isinstance(cookies, dict) and get_session_cookie_name() in cookies:
        cookies[get_session_cookie_name()] = "[Filtered]"
    headers = request.get("headers")
    if isinstance(headers, dict):
        for key in list(headers):
            if key.lower() in ("authorization", "cookie"):
                headers[key] = "[Filtered]"
    return event


def init_sentry(app) -> None:
    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return
    sentry_sdk.init(
        dsn=dsn,
        integrations=[FastApiIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
        environment=os.getenv("SENTRY_ENVIRONMENT", "dev"),
        release=os.getenv("SENTRY_RELEASE"),
        send_default_pii=False,
        before_send=_scrub_session,
    )
