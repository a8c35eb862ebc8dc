import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)

ENTRY_ROUTE = "/"


class BookmarkError(Exception):
    """Base class for failures raised by the bookmark services.

    ``public_message`` is safe to show to end users; internal details stay
    in the logs.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "bookmark_error"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None):
        self.public_message = message or self.default_message
        super().__init__(self.public_message)


class Unauthenticated(BookmarkError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    default_message = "Not authenticated"


class InvalidInput(BookmarkError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_input"
    default_message = "Invalid input"


class StoreFailure(BookmarkError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "store_failure"
    default_message = "The bookmark store is unavailable"


class FeedDisconnect(BookmarkError):
    """Change feed dropped or delivered garbage; never surfaced to users."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "feed_disconnect"
    default_message = "Live updates are unavailable"


class LoginRequired(Exception):
    """Raised by the view guard to send anonymous visitors to the entry route."""

    def __init__(self, location: str = ENTRY_ROUTE):
        self.location = location
        super().__init__(location)


def _problem(
    *,
    code: str,
    message: str,
    status: int,
    trace_id: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    body = {
        "type": f"about:blank#{code}",
        "title": message,
        "status": status,
        "code": code,
        "message": message,
        "trace_id": trace_id,
    }
    if details:
        body["details"] = details
    return JSONResponse(
        body,
        status_code=status,
        headers={"X-Trace-Id": trace_id},
        media_type="application/problem+json",
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):  # type: ignore[override]
        return RedirectResponse(exc.location, status_code=status.HTTP_303_SEE_OTHER)

    @app.exception_handler(BookmarkError)
    async def bookmark_exc_handler(request: Request, exc: BookmarkError):  # type: ignore[override]
        trace_id = str(uuid.uuid4())
        return _problem(
            code=exc.code,
            message=exc.public_message,
            status=exc.status_code,
            trace_id=trace_id,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        trace_id = str(uuid.uuid4())
        detail = exc.detail
        if isinstance(detail, dict):
            message = detail.get("message") or detail.get("error") or "HTTP error"
            return _problem(
                code="http_error",
                message=str(message),
                status=exc.status_code,
                trace_id=trace_id,
                details=detail,
            )
        return _problem(code="http_error", message=str(detail), status=exc.status_code, trace_id=trace_id)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        trace_id = str(uuid.uuid4())
        return _problem(
            code="validation_error",
            message="Request validation failed",
            status=422,
            trace_id=trace_id,
            details={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):  # type: ignore[override]
        trace_id = str(uuid.uuid4())
        logger.exception("Unhandled error: %s", exc)
        return _problem(
            code="internal_error",
            message="An unexpected error occurred",
            status=500,
            trace_id=trace_id,
        )
