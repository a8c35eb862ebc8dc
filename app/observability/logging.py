import logging
import os
import uuid
from contextvars import ContextVar

from pythonjsonlogger import jsonlogger


request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_ctx: ContextVar[str | None] = ContextVar("log_user_id", default=None)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        # The JSON formatter references these fields unconditionally; records
        # emitted outside a request (startup, feed teardown) need blanks.
        record.request_id = request_id_ctx.get() or ""
        record.user_id = user_id_ctx.get() or ""
        return True


def setup_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger = logging.getLogger()
    logger.setLevel(level)
    # Clear default handlers
    logger.handlers = []
    handler = logging.StreamHandler()
    fmt = jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(user_id)s")
    handler.setFormatter(fmt)
    handler.addFilter(ContextFilter())
    logger.addHandler(handler)


def bind_request_id(req_id: str | None = None) -> str:
    rid = req_id or str(uuid.uuid4())
    request_id_ctx.set(rid)
    return rid


def bind_user_id(user_id: str | None) -> None:
    user_id_ctx.set(user_id)
