import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator, Optional

from sqlalchemy import event, text
from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .realtime.capture import install_change_capture


logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_engine_url: Optional[str] = None
_current_user_id: ContextVar[Optional[str]] = ContextVar("app_user_id", default=None)
RLS_USER_KEY = "rls_user_id"

install_change_capture()


def _database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./dev.db")


def get_engine() -> Engine:
    """Return a SQLModel engine, creating it if needed."""
    global _engine, _engine_url
    database_url = _database_url()
    if _engine is None or database_url != _engine_url:
        connect_args = {}
        engine_kwargs = {"echo": False}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            if database_url == "sqlite://":
                engine_kwargs["poolclass"] = StaticPool
        _engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)
        _engine_url = database_url
    return _engine


def init_db() -> None:
    """Create the schema for in-memory or explicitly opted-in databases.

    Production databases are migrated with Alembic; set SQLMODEL_CREATE_ALL=1
    to create tables directly in development.
    """
    from . import models  # noqa: F401  (registers tables on the metadata)

    database_url = _database_url()
    engine = get_engine()
    if database_url == "sqlite://":
        # In-memory sqlite: reset schema each init for isolation
        SQLModel.metadata.drop_all(engine)
        SQLModel.metadata.create_all(engine)
        return
    if os.getenv("SQLMODEL_CREATE_ALL", "0") in ("1", "true", "TRUE"):
        SQLModel.metadata.create_all(engine)


def set_current_user_id(user_id: Optional[str]) -> Token:
    """Bind the current request's user id for row-level security."""

    return _current_user_id.set(user_id)


def reset_current_user_id(token: Token) -> None:
    _current_user_id.reset(token)


def _apply_rls_setting(session: Session, transaction, connection) -> None:
    # Transaction-local, so pooled connections never carry another user's id.
    user_id = session.info.get(RLS_USER_KEY)
    if user_id:
        connection.execute(
            text("SELECT set_config('app.user_id', :user_id, true)"),
            {"user_id": user_id},
        )


def _configure_rls(session: Session) -> bool:
    if not is_postgres():
        return False
    session.info[RLS_USER_KEY] = _current_user_id.get()
    event.listen(session, "after_begin", _apply_rls_setting)
    return True


def _session_scope() -> Iterator[Session]:
    with Session(get_engine()) as session:
        _configure_rls(session)
        yield session


@contextmanager
def get_session_ctx() -> Iterator[Session]:
    yield from _session_scope()


def get_session() -> Iterator[Session]:
    yield from _session_scope()


def is_postgres() -> bool:
    try:
        name = get_engine().url.get_backend_name()
    except Exception:  # noqa: BLE001
        database_url = _database_url()
        name = database_url.split(":", 1)[0] if ":" in database_url else ""
    return name.startswith("postgres")
