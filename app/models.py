from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, String, Text
from sqlmodel import SQLModel, Field, Column


def gen_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Bookmark(SQLModel, table=True):
    __tablename__ = "bookmark"

    id: str = Field(default_factory=gen_id, primary_key=True)
    owner_user_id: str = Field(
        sa_column=Column(String, nullable=False, index=True),
    )
    url: str = Field(sa_column=Column(Text, nullable=False))
    title: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, onupdate=utcnow),
    )


__all__ = [
    "gen_id",
    "utcnow",
    "Bookmark",
]
