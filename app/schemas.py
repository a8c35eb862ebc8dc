from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .errors import FeedDisconnect


class BookmarkRecord(BaseModel):
    """A bookmark row as it travels over the API and the change feed."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    owner_user_id: str
    url: str
    title: str
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # SQLite drops tzinfo on the way back out
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class BookmarkCreate(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    # Accepted for compatibility with older clients; always overridden.
    owner_user_id: Optional[str] = None


class BookmarksSnapshot(BaseModel):
    items: List[BookmarkRecord]
    total: int
    revision: int = 0


class ActionResult(BaseModel):
    success: bool = False
    error: Optional[str] = None
    bookmark: Optional[BookmarkRecord] = None
    deleted: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.success and not self.error


class StatusResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"


class _ChangeEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    table: str = "bookmark"
    commit_timestamp: Optional[datetime] = None


class InsertEvent(_ChangeEventBase):
    type: Literal["INSERT"] = "INSERT"
    new: BookmarkRecord
    old: None = None

    @property
    def record(self) -> BookmarkRecord:
        return self.new


class UpdateEvent(_ChangeEventBase):
    type: Literal["UPDATE"] = "UPDATE"
    new: BookmarkRecord
    old: Optional[BookmarkRecord] = None

    @property
    def record(self) -> BookmarkRecord:
        return self.new


class DeleteEvent(_ChangeEventBase):
    type: Literal["DELETE"] = "DELETE"
    new: None = None
    old: BookmarkRecord

    @property
    def record(self) -> BookmarkRecord:
        return self.old


ChangeEvent = Annotated[
    Union[InsertEvent, UpdateEvent, DeleteEvent],
    Field(discriminator="type"),
]

_CHANGE_EVENT_ADAPTER: TypeAdapter[ChangeEvent] = TypeAdapter(ChangeEvent)


def decode_change_event(raw: Any) -> Union[InsertEvent, UpdateEvent, DeleteEvent]:
    """Validate a feed payload (mapping or JSON text) into a typed event.

    Malformed payloads raise :class:`FeedDisconnect`; callers drop them.
    """

    try:
        if isinstance(raw, (str, bytes, bytearray)):
            return _CHANGE_EVENT_ADAPTER.validate_json(raw)
        return _CHANGE_EVENT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        raise FeedDisconnect("Malformed change event") from exc


def encode_change_event(event: Union[InsertEvent, UpdateEvent, DeleteEvent]) -> str:
    return event.model_dump_json()
