import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["user", "model"]
Kind = Literal["user", "bot"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _token() -> str:
    return uuid.uuid4().hex


class HistoryEntry(BaseModel):
    """One turn of conversation history handed to the reply generator."""

    role: Role
    text: str


class MessageCreate(BaseModel):
    role: Role
    text: str
    kind: Kind
    client_id: str | None = None


class Message(BaseModel):
    id: str
    thread_id: str
    role: Role
    text: str
    kind: Kind
    client_id: str | None = None
    created_at: datetime


class OptimisticMessage(BaseModel):
    """Client-only echo of a just-submitted message, never persisted."""

    client_id: str = Field(default_factory=_token)
    role: Role
    text: str
    kind: Kind
    created_at: datetime = Field(default_factory=_now)


class DisplayMessage(BaseModel):
    id: str | None = None
    role: Role
    text: str
    kind: Kind
    created_at: datetime
    pending: bool = False

    @classmethod
    def from_message(cls, message: Message) -> "DisplayMessage":
        return cls(
            id=message.id,
            role=message.role,
            text=message.text,
            kind=message.kind,
            created_at=message.created_at,
        )

    @classmethod
    def from_optimistic(cls, message: OptimisticMessage) -> "DisplayMessage":
        return cls(
            role=message.role,
            text=message.text,
            kind=message.kind,
            created_at=message.created_at,
            pending=True,
        )
