from pydantic import BaseModel, Field

from corpgpt.models.messages import DisplayMessage, HistoryEntry
from corpgpt.models.threads import Thread


class ChatRequest(BaseModel):
    message: str


class SessionView(BaseModel):
    composer: str
    active_thread_id: str | None = None
    header_title: str
    sending: bool = False
    messages: list[DisplayMessage] = Field(default_factory=list)
    threads: list[Thread] = Field(default_factory=list)
    notice: str | None = None
    alert: str | None = None
    pending_delete: str | None = None


class ChatAccepted(BaseModel):
    accepted: bool
    session: SessionView


class DeleteResult(BaseModel):
    deleted: bool
    thread_id: str


class HomeAskRequest(BaseModel):
    message: str


class HomeAskResponse(BaseModel):
    reply: str | None = None
    composer_links: list[str] = Field(default_factory=list)
    conversation: list[HistoryEntry] = Field(default_factory=list)


class ThemeResponse(BaseModel):
    dark_mode: bool
