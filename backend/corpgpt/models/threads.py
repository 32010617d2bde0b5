from pydantic import BaseModel
from datetime import datetime

PLACEHOLDER_TITLE = "New Chat"


class ThreadCreate(BaseModel):
    title: str = PLACEHOLDER_TITLE


class ThreadUpdate(BaseModel):
    title: str | None = None


class Thread(BaseModel):
    id: str
    title: str
    created_at: datetime
