from fastapi import APIRouter, Depends

from corpgpt.dependencies import get_chat_session
from corpgpt.models.chat import SessionView
from corpgpt.services.chat_session import ChatSession

router = APIRouter(tags=["messages"])


@router.get("/{composer}/messages", response_model=SessionView)
async def get_session_messages(session: ChatSession = Depends(get_chat_session)):
    return session.view()
