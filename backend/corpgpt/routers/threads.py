from fastapi import APIRouter, Depends, HTTPException

from corpgpt.dependencies import get_chat_session
from corpgpt.models.chat import DeleteResult, SessionView
from corpgpt.models.threads import Thread
from corpgpt.services.chat_session import ChatSession

router = APIRouter(tags=["threads"])


@router.get("/{composer}/threads", response_model=list[Thread])
async def list_threads(
    q: str = "",
    session: ChatSession = Depends(get_chat_session),
):
    return session.filter_threads(q)


@router.post("/{composer}/threads/{thread_id}/select", response_model=SessionView)
async def select_thread(
    thread_id: str,
    session: ChatSession = Depends(get_chat_session),
):
    if not any(t.id == thread_id for t in session.threads):
        raise HTTPException(status_code=404, detail="Thread not found")
    await session.select_thread(thread_id)
    return session.view()


@router.delete("/{composer}/threads/{thread_id}", response_model=DeleteResult)
async def delete_thread(
    thread_id: str,
    confirm: bool = False,
    session: ChatSession = Depends(get_chat_session),
):
    if not any(t.id == thread_id for t in session.threads):
        raise HTTPException(status_code=404, detail="Thread not found")

    session.request_delete(thread_id)
    if not confirm:
        raise HTTPException(
            status_code=428,
            detail="Deleting a chat removes all of its messages. Repeat with confirm=true.",
        )

    if not await session.confirm_delete():
        raise HTTPException(status_code=502, detail=session.alert)
    return DeleteResult(deleted=True, thread_id=thread_id)
