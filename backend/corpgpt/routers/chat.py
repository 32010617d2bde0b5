import asyncio

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from corpgpt.dependencies import get_chat_session
from corpgpt.models.chat import ChatAccepted, ChatRequest, SessionView
from corpgpt.services.chat_session import ChatSession

router = APIRouter(tags=["chat"])


@router.post("/{composer}/chat", response_model=ChatAccepted, status_code=202)
async def chat(
    body: ChatRequest,
    session: ChatSession = Depends(get_chat_session),
):
    # The round trip keeps running after the response; progress arrives via /events
    task = session.submit(body.message)
    return ChatAccepted(accepted=task is not None, session=session.view())


@router.post("/{composer}/new-chat", response_model=SessionView)
async def new_chat(session: ChatSession = Depends(get_chat_session)):
    session.new_chat()
    return session.view()


@router.get("/{composer}/events")
async def session_events(session: ChatSession = Depends(get_chat_session)):
    queue: asyncio.Queue[SessionView | None] = asyncio.Queue()

    def on_change(changed: ChatSession):
        # None tells the stream the session was closed
        queue.put_nowait(None if changed.closed else changed.view())

    session.add_listener(on_change)

    async def event_generator():
        try:
            yield {"event": "session", "data": session.view().model_dump_json()}
            while True:
                view = await queue.get()
                if view is None:
                    break
                yield {"event": "session", "data": view.model_dump_json()}
        finally:
            session.remove_listener(on_change)

    return EventSourceResponse(event_generator())
