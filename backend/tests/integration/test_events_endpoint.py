import asyncio
import json

from conftest import USER_ID


async def _wait_for_listener(session):
    for _ in range(200):
        if session._listeners:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("event stream never attached to the session")


def _session_events(body: str) -> list[dict]:
    events = []
    for block in body.replace("\r\n", "\n").split("\n\n"):
        lines = block.strip().splitlines()
        if "event: session" in lines:
            data = next(line for line in lines if line.startswith("data: "))
            events.append(json.loads(data[len("data: "):]))
    return events


async def test_stream_sends_views_and_ends_on_sign_out(client, app):
    await client.get("/api/grammar/messages")
    session = app.state.sessions.peek(USER_ID, "grammar")

    stream = asyncio.create_task(client.get("/api/grammar/events"))
    await _wait_for_listener(session)

    session.new_chat()
    response = await client.post("/api/auth/sign-out")
    assert response.status_code == 204

    events_response = await asyncio.wait_for(stream, timeout=5)
    assert events_response.status_code == 200
    assert events_response.headers["content-type"].startswith("text/event-stream")

    events = _session_events(events_response.text)
    assert len(events) == 2
    assert events[0]["composer"] == "grammar"
    assert events[0]["header_title"] == "CorpGPT"
    assert session.closed
    assert not session._listeners
