import asyncio

import pytest

from corpgpt.composers import get_composer
from corpgpt.services.session_manager import SessionManager
from corpgpt.services.store import threads_key
from tests.mocks.scripted import RecordingStore, ScriptedReplyGenerator


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def manager(store, generator, clock):
    return SessionManager(store, generator, idle_timeout=60, clock=clock)


async def test_one_session_per_user_and_composer(manager):
    teams = await manager.get("u", get_composer("teams"))
    assert await manager.get("u", get_composer("teams")) is teams
    assert await manager.get("u", get_composer("email")) is not teams
    assert await manager.get("v", get_composer("teams")) is not teams
    assert len(manager) == 3


async def test_idle_sessions_are_closed_and_evicted(manager, store, clock):
    session = await manager.get("u", get_composer("teams"))

    clock.now = 30
    assert await manager.sweep() == 0
    clock.now = 61
    assert await manager.sweep() == 1

    assert session.closed
    assert manager.peek("u", "teams") is None
    assert not store._hub.has_subscribers(threads_key("u", "chats"))

    reopened = await manager.get("u", get_composer("teams"))
    assert reopened is not session
    assert not reopened.closed


async def test_recent_use_postpones_eviction(manager, clock):
    await manager.get("u", get_composer("teams"))
    clock.now = 50
    await manager.get("u", get_composer("teams"))
    clock.now = 100
    assert await manager.sweep() == 0
    clock.now = 110
    assert await manager.sweep() == 1


async def test_watched_sessions_are_kept(manager, clock):
    session = await manager.get("u", get_composer("teams"))
    listener = lambda s: None
    session.add_listener(listener)

    clock.now = 1000
    assert await manager.sweep() == 0

    session.remove_listener(listener)
    assert await manager.sweep() == 1


async def test_sessions_with_send_in_flight_are_kept(manager, generator, clock):
    session = await manager.get("u", get_composer("teams"))
    generator.gate = asyncio.Event()
    session.submit("Hello")

    clock.now = 1000
    assert await manager.sweep() == 0

    generator.gate.set()
    await session.drain()
    assert await manager.sweep() == 1


async def test_close_user_only_touches_that_user(manager):
    mine = await manager.get("u", get_composer("teams"))
    theirs = await manager.get("v", get_composer("teams"))
    await manager.close_user("u")
    assert mine.closed
    assert not theirs.closed
    assert manager.peek("v", "teams") is theirs


async def test_close_all_stops_sweeper(manager):
    session = await manager.get("u", get_composer("teams"))
    manager.start_sweeper(3600)
    await manager.close_all()
    assert session.closed
    assert len(manager) == 0
    assert manager._sweeper is None


async def test_sweeper_runs_periodically():
    clock = _Clock()
    manager = SessionManager(RecordingStore(), ScriptedReplyGenerator(), idle_timeout=0, clock=clock)
    session = await manager.get("u", get_composer("teams"))
    manager.start_sweeper(0.01)
    for _ in range(50):
        if session.closed:
            break
        await asyncio.sleep(0.01)
    await manager.close_all()
    assert session.closed
