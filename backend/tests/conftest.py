import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from corpgpt.composers import get_composer
from corpgpt.services.chat_session import ChatSession
from corpgpt.services.preferences import PreferenceDirectory
from tests.mocks.scripted import RecordingStore, ScriptedReplyGenerator

USER_ID = "user-1"


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def generator():
    return ScriptedReplyGenerator()


@pytest_asyncio.fixture
async def session(store, generator):
    """Open grammar-composer session for USER_ID."""
    composer = get_composer("grammar")
    chat_session = ChatSession(
        store, generator, USER_ID, composer.session_config(), composer=composer.key
    )
    await chat_session.open()
    yield chat_session
    await chat_session.drain()
    await chat_session.close()


@pytest.fixture
def app(store, generator):
    from corpgpt.main import create_app

    return create_app(
        store=store, generator=generator, preferences=PreferenceDirectory(), dev_auth=True
    )


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client authenticated as USER_ID (dev auth: the token is the user id)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        http_client.headers["Authorization"] = f"Bearer {USER_ID}"
        yield http_client


@pytest_asyncio.fixture
async def anon_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
