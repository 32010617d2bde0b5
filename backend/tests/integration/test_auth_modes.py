import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from corpgpt.auth import resolve_auth_provider
from corpgpt.main import create_app
from corpgpt.services.preferences import PreferenceDirectory
from corpgpt.services.store import MemoryStore
from corpgpt.services.supabase_store import SupabaseStore
from tests.mocks.fake_supabase import FakeSupabaseClient


@pytest_asyncio.fixture
async def strict_client(store, generator):
    app = create_app(
        store=store, generator=generator, preferences=PreferenceDirectory(), dev_auth=False
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        http_client.headers["Authorization"] = "Bearer user-1"
        yield http_client


async def test_token_is_not_a_user_id_by_default(strict_client):
    response = await strict_client.get("/api/grammar/messages")
    assert response.status_code == 401


async def test_dev_auth_accepts_token_as_user_id(client):
    response = await client.get("/api/grammar/messages")
    assert response.status_code == 200


def test_provider_follows_the_injected_store():
    assert resolve_auth_provider(MemoryStore(), dev_auth=False) == "none"
    assert resolve_auth_provider(SupabaseStore(FakeSupabaseClient()), dev_auth=False) == "supabase"
    assert resolve_auth_provider(SupabaseStore(FakeSupabaseClient()), dev_auth=True) == "dev"
