import httpx
import pytest
from postgrest.exceptions import APIError as PostgrestAPIError

from corpgpt.errors import ReadError, WriteError
from corpgpt.models.messages import MessageCreate
from corpgpt.models.threads import ThreadCreate, ThreadUpdate
from corpgpt.services.supabase_store import SupabaseStore
from tests.mocks.fake_supabase import FakeSupabaseClient


@pytest.fixture
def client():
    return FakeSupabaseClient()


@pytest.fixture
def supabase_store(client):
    return SupabaseStore(client)


async def test_threads_are_scoped_and_newest_first(supabase_store, client):
    await supabase_store.create_thread("u", "chats", ThreadCreate(title="Old"))
    await supabase_store.create_thread("u", "chats", ThreadCreate(title="New"))
    await supabase_store.create_thread("u", "email_chats", ThreadCreate(title="Email"))
    await supabase_store.create_thread("v", "chats", ThreadCreate(title="Other user"))

    received = []
    await supabase_store.subscribe_threads("u", "chats", received.append)
    assert [t.title for t in received[-1]] == ["New", "Old"]
    assert {row["collection"] for row in client.tables["threads"]} == {"chats", "email_chats"}


async def test_message_rows_round_trip(supabase_store, client):
    thread_id = await supabase_store.create_thread("u", "chats", ThreadCreate())
    await supabase_store.append_message(
        "u", "chats", thread_id, MessageCreate(role="user", text="Hi", kind="user", client_id="tok")
    )
    await supabase_store.append_message(
        "u", "chats", thread_id, MessageCreate(role="model", text="Hello", kind="bot")
    )

    row = client.tables["messages"][0]
    assert (row["role"], row["content"], row["kind"], row["client_id"]) == ("user", "Hi", "user", "tok")

    messages = await supabase_store.list_messages("u", "chats", thread_id)
    assert [(m.role, m.text, m.kind, m.client_id) for m in messages] == [
        ("user", "Hi", "user", "tok"),
        ("model", "Hello", "bot", None),
    ]
    assert all(m.thread_id == thread_id for m in messages)


async def test_rows_without_kind_fall_back_on_role(supabase_store, client):
    thread_id = await supabase_store.create_thread("u", "chats", ThreadCreate())
    client.tables.setdefault("messages", []).append(
        {
            "id": 99,
            "thread_id": thread_id,
            "user_id": "u",
            "role": "model",
            "content": "Legacy reply",
            "created_at": client.stamp(),
        }
    )
    [message] = await supabase_store.list_messages("u", "chats", thread_id)
    assert (message.id, message.kind, message.client_id) == ("99", "bot", None)


async def test_subscribers_see_mutations(supabase_store):
    threads, messages = [], []
    await supabase_store.subscribe_threads("u", "chats", threads.append)
    thread_id = await supabase_store.create_thread("u", "chats", ThreadCreate())
    await supabase_store.subscribe_messages("u", "chats", thread_id, messages.append)

    await supabase_store.append_message(
        "u", "chats", thread_id, MessageCreate(role="user", text="Hi", kind="user")
    )
    await supabase_store.update_thread("u", "chats", thread_id, ThreadUpdate(title="Greeting"))

    assert [t.title for t in threads[-1]] == ["Greeting"]
    assert [m.text for m in messages[-1]] == ["Hi"]

    [message] = messages[-1]
    await supabase_store.delete_message("u", "chats", thread_id, message.id)
    await supabase_store.delete_thread("u", "chats", thread_id)
    assert messages[-1] == []
    assert threads[-1] == []


async def test_no_requery_without_subscribers(supabase_store, client):
    thread_id = await supabase_store.create_thread("u", "chats", ThreadCreate())
    await supabase_store.append_message(
        "u", "chats", thread_id, MessageCreate(role="user", text="Hi", kind="user")
    )
    assert client.selects("threads") == 0
    assert client.selects("messages") == 0


async def test_unsubscribed_callbacks_stop(supabase_store):
    received = []
    subscription = await supabase_store.subscribe_threads("u", "chats", received.append)
    subscription.unsubscribe()
    await supabase_store.create_thread("u", "chats", ThreadCreate())
    assert received == [[]]


@pytest.mark.parametrize(
    "failure",
    [
        PostgrestAPIError({"message": "permission denied", "code": "42501"}),
        httpx.ConnectError("connection refused"),
    ],
)
async def test_write_failures_become_write_errors(supabase_store, client, failure):
    client.fail = failure
    with pytest.raises(WriteError):
        await supabase_store.create_thread("u", "chats", ThreadCreate())
    with pytest.raises(WriteError):
        await supabase_store.append_message(
            "u", "chats", "1", MessageCreate(role="user", text="Hi", kind="user")
        )
    with pytest.raises(WriteError):
        await supabase_store.delete_thread("u", "chats", "1")


async def test_read_failures_become_read_errors(supabase_store, client):
    client.fail = httpx.ReadTimeout("timed out")
    with pytest.raises(ReadError):
        await supabase_store.subscribe_threads("u", "chats", lambda threads: None)
    with pytest.raises(ReadError):
        await supabase_store.list_messages("u", "chats", "1")


async def test_refresh_failure_does_not_fail_the_write(supabase_store, client):
    received = []
    await supabase_store.subscribe_threads("u", "chats", received.append)
    client.fail = PostgrestAPIError({"message": "timeout", "code": "57014"})
    client.fail_actions = {"select"}

    thread_id = await supabase_store.create_thread("u", "chats", ThreadCreate())

    assert thread_id
    assert received == [[]]


async def test_profile_merges_columns(supabase_store, client):
    assert await supabase_store.get_profile("u") is None

    await supabase_store.merge_profile(
        "u", {"first_name": "Ada", "last_name": "Lovelace", "name": "Ada Lovelace"}
    )
    await supabase_store.merge_profile("u", {"profile_image": "data:image/png;base64,AAAA"})
    profile = await supabase_store.get_profile("u")
    assert (profile.name, profile.first_name, profile.profile_image) == (
        "Ada Lovelace",
        "Ada",
        "data:image/png;base64,AAAA",
    )

    await supabase_store.merge_profile("u", {"profile_image": None})
    profile = await supabase_store.get_profile("u")
    assert profile.profile_image is None
    assert profile.name == "Ada Lovelace"
    assert len(client.tables["profiles"]) == 1
