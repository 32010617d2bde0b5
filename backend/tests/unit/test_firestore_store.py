import asyncio

import pytest
from google.api_core.exceptions import ServiceUnavailable

from corpgpt.errors import ReadError, WriteError
from corpgpt.models.messages import MessageCreate
from corpgpt.models.threads import PLACEHOLDER_TITLE, ThreadCreate, ThreadUpdate
from corpgpt.services.firestore_store import FirestoreStore
from tests.mocks.fake_firestore import FakeFirestoreClient


@pytest.fixture
def client():
    return FakeFirestoreClient()


@pytest.fixture
def firestore_store(client):
    return FirestoreStore(client)


async def _settle():
    # Snapshot callbacks are handed to the loop with call_soon_threadsafe
    for _ in range(3):
        await asyncio.sleep(0)


async def test_messages_keep_the_web_client_shape(firestore_store, client):
    thread_id = await firestore_store.create_thread("u", "chats", ThreadCreate())
    await firestore_store.append_message(
        "u", "chats", thread_id, MessageCreate(role="user", text="Hi", kind="user", client_id="tok")
    )

    assert client.docs[("users", "u", "chats", thread_id)]["title"] == PLACEHOLDER_TITLE
    [doc] = [
        data
        for path, data in client.docs.items()
        if path[:5] == ("users", "u", "chats", thread_id, "messages")
    ]
    assert doc["role"] == "user"
    assert doc["parts"] == [{"text": "Hi"}]
    assert doc["type"] == "user"
    assert doc["clientId"] == "tok"


async def test_list_messages_in_creation_order(firestore_store):
    thread_id = await firestore_store.create_thread("u", "chats", ThreadCreate())
    for role, text, kind in [("user", "Hi", "user"), ("model", "Hello", "bot")]:
        await firestore_store.append_message(
            "u", "chats", thread_id, MessageCreate(role=role, text=text, kind=kind)
        )
    messages = await firestore_store.list_messages("u", "chats", thread_id)
    assert [(m.role, m.text, m.kind, m.client_id) for m in messages] == [
        ("user", "Hi", "user", None),
        ("model", "Hello", "bot", None),
    ]


async def test_sparse_documents_fall_back(firestore_store, client):
    client.docs[("users", "u", "chats", "t1")] = {"createdAt": client.stamp()}
    client.docs[("users", "u", "chats", "t1", "messages", "m1")] = {
        "role": "model",
        "createdAt": client.stamp(),
    }

    [message] = await firestore_store.list_messages("u", "chats", "t1")
    assert (message.text, message.kind, message.client_id) == ("", "bot", None)

    received = []
    await firestore_store.subscribe_threads("u", "chats", received.append)
    await _settle()
    assert [t.title for t in received[-1]] == [PLACEHOLDER_TITLE]


async def test_snapshots_follow_changes(firestore_store):
    threads = []
    subscription = await firestore_store.subscribe_threads("u", "chats", threads.append)
    first = await firestore_store.create_thread("u", "chats", ThreadCreate(title="Old"))
    await firestore_store.create_thread("u", "chats", ThreadCreate(title="New"))
    await firestore_store.update_thread("u", "chats", first, ThreadUpdate(title="Renamed"))
    await _settle()
    assert [t.title for t in threads[-1]] == ["New", "Renamed"]

    subscription.unsubscribe()
    seen = len(threads)
    await firestore_store.delete_thread("u", "chats", first)
    await _settle()
    assert len(threads) == seen


async def test_message_snapshots_track_deletes(firestore_store):
    thread_id = await firestore_store.create_thread("u", "chats", ThreadCreate())
    received = []
    await firestore_store.subscribe_messages("u", "chats", thread_id, received.append)
    await firestore_store.append_message(
        "u", "chats", thread_id, MessageCreate(role="user", text="Hi", kind="user")
    )
    await _settle()
    [message] = received[-1]

    await firestore_store.delete_message("u", "chats", thread_id, message.id)
    await _settle()
    assert received[-1] == []
    assert await firestore_store.list_messages("u", "chats", thread_id) == []


async def test_google_api_errors_are_translated(firestore_store, client):
    client.fail = ServiceUnavailable("backend unavailable")
    with pytest.raises(WriteError):
        await firestore_store.create_thread("u", "chats", ThreadCreate())
    with pytest.raises(WriteError):
        await firestore_store.append_message(
            "u", "chats", "t1", MessageCreate(role="user", text="Hi", kind="user")
        )
    with pytest.raises(WriteError):
        await firestore_store.delete_message("u", "chats", "t1", "m1")
    with pytest.raises(ReadError):
        await firestore_store.list_messages("u", "chats", "t1")
    with pytest.raises(ReadError):
        await firestore_store.subscribe_messages("u", "chats", "t1", lambda messages: None)
    with pytest.raises(ReadError):
        await firestore_store.get_profile("u")


async def test_profile_lives_on_the_user_document(firestore_store, client):
    assert await firestore_store.get_profile("u") is None

    await firestore_store.merge_profile(
        "u", {"first_name": "Ada", "last_name": "Lovelace", "name": "Ada Lovelace"}
    )
    await firestore_store.merge_profile("u", {"profile_image": "data:image/png;base64,AAAA"})
    assert client.docs[("users", "u")] == {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "name": "Ada Lovelace",
        "profileImage": "data:image/png;base64,AAAA",
    }

    await firestore_store.merge_profile("u", {"profile_image": None})
    profile = await firestore_store.get_profile("u")
    assert (profile.name, profile.profile_image) == ("Ada Lovelace", None)
