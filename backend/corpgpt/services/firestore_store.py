"""Firestore-backed store.

Documents live at ``users/{uid}/{collection}/{threadId}`` with messages in
the ``messages`` subcollection. Message documents keep the web client's
shape: ``role``, ``parts: [{text}]``, ``type`` and ``createdAt``.
"""

import asyncio
from datetime import datetime, timezone

from google.api_core.exceptions import GoogleAPIError
from google.cloud import firestore

from corpgpt.errors import ReadError, WriteError
from corpgpt.models.messages import Message
from corpgpt.models.profile import Profile
from corpgpt.models.threads import PLACEHOLDER_TITLE, Thread
from corpgpt.services.store import Store, Subscription


# Profile field name to the web client's key in the users/{uid} document
_PROFILE_FIELDS = {
    "first_name": "firstName",
    "last_name": "lastName",
    "name": "name",
    "email": "email",
    "profile_image": "profileImage",
}


def _timestamp(value) -> datetime:
    # Pending server timestamps surface as None until the write commits
    if isinstance(value, datetime):
        return value
    return datetime.now(timezone.utc)


def _thread_from_doc(doc) -> Thread:
    data = doc.to_dict() or {}
    return Thread(
        id=doc.id,
        title=data.get("title") or PLACEHOLDER_TITLE,
        created_at=_timestamp(data.get("createdAt")),
    )


def _message_from_doc(doc, thread_id: str) -> Message:
    data = doc.to_dict() or {}
    parts = data.get("parts") or [{}]
    role = data.get("role", "user")
    return Message(
        id=doc.id,
        thread_id=thread_id,
        role=role,
        text=parts[0].get("text", ""),
        kind=data.get("type") or ("bot" if role == "model" else "user"),
        client_id=data.get("clientId"),
        created_at=_timestamp(data.get("createdAt")),
    )


class FirestoreStore(Store):
    identity_provider = "firebase"

    def __init__(self, client: firestore.Client):
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "FirestoreStore":
        return cls(firestore.Client(project=settings.firebase_project_id or None))

    def _threads_ref(self, user_id: str, collection: str):
        return self._client.collection("users").document(user_id).collection(collection)

    def _thread_ref(self, user_id: str, collection: str, thread_id: str):
        return self._threads_ref(user_id, collection).document(thread_id)

    def _messages_ref(self, user_id: str, collection: str, thread_id: str):
        return self._thread_ref(user_id, collection, thread_id).collection("messages")

    async def _watch(self, query, convert, callback) -> Subscription:
        loop = asyncio.get_running_loop()

        def on_snapshot(docs, changes, read_time):
            snapshot = [convert(doc) for doc in docs]
            loop.call_soon_threadsafe(callback, snapshot)

        try:
            watch = await asyncio.to_thread(query.on_snapshot, on_snapshot)
        except GoogleAPIError as e:
            raise ReadError(f"Failed to subscribe: {e}") from e
        return Subscription(watch.unsubscribe)

    async def subscribe_threads(self, user_id, collection, callback):
        query = self._threads_ref(user_id, collection).order_by(
            "createdAt", direction=firestore.Query.DESCENDING
        )
        return await self._watch(query, _thread_from_doc, callback)

    async def subscribe_messages(self, user_id, collection, thread_id, callback):
        query = self._messages_ref(user_id, collection, thread_id).order_by("createdAt")
        return await self._watch(query, lambda doc: _message_from_doc(doc, thread_id), callback)

    async def create_thread(self, user_id, collection, data):
        payload = {"title": data.title, "createdAt": firestore.SERVER_TIMESTAMP}
        try:
            _, ref = await asyncio.to_thread(self._threads_ref(user_id, collection).add, payload)
        except GoogleAPIError as e:
            raise WriteError(f"Failed to create thread: {e}") from e
        return ref.id

    async def append_message(self, user_id, collection, thread_id, data):
        payload = {
            "role": data.role,
            "parts": [{"text": data.text}],
            "type": data.kind,
            "createdAt": firestore.SERVER_TIMESTAMP,
        }
        if data.client_id:
            payload["clientId"] = data.client_id
        try:
            await asyncio.to_thread(
                self._messages_ref(user_id, collection, thread_id).add, payload
            )
        except GoogleAPIError as e:
            raise WriteError(f"Failed to save message: {e}") from e

    async def update_thread(self, user_id, collection, thread_id, fields):
        update_data = fields.model_dump(exclude_none=True)
        if not update_data:
            return
        ref = self._thread_ref(user_id, collection, thread_id)
        try:
            await asyncio.to_thread(ref.set, update_data, merge=True)
        except GoogleAPIError as e:
            raise WriteError(f"Failed to update thread: {e}") from e

    async def list_messages(self, user_id, collection, thread_id):
        query = self._messages_ref(user_id, collection, thread_id).order_by("createdAt")
        try:
            docs = await asyncio.to_thread(lambda: list(query.stream()))
        except GoogleAPIError as e:
            raise ReadError(f"Failed to list messages: {e}") from e
        return [_message_from_doc(doc, thread_id) for doc in docs]

    async def delete_message(self, user_id, collection, thread_id, message_id):
        ref = self._messages_ref(user_id, collection, thread_id).document(message_id)
        try:
            await asyncio.to_thread(ref.delete)
        except GoogleAPIError as e:
            raise WriteError(f"Failed to delete message: {e}") from e

    async def delete_thread(self, user_id, collection, thread_id):
        try:
            await asyncio.to_thread(self._thread_ref(user_id, collection, thread_id).delete)
        except GoogleAPIError as e:
            raise WriteError(f"Failed to delete thread: {e}") from e
    async def get_profile(self, user_id):
        ref = self._client.collection("users").document(user_id)
        try:
            snapshot = await asyncio.to_thread(ref.get)
        except GoogleAPIError as e:
            raise ReadError(f"Failed to load profile: {e}") from e
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        return Profile(**{field: data.get(key) for field, key in _PROFILE_FIELDS.items()})

    async def merge_profile(self, user_id, fields):
        payload = {_PROFILE_FIELDS[field]: value for field, value in fields.items()}
        ref = self._client.collection("users").document(user_id)
        try:
            await asyncio.to_thread(ref.set, payload, merge=True)
        except GoogleAPIError as e:
            raise WriteError(f"Failed to save profile: {e}") from e
