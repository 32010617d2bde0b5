import asyncio
import logging

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import Client, create_client

from corpgpt.errors import ReadError, WriteError
from corpgpt.models.messages import Message
from corpgpt.models.profile import Profile
from corpgpt.models.threads import Thread
from corpgpt.services.store import SnapshotHub, Store, messages_key, threads_key

logger = logging.getLogger(__name__)

_FAILURES = (PostgrestAPIError, httpx.HTTPError)


def _thread_from_row(row: dict) -> Thread:
    return Thread(id=str(row["id"]), title=row["title"], created_at=row["created_at"])


def _message_from_row(row: dict) -> Message:
    return Message(
        id=str(row["id"]),
        thread_id=str(row["thread_id"]),
        role=row["role"],
        text=row["content"],
        kind=row.get("kind") or ("bot" if row["role"] == "model" else "user"),
        client_id=row.get("client_id"),
        created_at=row["created_at"],
    )


class SupabaseStore(Store):
    """Store backed by the ``threads`` and ``messages`` tables.

    Supabase writes are only observed through this instance: after every
    mutation the affected snapshot is re-queried and fanned out to local
    subscribers.
    """

    identity_provider = "supabase"

    def __init__(self, client: Client):
        self._client = client
        self._hub = SnapshotHub()

    @classmethod
    def from_settings(cls, settings) -> "SupabaseStore":
        key = settings.supabase_service_role_key or settings.supabase_anon_key
        return cls(create_client(settings.supabase_url, key))

    def _fetch_threads(self, user_id: str, collection: str) -> list[Thread]:
        result = (
            self._client.table("threads")
            .select("id, title, created_at")
            .eq("user_id", user_id)
            .eq("collection", collection)
            .order("created_at", desc=True)
            .execute()
        )
        return [_thread_from_row(row) for row in result.data]

    def _fetch_messages(self, user_id: str, thread_id: str) -> list[Message]:
        result = (
            self._client.table("messages")
            .select("*")
            .eq("user_id", user_id)
            .eq("thread_id", thread_id)
            .order("created_at", desc=False)
            .execute()
        )
        return [_message_from_row(row) for row in result.data]

    async def _publish_threads(self, user_id: str, collection: str) -> None:
        key = threads_key(user_id, collection)
        if not self._hub.has_subscribers(key):
            return
        try:
            threads = await asyncio.to_thread(self._fetch_threads, user_id, collection)
        except _FAILURES as e:
            logger.warning(f"Thread snapshot refresh failed for {user_id}/{collection}: {e}")
            return
        self._hub.publish(key, threads)

    async def _publish_messages(self, user_id: str, collection: str, thread_id: str) -> None:
        key = messages_key(user_id, collection, thread_id)
        if not self._hub.has_subscribers(key):
            return
        try:
            messages = await asyncio.to_thread(self._fetch_messages, user_id, thread_id)
        except _FAILURES as e:
            logger.warning(f"Message snapshot refresh failed for thread {thread_id}: {e}")
            return
        self._hub.publish(key, messages)

    async def subscribe_threads(self, user_id, collection, callback):
        try:
            threads = await asyncio.to_thread(self._fetch_threads, user_id, collection)
        except _FAILURES as e:
            raise ReadError(f"Failed to load threads: {e}") from e
        subscription = self._hub.register(threads_key(user_id, collection), callback)
        callback(threads)
        return subscription

    async def subscribe_messages(self, user_id, collection, thread_id, callback):
        try:
            messages = await asyncio.to_thread(self._fetch_messages, user_id, thread_id)
        except _FAILURES as e:
            raise ReadError(f"Failed to load messages: {e}") from e
        subscription = self._hub.register(messages_key(user_id, collection, thread_id), callback)
        callback(messages)
        return subscription

    async def create_thread(self, user_id, collection, data):
        try:
            result = await asyncio.to_thread(
                lambda: self._client.table("threads")
                .insert({"title": data.title, "user_id": user_id, "collection": collection})
                .execute()
            )
        except _FAILURES as e:
            raise WriteError(f"Failed to create thread: {e}") from e
        if not result.data:
            raise WriteError("Failed to create thread")
        await self._publish_threads(user_id, collection)
        return str(result.data[0]["id"])

    async def append_message(self, user_id, collection, thread_id, data):
        row = {
            "thread_id": thread_id,
            "user_id": user_id,
            "role": data.role,
            "content": data.text,
            "kind": data.kind,
            "client_id": data.client_id,
        }
        try:
            await asyncio.to_thread(lambda: self._client.table("messages").insert(row).execute())
        except _FAILURES as e:
            raise WriteError(f"Failed to save message: {e}") from e
        await self._publish_messages(user_id, collection, thread_id)

    async def update_thread(self, user_id, collection, thread_id, fields):
        update_data = fields.model_dump(exclude_none=True)
        if not update_data:
            return
        try:
            await asyncio.to_thread(
                lambda: self._client.table("threads")
                .update(update_data)
                .eq("id", thread_id)
                .eq("user_id", user_id)
                .execute()
            )
        except _FAILURES as e:
            raise WriteError(f"Failed to update thread: {e}") from e
        await self._publish_threads(user_id, collection)

    async def list_messages(self, user_id, collection, thread_id):
        try:
            return await asyncio.to_thread(self._fetch_messages, user_id, thread_id)
        except _FAILURES as e:
            raise ReadError(f"Failed to list messages: {e}") from e

    async def delete_message(self, user_id, collection, thread_id, message_id):
        try:
            await asyncio.to_thread(
                lambda: self._client.table("messages")
                .delete()
                .eq("id", message_id)
                .eq("user_id", user_id)
                .execute()
            )
        except _FAILURES as e:
            raise WriteError(f"Failed to delete message: {e}") from e
        await self._publish_messages(user_id, collection, thread_id)

    async def delete_thread(self, user_id, collection, thread_id):
        try:
            await asyncio.to_thread(
                lambda: self._client.table("threads")
                .delete()
                .eq("id", thread_id)
                .eq("user_id", user_id)
                .execute()
            )
        except _FAILURES as e:
            raise WriteError(f"Failed to delete thread: {e}") from e
        await self._publish_threads(user_id, collection)

    async def get_profile(self, user_id):
        try:
            result = await asyncio.to_thread(
                lambda: self._client.table("profiles")
                .select("first_name, last_name, name, email, profile_image")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except _FAILURES as e:
            raise ReadError(f"Failed to load profile: {e}") from e
        if not result.data:
            return None
        return Profile(**result.data[0])

    async def merge_profile(self, user_id, fields):
        # upsert only rewrites the columns present in the row
        row = {"id": user_id, **fields}
        try:
            await asyncio.to_thread(lambda: self._client.table("profiles").upsert(row).execute())
        except _FAILURES as e:
            raise WriteError(f"Failed to save profile: {e}") from e
