"""Persistent store contract and the in-process implementation.

Every operation is scoped by ``(user_id, collection)``: each composer keeps
its threads in its own collection under the user. Subscriptions deliver the
full ordered snapshot immediately and again after every change, always on
the event-loop thread.
"""

import itertools
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Hashable

from corpgpt.errors import WriteError
from corpgpt.models.messages import Message, MessageCreate
from corpgpt.models.profile import Profile
from corpgpt.models.threads import Thread, ThreadCreate, ThreadUpdate

ThreadsCallback = Callable[[list[Thread]], None]
MessagesCallback = Callable[[list[Message]], None]


class Subscription:
    """Handle returned by ``subscribe_*``; ``unsubscribe`` is idempotent."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._cancel()


class SnapshotHub:
    """Fans snapshots out to the callbacks registered under a key."""

    def __init__(self):
        self._callbacks: dict[Hashable, dict[int, Callable]] = defaultdict(dict)
        self._ids = itertools.count()

    def register(self, key: Hashable, callback: Callable) -> Subscription:
        token = next(self._ids)
        self._callbacks[key][token] = callback

        def cancel():
            listeners = self._callbacks.get(key)
            if listeners is None:
                return
            listeners.pop(token, None)
            if not listeners:
                del self._callbacks[key]

        return Subscription(cancel)

    def has_subscribers(self, key: Hashable) -> bool:
        return bool(self._callbacks.get(key))

    def publish(self, key: Hashable, snapshot: list) -> None:
        for callback in list(self._callbacks.get(key, {}).values()):
            callback(list(snapshot))


def threads_key(user_id: str, collection: str) -> tuple:
    return ("threads", user_id, collection)


def messages_key(user_id: str, collection: str, thread_id: str) -> tuple:
    return ("messages", user_id, collection, thread_id)


class Store(ABC):
    # Which identity provider issues the user ids this backend is keyed by
    identity_provider = "none"

    @abstractmethod
    async def subscribe_threads(
        self, user_id: str, collection: str, callback: ThreadsCallback
    ) -> Subscription:
        """Stream the user's threads, newest first."""

    @abstractmethod
    async def subscribe_messages(
        self, user_id: str, collection: str, thread_id: str, callback: MessagesCallback
    ) -> Subscription:
        """Stream a thread's messages, oldest first."""

    @abstractmethod
    async def create_thread(self, user_id: str, collection: str, data: ThreadCreate) -> str:
        ...

    @abstractmethod
    async def append_message(
        self, user_id: str, collection: str, thread_id: str, data: MessageCreate
    ) -> None:
        ...

    @abstractmethod
    async def update_thread(
        self, user_id: str, collection: str, thread_id: str, fields: ThreadUpdate
    ) -> None:
        """Merge ``fields`` into the thread; unset fields are left untouched."""

    @abstractmethod
    async def list_messages(self, user_id: str, collection: str, thread_id: str) -> list[Message]:
        ...

    @abstractmethod
    async def delete_message(
        self, user_id: str, collection: str, thread_id: str, message_id: str
    ) -> None:
        ...

    @abstractmethod
    async def delete_thread(self, user_id: str, collection: str, thread_id: str) -> None:
        ...

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile | None:
        """Return the user's profile record, or None if it was never written."""

    @abstractmethod
    async def merge_profile(self, user_id: str, fields: dict) -> None:
        """Merge ``fields`` (Profile field names) into the profile; None clears a field."""

    async def close(self) -> None:
        return None


class MemoryStore(Store):
    """In-process store used for local development and tests."""

    def __init__(self):
        self._threads: dict[tuple, dict[str, Thread]] = defaultdict(dict)
        self._messages: dict[tuple, list[Message]] = defaultdict(list)
        self._hub = SnapshotHub()
        self._last_timestamp: dict[str, datetime] = {}
        self._profiles: dict[str, dict] = {}

    def _stamp(self, user_id: str) -> datetime:
        now = datetime.now(timezone.utc)
        last = self._last_timestamp.get(user_id)
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_timestamp[user_id] = now
        return now

    def _thread_snapshot(self, user_id: str, collection: str) -> list[Thread]:
        threads = self._threads[(user_id, collection)].values()
        return sorted(threads, key=lambda t: t.created_at, reverse=True)

    def _message_snapshot(self, user_id: str, collection: str, thread_id: str) -> list[Message]:
        return list(self._messages[(user_id, collection, thread_id)])

    def _require_thread(self, user_id: str, collection: str, thread_id: str) -> Thread:
        thread = self._threads[(user_id, collection)].get(thread_id)
        if thread is None:
            raise WriteError(f"Thread {thread_id} does not exist")
        return thread

    def _publish_threads(self, user_id: str, collection: str) -> None:
        self._hub.publish(
            threads_key(user_id, collection), self._thread_snapshot(user_id, collection)
        )

    def _publish_messages(self, user_id: str, collection: str, thread_id: str) -> None:
        self._hub.publish(
            messages_key(user_id, collection, thread_id),
            self._message_snapshot(user_id, collection, thread_id),
        )

    async def subscribe_threads(self, user_id, collection, callback):
        subscription = self._hub.register(threads_key(user_id, collection), callback)
        callback(self._thread_snapshot(user_id, collection))
        return subscription

    async def subscribe_messages(self, user_id, collection, thread_id, callback):
        subscription = self._hub.register(messages_key(user_id, collection, thread_id), callback)
        callback(self._message_snapshot(user_id, collection, thread_id))
        return subscription

    async def create_thread(self, user_id, collection, data):
        thread = Thread(id=uuid.uuid4().hex, title=data.title, created_at=self._stamp(user_id))
        self._threads[(user_id, collection)][thread.id] = thread
        self._publish_threads(user_id, collection)
        return thread.id

    async def append_message(self, user_id, collection, thread_id, data):
        self._require_thread(user_id, collection, thread_id)
        message = Message(
            id=uuid.uuid4().hex,
            thread_id=thread_id,
            role=data.role,
            text=data.text,
            kind=data.kind,
            client_id=data.client_id,
            created_at=self._stamp(user_id),
        )
        self._messages[(user_id, collection, thread_id)].append(message)
        self._publish_messages(user_id, collection, thread_id)

    async def update_thread(self, user_id, collection, thread_id, fields):
        thread = self._require_thread(user_id, collection, thread_id)
        update_data = fields.model_dump(exclude_none=True)
        self._threads[(user_id, collection)][thread_id] = thread.model_copy(update=update_data)
        self._publish_threads(user_id, collection)

    async def list_messages(self, user_id, collection, thread_id):
        return self._message_snapshot(user_id, collection, thread_id)

    async def delete_message(self, user_id, collection, thread_id, message_id):
        key = (user_id, collection, thread_id)
        self._messages[key] = [m for m in self._messages[key] if m.id != message_id]
        self._publish_messages(user_id, collection, thread_id)

    async def delete_thread(self, user_id, collection, thread_id):
        self._threads[(user_id, collection)].pop(thread_id, None)
        self._messages.pop((user_id, collection, thread_id), None)
        self._publish_threads(user_id, collection)

    async def get_profile(self, user_id):
        data = self._profiles.get(user_id)
        return Profile(**data) if data is not None else None

    async def merge_profile(self, user_id, fields):
        self._profiles.setdefault(user_id, {}).update(fields)


def build_store(settings) -> Store:
    """Create the store backend named by ``settings.store_backend``."""
    backend = settings.store_backend.lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "supabase":
        from corpgpt.services.supabase_store import SupabaseStore

        return SupabaseStore.from_settings(settings)
    if backend == "firestore":
        from corpgpt.services.firestore_store import FirestoreStore

        return FirestoreStore.from_settings(settings)
    raise ValueError(f"Unknown store backend: {settings.store_backend}")
