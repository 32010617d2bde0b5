"""Chat session reconciliation.

A ``ChatSession`` owns one composer's view for one user: the thread list,
the active thread's persisted messages, and the optimistic echoes of
messages that were submitted but are not yet visible in the store.

The displayed list is always ``merge_display(persisted, optimistic)``.
An optimistic entry is confirmed (and dropped) once the persisted snapshot
contains a message carrying its ``client_id``; persisted messages written
without a token fall back to exact ``(role, text)`` equality.
"""

import asyncio
import logging
from typing import Callable

from pydantic import BaseModel

from corpgpt.errors import GenerationError, ReadError, StoreError, WriteError
from corpgpt.models.chat import SessionView
from corpgpt.models.messages import (
    DisplayMessage,
    HistoryEntry,
    Message,
    MessageCreate,
    OptimisticMessage,
)
from corpgpt.models.threads import PLACEHOLDER_TITLE, Thread, ThreadCreate, ThreadUpdate
from corpgpt.services.gemini_service import (
    ReplyGenerator,
    clean_title,
    error_reply_text,
    title_instruction,
)
from corpgpt.services.store import Store, Subscription

logger = logging.getLogger(__name__)

DEFAULT_HEADER = "CorpGPT"
DELETE_FAILED_ALERT = "Failed to delete chat. Please try again."
MAX_PURGE_PASSES = 5


class SessionConfig(BaseModel):
    collection: str
    instruction_text: str
    placeholder_title: str = PLACEHOLDER_TITLE
    default_header: str = DEFAULT_HEADER


def confirm_optimistic(
    persisted: list[Message], optimistic: list[OptimisticMessage]
) -> list[OptimisticMessage]:
    """Return the optimistic entries the persisted snapshot has not confirmed yet."""
    tokens = {m.client_id for m in persisted if m.client_id}
    untokened = {(m.role, m.text) for m in persisted if not m.client_id}
    return [
        o
        for o in optimistic
        if o.client_id not in tokens and (o.role, o.text) not in untokened
    ]


def merge_display(
    persisted: list[Message], optimistic: list[OptimisticMessage]
) -> list[DisplayMessage]:
    remaining = confirm_optimistic(persisted, optimistic)
    return [DisplayMessage.from_message(m) for m in persisted] + [
        DisplayMessage.from_optimistic(o) for o in remaining
    ]


async def purge_thread(store: Store, user_id: str, collection: str, thread_id: str) -> int:
    """Delete every message of a thread, then the thread record.

    Remaining messages are re-listed after each pass so an interrupted purge
    can simply be run again. Returns the number of messages deleted.
    """
    deleted = 0
    for _ in range(MAX_PURGE_PASSES):
        remaining = await store.list_messages(user_id, collection, thread_id)
        if not remaining:
            break
        for message in remaining:
            await store.delete_message(user_id, collection, thread_id, message.id)
            deleted += 1
    else:
        remaining = await store.list_messages(user_id, collection, thread_id)
        if remaining:
            raise WriteError(
                f"Thread {thread_id} still has {len(remaining)} messages after purge"
            )
    await store.delete_thread(user_id, collection, thread_id)
    return deleted


class ChatSession:
    def __init__(
        self,
        store: Store,
        generator: ReplyGenerator,
        user_id: str,
        config: SessionConfig,
        composer: str = "",
    ):
        self.store = store
        self.generator = generator
        self.user_id = user_id
        self.config = config
        self.composer = composer

        self.threads: list[Thread] = []
        self.active_thread_id: str | None = None
        self.persisted: list[Message] = []
        self.optimistic: list[OptimisticMessage] = []
        self.draft = ""
        self.sending = False
        self.notice: str | None = None
        self.alert: str | None = None
        self.pending_delete: str | None = None
        self.closed = False

        self._epoch = 0
        self._threads_sub: Subscription | None = None
        self._messages_sub: Subscription | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[["ChatSession"], None]] = []

    # -- observation -------------------------------------------------------

    def add_listener(self, listener: Callable[["ChatSession"], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[["ChatSession"], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def messages(self) -> list[DisplayMessage]:
        return merge_display(self.persisted, self.optimistic)

    @property
    def header_title(self) -> str:
        if self.active_thread_id is None:
            return self.config.default_header
        for thread in self.threads:
            if thread.id == self.active_thread_id and thread.title:
                return thread.title
        return self.config.default_header

    def filter_threads(self, query: str = "") -> list[Thread]:
        needle = query.strip().lower()
        if not needle:
            return list(self.threads)
        return [t for t in self.threads if t.title and needle in t.title.lower()]

    def view(self) -> SessionView:
        return SessionView(
            composer=self.composer,
            active_thread_id=self.active_thread_id,
            header_title=self.header_title,
            sending=self.sending,
            messages=self.messages,
            threads=list(self.threads),
            notice=self.notice,
            alert=self.alert,
            pending_delete=self.pending_delete,
        )

    # -- store snapshots ---------------------------------------------------

    def _on_threads(self, threads: list[Thread]) -> None:
        self.threads = threads
        self._notify()

    def _on_messages(self, thread_id: str, messages: list[Message]) -> None:
        # Snapshots queued before an unsubscribe may still arrive
        if thread_id != self.active_thread_id:
            return
        self.persisted = messages
        self.optimistic = confirm_optimistic(messages, self.optimistic)
        self._notify()

    async def open(self) -> None:
        if self._threads_sub is not None:
            return
        try:
            self._threads_sub = await self.store.subscribe_threads(
                self.user_id, self.config.collection, self._on_threads
            )
        except ReadError as e:
            logger.warning(f"Thread list subscription failed for {self.user_id}: {e}")

    @property
    def idle(self) -> bool:
        """True when nobody is watching and nothing is in flight."""
        return not self._listeners and not self._tasks and not self.sending

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._unsubscribe_messages()
        if self._threads_sub is not None:
            self._threads_sub.unsubscribe()
            self._threads_sub = None
        # Listeners see ``closed`` set and can end their streams
        self._notify()
        self._listeners.clear()

    def _unsubscribe_messages(self) -> None:
        if self._messages_sub is not None:
            self._messages_sub.unsubscribe()
            self._messages_sub = None

    async def _activate(self, thread_id: str) -> None:
        self._unsubscribe_messages()
        self.active_thread_id = thread_id
        try:
            subscription = await self.store.subscribe_messages(
                self.user_id,
                self.config.collection,
                thread_id,
                lambda messages: self._on_messages(thread_id, messages),
            )
        except ReadError as e:
            logger.warning(f"Message subscription failed for thread {thread_id}: {e}")
            return

        # Another switch (or close) happened while subscribing
        if self.closed or self.active_thread_id != thread_id:
            subscription.unsubscribe()
            return
        self._unsubscribe_messages()
        self._messages_sub = subscription

    # -- thread switching --------------------------------------------------

    def new_chat(self) -> None:
        """Reset to an empty, thread-less view. In-flight sends keep running."""
        self._epoch += 1
        self._unsubscribe_messages()
        self.active_thread_id = None
        self.persisted = []
        self.optimistic = []
        self.draft = ""
        self.notice = None
        self._notify()

    async def select_thread(self, thread_id: str) -> None:
        self.new_chat()
        await self._activate(thread_id)
        self._notify()

    # -- sending -----------------------------------------------------------

    def submit(self, text: str | None = None) -> asyncio.Task | None:
        """Echo ``text`` optimistically and schedule its round trip.

        Returns None without side effects when the text is blank or a send is
        already in flight.
        """
        text = self.draft if text is None else text
        if not text.strip() or self.sending:
            return None

        self.draft = ""
        self.sending = True
        self.notice = None
        pending = OptimisticMessage(role="user", text=text, kind="user")
        self.optimistic.append(pending)
        history = [HistoryEntry(role=m.role, text=m.text) for m in self.persisted]
        history.append(HistoryEntry(role="user", text=text))
        self._notify()

        return self._spawn(
            self._round_trip(pending, history, self.active_thread_id, self._epoch)
        )

    async def send(self, text: str | None = None) -> bool:
        task = self.submit(text)
        if task is None:
            return False
        await task
        return True

    async def _round_trip(
        self,
        pending: OptimisticMessage,
        history: list[HistoryEntry],
        thread_id: str | None,
        epoch: int,
    ) -> None:
        collection = self.config.collection
        is_new_thread = thread_id is None
        try:
            if is_new_thread:
                thread_id = await self.store.create_thread(
                    self.user_id, collection, ThreadCreate(title=self.config.placeholder_title)
                )
                if epoch == self._epoch:
                    await self._activate(thread_id)

            await self.store.append_message(
                self.user_id,
                collection,
                thread_id,
                MessageCreate(role="user", text=pending.text, kind="user", client_id=pending.client_id),
            )

            if is_new_thread:
                self._spawn(self._generate_title(thread_id, pending.text))

            reply = await self._generate_reply(history)
            await self.store.append_message(
                self.user_id,
                collection,
                thread_id,
                MessageCreate(role="model", text=reply, kind="bot"),
            )
        except StoreError as e:
            logger.warning(f"Send failed for {self.user_id}/{collection}: {e}")
            if epoch == self._epoch:
                self.optimistic = [o for o in self.optimistic if o.client_id != pending.client_id]
                self.notice = f"An error occurred: {e.message.rstrip('.')}."
        finally:
            self.sending = False
            self._notify()

    async def _generate_reply(self, history: list[HistoryEntry]) -> str:
        try:
            return await self.generator.generate(history, self.config.instruction_text)
        except GenerationError as e:
            logger.warning(f"Reply generation failed: {e.message}")
            return error_reply_text(e)

    async def _generate_title(self, thread_id: str, prompt: str) -> None:
        try:
            raw = await self.generator.generate(
                [HistoryEntry(role="user", text=prompt)], title_instruction(prompt)
            )
        except GenerationError as e:
            logger.warning(f"Title generation failed for thread {thread_id}: {e.message}")
            return
        title = clean_title(raw)
        if not title:
            return
        try:
            await self.store.update_thread(
                self.user_id, self.config.collection, thread_id, ThreadUpdate(title=title)
            )
        except StoreError as e:
            logger.warning(f"Saving title for thread {thread_id} failed: {e}")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task failed: {task.exception()!r}")

    async def drain(self) -> None:
        """Wait for in-flight sends and title updates to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- deletion ----------------------------------------------------------

    def request_delete(self, thread_id: str) -> None:
        self.pending_delete = thread_id
        self._notify()

    def cancel_delete(self) -> None:
        self.pending_delete = None
        self._notify()

    async def confirm_delete(self) -> bool:
        thread_id = self.pending_delete
        if thread_id is None:
            return False
        self.pending_delete = None
        self.alert = None
        try:
            deleted = await purge_thread(self.store, self.user_id, self.config.collection, thread_id)
        except StoreError as e:
            logger.error(f"Deleting thread {thread_id} failed: {e}")
            self.alert = DELETE_FAILED_ALERT
            self._notify()
            return False

        logger.info(f"Deleted thread {thread_id} with {deleted} messages")
        if thread_id == self.active_thread_id:
            self.new_chat()
        else:
            self._notify()
        return True

    async def delete_thread(self, thread_id: str) -> bool:
        """Request and immediately confirm deletion of ``thread_id``."""
        self.request_delete(thread_id)
        return await self.confirm_delete()
