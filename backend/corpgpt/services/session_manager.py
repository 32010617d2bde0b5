import asyncio
import logging
import time
from typing import Callable

from corpgpt.composers import Composer
from corpgpt.services.chat_session import ChatSession
from corpgpt.services.gemini_service import ReplyGenerator
from corpgpt.services.store import Store

logger = logging.getLogger(__name__)


class SessionManager:
    """Keeps one open ChatSession per (user, composer).

    Sessions nobody has touched for ``idle_timeout`` seconds are closed by
    ``sweep`` once they have no listeners and nothing in flight.
    """

    def __init__(
        self,
        store: Store,
        generator: ReplyGenerator,
        idle_timeout: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.generator = generator
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: dict[tuple[str, str], ChatSession] = {}
        self._last_used: dict[tuple[str, str], float] = {}
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task | None = None

    async def get(self, user_id: str, composer: Composer) -> ChatSession:
        key = (user_id, composer.key)
        async with self._lock:
            session = self._sessions.get(key)
            if session is None:
                session = ChatSession(
                    self.store,
                    self.generator,
                    user_id,
                    composer.session_config(),
                    composer=composer.key,
                )
                await session.open()
                self._sessions[key] = session
                logger.info(f"Opened {composer.key} session for {user_id}")
            self._last_used[key] = self._clock()
            return session

    def peek(self, user_id: str, composer_key: str) -> ChatSession | None:
        return self._sessions.get((user_id, composer_key))

    def __len__(self) -> int:
        return len(self._sessions)

    async def sweep(self) -> int:
        """Close idle sessions that outlived ``idle_timeout``. Returns how many were closed."""
        now = self._clock()
        async with self._lock:
            expired = [
                key
                for key, session in self._sessions.items()
                if session.idle and now - self._last_used.get(key, now) >= self.idle_timeout
            ]
            for key in expired:
                self._last_used.pop(key, None)
                await self._sessions.pop(key).close()
        if expired:
            logger.info(f"Closed {len(expired)} idle sessions")
        return len(expired)

    def start_sweeper(self, interval: float) -> None:
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_forever(interval))

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.sweep()

    async def close_user(self, user_id: str) -> None:
        async with self._lock:
            keys = [k for k in self._sessions if k[0] == user_id]
            for key in keys:
                self._last_used.pop(key, None)
                await self._sessions.pop(key).close()

    async def close_all(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._last_used.clear()
        for session in sessions:
            await session.drain()
            await session.close()
