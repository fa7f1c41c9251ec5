"""
Booking session stores

A store owns the session records between messages and hands out a
per-conversation lock so one message is processed at a time per
conversation. Stores keep records for ``SESSION_RETENTION_FACTOR`` times
the idle TTL so the state machine can still see, and report, an expired
session before it is dropped.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Dict, Optional, Tuple
import logging

from app.domain.booking.session import BookingSession

logger = logging.getLogger(__name__)

SESSION_RETENTION_FACTOR = 2


class BookingSessionStore(ABC):
    """Persistence for booking sessions keyed by conversation id"""

    @abstractmethod
    async def get(self, conversation_id: str) -> Optional[BookingSession]:
        ...

    @abstractmethod
    async def save(self, session: BookingSession) -> None:
        ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> bool:
        ...

    @abstractmethod
    def lock(self, conversation_id: str):
        """Async context manager serialising work on one conversation"""


class InMemoryBookingSessionStore(BookingSessionStore):
    """Process-local store; suitable for a single worker and for tests"""

    def __init__(
        self,
        ttl: timedelta,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.retention = ttl * SESSION_RETENTION_FACTOR
        self.clock = clock
        self._sessions: Dict[str, Tuple[BookingSession, datetime]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def get(self, conversation_id: str) -> Optional[BookingSession]:
        entry = self._sessions.get(conversation_id)
        if entry is None:
            return None
        session, stored_at = entry
        if self.clock() - stored_at > self.retention:
            del self._sessions[conversation_id]
            return None
        return session

    async def save(self, session: BookingSession) -> None:
        self._sessions[session.conversation_id] = (session, self.clock())
        self._purge()

    async def delete(self, conversation_id: str) -> bool:
        return self._sessions.pop(conversation_id, None) is not None

    @asynccontextmanager
    async def lock(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._lock_users[conversation_id] = self._lock_users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[conversation_id] -= 1
            if not self._lock_users[conversation_id]:
                del self._lock_users[conversation_id]
                del self._locks[conversation_id]

    def _purge(self) -> None:
        now = self.clock()
        stale = [
            key for key, (_, stored_at) in self._sessions.items()
            if now - stored_at > self.retention
        ]
        for key in stale:
            del self._sessions[key]
        if stale:
            logger.debug(f"Purged {len(stale)} stale booking sessions")

    def __len__(self) -> int:
        return len(self._sessions)
