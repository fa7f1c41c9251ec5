from datetime import timedelta
from typing import Optional
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import settings
from app.infrastructure.database import get_db
from app.infrastructure.redis import redis_manager, RedisBookingSessionStore
from app.domain.booking.service import AgentBookingService, BookingConversationService
from app.domain.booking.store import BookingSessionStore, InMemoryBookingSessionStore

_memory_store: Optional[InMemoryBookingSessionStore] = None


def get_session_store() -> BookingSessionStore:
    """Session store selected by SESSION_BACKEND"""
    global _memory_store
    ttl = timedelta(minutes=settings.BOOKING_SESSION_TTL_MINUTES)
    if settings.SESSION_BACKEND == "redis":
        return RedisBookingSessionStore(redis_manager.client, ttl)
    if _memory_store is None:
        _memory_store = InMemoryBookingSessionStore(ttl)
    return _memory_store


async def get_conversation_service(
    db: AsyncSession = Depends(get_db),
    store: BookingSessionStore = Depends(get_session_store)
) -> BookingConversationService:
    return BookingConversationService(db, store)


async def get_agent_booking_service(
    db: AsyncSession = Depends(get_db)
) -> AgentBookingService:
    return AgentBookingService(db)
