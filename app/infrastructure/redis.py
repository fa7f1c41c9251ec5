from typing import Optional, AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
import asyncio
import logging
import uuid
import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.exceptions import StoreError, handle_store_error
from app.domain.booking.session import BookingSession
from app.domain.booking.store import BookingSessionStore, SESSION_RETENTION_FACTOR

logger = logging.getLogger(__name__)


class RedisManager:
    """Redis connection manager and utilities"""

    def __init__(self):
        self._redis_client: Optional[Redis] = None
        self._is_connected = False

    async def connect(self, redis_url: str) -> None:
        """Establish Redis connection"""
        try:
            self._redis_client = redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=False,
                max_connections=20,
                retry_on_timeout=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                health_check_interval=30
            )

            # Test connection
            await self._redis_client.ping()
            self._is_connected = True
            logger.info("Redis connection established")

        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._is_connected = False
            raise

    async def disconnect(self) -> None:
        """Close Redis connection"""
        if self._redis_client:
            await self._redis_client.aclose()
            self._is_connected = False
            logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        """Get Redis client"""
        if not self._is_connected or not self._redis_client:
            raise RuntimeError("Redis is not connected")
        return self._redis_client

    async def is_healthy(self) -> bool:
        """Check Redis health"""
        try:
            if self._redis_client:
                await self._redis_client.ping()
                return True
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
        return False


# Global Redis manager instance
redis_manager = RedisManager()


class LockService:
    """Service for distributed locks"""

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def acquire_lock(
        self,
        lock_key: str,
        timeout: int = 30,
        retry_delay: float = 0.1,
        max_retries: int = 30
    ) -> Optional[str]:
        """Acquire distributed lock; returns the owner token or None when busy"""
        lock_value = str(uuid.uuid4())
        lock_key_full = f"lock:{lock_key}"

        for attempt in range(max_retries):
            # SET NX with expiry so a crashed holder cannot block forever
            result = await self.redis.set(
                lock_key_full,
                lock_value,
                ex=timeout,
                nx=True
            )

            if result:
                return lock_value

            await asyncio.sleep(retry_delay)

        return None

    async def release_lock(self, lock_key: str, lock_value: str) -> bool:
        """Release a lock only if we still own it"""
        try:
            result = await self.redis.eval(self.RELEASE_SCRIPT, 1, f"lock:{lock_key}", lock_value)
            return result > 0
        except RedisError as e:
            logger.error(f"Lock release error: {e}")
            return False


class RedisBookingSessionStore(BookingSessionStore):
    """Booking sessions as JSON under ``booking_session:<conversation_id>``"""

    KEY_PREFIX = "booking_session"

    def __init__(self, redis_client: Redis, ttl: timedelta, lock_timeout: int = 30):
        self.redis = redis_client
        self.retention_seconds = int((ttl * SESSION_RETENTION_FACTOR).total_seconds())
        self.lock_timeout = lock_timeout
        self.locks = LockService(redis_client)

    def _key(self, conversation_id: str) -> str:
        return f"{self.KEY_PREFIX}:{conversation_id}"

    async def get(self, conversation_id: str) -> Optional[BookingSession]:
        try:
            value = await self.redis.get(self._key(conversation_id))
        except RedisError as e:
            raise handle_store_error(e, "loading booking session") from e
        if value is None:
            return None
        return BookingSession.model_validate_json(value)

    async def save(self, session: BookingSession) -> None:
        try:
            await self.redis.setex(
                self._key(session.conversation_id),
                self.retention_seconds,
                session.model_dump_json()
            )
        except RedisError as e:
            raise handle_store_error(e, "saving booking session") from e

    async def delete(self, conversation_id: str) -> bool:
        try:
            return await self.redis.delete(self._key(conversation_id)) > 0
        except RedisError as e:
            raise handle_store_error(e, "deleting booking session") from e

    @asynccontextmanager
    async def lock(self, conversation_id: str) -> AsyncIterator[None]:
        lock_key = self._key(conversation_id)
        try:
            token = await self.locks.acquire_lock(lock_key, timeout=self.lock_timeout)
        except RedisError as e:
            raise handle_store_error(e, "locking booking session") from e
        if token is None:
            raise StoreError(
                message="Conversation is busy, please retry",
                details={"conversation_id": conversation_id},
                error_code="SESSION_LOCKED"
            )
        try:
            yield
        finally:
            await self.locks.release_lock(lock_key, token)


async def init_redis_services(redis_url: str) -> None:
    """Connect the shared Redis client"""
    await redis_manager.connect(redis_url)
    logger.info("Redis services initialized")


async def close_redis_services() -> None:
    """Close all Redis services"""
    await redis_manager.disconnect()
    logger.info("Redis services closed")
