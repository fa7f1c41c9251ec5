import asyncio
import pytest
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.exceptions import StoreError
from app.domain.booking.session import BookingSession, BookingStep, DoctorSnapshot
from app.domain.booking.store import InMemoryBookingSessionStore
from app.infrastructure.redis import RedisBookingSessionStore

TTL = timedelta(minutes=30)
FIXED_NOW = datetime(2026, 10, 19, 10, 0)


def make_session(conversation_id: str = "conv-1", **changes) -> BookingSession:
    return BookingSession(conversation_id=conversation_id, updated_at=FIXED_NOW, **changes)


@pytest.mark.unit
@pytest.mark.booking
class TestBookingSession:

    def test_advance_returns_new_session(self) -> None:
        session = make_session()
        later = FIXED_NOW + timedelta(minutes=5)

        advanced = session.advance(later, step=BookingStep.DOCTOR_SELECTED, offered_doctor_ids=["d1"])

        assert session.step == BookingStep.INITIAL
        assert advanced.step == BookingStep.DOCTOR_SELECTED
        assert advanced.updated_at == later

    def test_reset_keeps_only_conversation_id(self) -> None:
        session = make_session(
            step=BookingStep.CONFIRMATION,
            doctor=DoctorSnapshot(id="d1", first_name="Sarah", last_name="Lee"),
            appointment_date=date(2026, 10, 26),
            appointment_time="9:00",
        )

        reset = session.reset(FIXED_NOW)

        assert session.appointment_time == "09:00"
        assert reset.conversation_id == "conv-1"
        assert reset.step == BookingStep.INITIAL
        assert reset.doctor is None
        assert reset.appointment_date is None

    def test_expiry_is_measured_from_last_activity(self) -> None:
        session = make_session(step=BookingStep.PATIENT_INFO)

        assert not make_session().is_expired(FIXED_NOW + timedelta(days=1), TTL)
        assert not session.is_expired(FIXED_NOW + TTL, TTL)
        assert session.is_expired(FIXED_NOW + TTL + timedelta(seconds=1), TTL)


@pytest.mark.unit
@pytest.mark.booking
class TestInMemoryStore:

    async def test_save_get_delete(self, clock) -> None:
        store = InMemoryBookingSessionStore(TTL, clock=clock)

        await store.save(make_session())

        assert (await store.get("conv-1")).conversation_id == "conv-1"
        assert await store.get("conv-2") is None
        assert await store.delete("conv-1") is True
        assert await store.delete("conv-1") is False

    async def test_expired_session_is_kept_until_retention_ends(self, clock) -> None:
        store = InMemoryBookingSessionStore(TTL, clock=clock)
        await store.save(make_session())

        clock.advance(minutes=45)
        assert await store.get("conv-1") is not None

        clock.advance(minutes=16)
        assert await store.get("conv-1") is None
        assert len(store) == 0

    async def test_save_purges_stale_sessions(self, clock) -> None:
        store = InMemoryBookingSessionStore(TTL, clock=clock)
        await store.save(make_session("old"))

        clock.advance(hours=2)
        await store.save(make_session("new"))

        assert len(store) == 1

    async def test_lock_serialises_one_conversation(self) -> None:
        store = InMemoryBookingSessionStore(TTL)
        events = []

        async def worker(name: str) -> None:
            async with store.lock("conv-1"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )
        assert store._locks == {}

    async def test_different_conversations_do_not_block(self) -> None:
        store = InMemoryBookingSessionStore(TTL)

        async with store.lock("conv-1"):
            async with store.lock("conv-2"):
                pass


@pytest.fixture
def redis_client() -> AsyncMock:
    client = AsyncMock()
    client.set.return_value = True
    client.eval.return_value = 1
    return client


@pytest.mark.unit
@pytest.mark.booking
class TestRedisStore:

    async def test_save_uses_retention_expiry(self, redis_client: AsyncMock) -> None:
        store = RedisBookingSessionStore(redis_client, TTL)
        session = make_session(step=BookingStep.PATIENT_INFO)

        await store.save(session)

        key, seconds, payload = redis_client.setex.await_args.args
        assert key == "booking_session:conv-1"
        assert seconds == 3600
        assert BookingSession.model_validate_json(payload) == session

    async def test_get_round_trips_json(self, redis_client: AsyncMock) -> None:
        session = make_session(step=BookingStep.DATE_TIME, reason="back pain")
        redis_client.get.return_value = session.model_dump_json().encode()
        store = RedisBookingSessionStore(redis_client, TTL)

        assert await store.get("conv-1") == session

    async def test_missing_session(self, redis_client: AsyncMock) -> None:
        redis_client.get.return_value = None
        store = RedisBookingSessionStore(redis_client, TTL)

        assert await store.get("conv-1") is None

    async def test_delete_reports_whether_a_key_was_removed(self, redis_client: AsyncMock) -> None:
        redis_client.delete.return_value = 0
        store = RedisBookingSessionStore(redis_client, TTL)

        assert await store.delete("conv-1") is False

    async def test_lock_acquires_and_releases(self, redis_client: AsyncMock) -> None:
        store = RedisBookingSessionStore(redis_client, TTL)

        async with store.lock("conv-1"):
            pass

        set_call = redis_client.set.await_args
        assert set_call.args[0] == "lock:booking_session:conv-1"
        assert set_call.kwargs == {"ex": 30, "nx": True}
        token = set_call.args[1]
        assert redis_client.eval.await_args.args[-1] == token

    async def test_busy_lock_is_a_store_error(self, redis_client: AsyncMock) -> None:
        store = RedisBookingSessionStore(redis_client, TTL)
        store.locks.acquire_lock = AsyncMock(return_value=None)

        with pytest.raises(StoreError) as exc_info:
            async with store.lock("conv-1"):
                pass

        assert exc_info.value.error_code == "SESSION_LOCKED"

    async def test_redis_failure_is_a_store_error(self, redis_client: AsyncMock) -> None:
        redis_client.get.side_effect = RedisConnectionError("Connection refused")
        store = RedisBookingSessionStore(redis_client, TTL)

        with pytest.raises(StoreError) as exc_info:
            await store.get("conv-1")

        assert exc_info.value.message == "Record store connection failed"
