import pytest
from datetime import date, datetime, timedelta
from typing import AsyncGenerator, List
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.api.deps import get_session_store
from app.infrastructure.database import get_db, Base
from app.domain.appointments import models as appointment_models  # noqa: F401
from app.domain.booking.store import InMemoryBookingSessionStore
from app.domain.doctors.models import Doctor
from app.domain.doctors.repository import DoctorRepository
from app.domain.patients.models import Patient, Gender
from app.domain.patients.repository import PatientRepository


# In-memory SQLite shared across connections
TEST_DATABASE_URL = "sqlite+aiosqlite://"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

# A Monday morning
FIXED_NOW = datetime(2026, 10, 19, 10, 0)


class FakeClock:
    """Settable clock for idle-expiry tests"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def upcoming(weekday: int, after: date = None) -> date:
    """First date strictly after ``after`` (default today) falling on ``weekday``"""
    start = after or date.today()
    days_ahead = (weekday - start.weekday()) % 7 or 7
    return start + timedelta(days=days_ahead)


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock(FIXED_NOW)


@pytest.fixture(scope="function")
def session_store() -> InMemoryBookingSessionStore:
    return InMemoryBookingSessionStore(timedelta(minutes=30))


@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    session_store: InMemoryBookingSessionStore
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and session store overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_store] = lambda: session_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def doctors(db_session: AsyncSession) -> List[Doctor]:
    """Seed doctors; display order is Chen, Johnson, Lee (active only)."""
    repo = DoctorRepository(db_session)
    lee = await repo.create({
        "first_name": "Sarah",
        "last_name": "Lee",
        "specialization": "Cardiology",
        "license_number": "MD-1001",
        "hospital_affiliation": "City General",
        "email": "sarah.lee@clinic.test",
        "availability": {
            "monday": {"available": True, "start_time": "09:00", "end_time": "12:00"},
            "tuesday": {"available": False, "start_time": "09:00", "end_time": "17:00"},
        },
    })
    johnson = await repo.create({
        "first_name": "Michael",
        "last_name": "Johnson",
        "specialization": "General Practice",
        "license_number": "MD-1002",
        "hospital_affiliation": "City General",
        "email": "michael.johnson@clinic.test",
        "phone": "555-0199",
        "availability": {},
    })
    chen = await repo.create({
        "first_name": "Emily",
        "last_name": "Chen",
        "specialization": "Pediatrics",
        "license_number": "MD-1003",
        "hospital_affiliation": "Northside Clinic",
        "email": "emily.chen@clinic.test",
        "availability": {
            day: {"available": True, "startTime": "9:00", "endTime": "17:00"}
            for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
        },
    })
    retired = await repo.create({
        "first_name": "Walter",
        "last_name": "Adams",
        "specialization": "Dermatology",
        "license_number": "MD-0999",
        "hospital_affiliation": "City General",
        "email": "walter.adams@clinic.test",
        "availability": {},
        "is_active": False,
    })
    await db_session.commit()
    return [chen, johnson, lee, retired]


@pytest.fixture(scope="function")
async def patient(db_session: AsyncSession) -> Patient:
    repo = PatientRepository(db_session)
    patient = await repo.create({
        "first_name": "John",
        "last_name": "Smith",
        "email": "john.smith@example.com",
        "phone": "555-123-4567",
        "gender": Gender.MALE,
        "age": 42,
    })
    await db_session.commit()
    return patient


@pytest.fixture(scope="function")
def next_monday() -> date:
    return upcoming(0)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "booking: mark test as conversational booking related"
    )
    config.addinivalue_line(
        "markers", "appointments: mark test as appointment management related"
    )
