'''
Pytest configuration for the FastAPI application.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any code is imported.
2. Providing a fresh in-memory database and session for each test.
3. Providing an httpx AsyncClient for endpoint testing.
4. Providing instances of all service classes, pre-injected with the test
   session, a frozen clock and a mocked notifier.
'''

import os

# Must happen before the settings object is created on first import.
os.environ["TEST_MODE"] = "True"
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import pytest
from typing import AsyncGenerator
from unittest.mock import MagicMock

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine

# --- Constant Imports ----
from tests.constants import (
    TEST_NOW,
    TEST_TUTOR_ID,
    TEST_STUDENT_ID,
    TEST_OTHER_STUDENT_ID,
    TEST_ADMIN_ID,
    DEFAULT_STUDENT_CREDITS
)
from tests.database.factories import (
    TutorProfileFactory,
    AvailabilityIntervalFactory,
    CreditLedgerFactory
)

# --- Application Imports ---
from src.tutor_booking_backend.main import app
from src.tutor_booking_backend.common.config import settings
from src.tutor_booking_backend.common.clock import FixedClock, get_clock
from src.tutor_booking_backend.database.engine import (
    build_engine,
    build_session_factory,
    create_all_tables,
    get_db_session
)
from src.tutor_booking_backend.database.db_enums import UserRole
from src.tutor_booking_backend.database import models as db_models
from src.tutor_booking_backend.services.security import JWTHandler
from src.tutor_booking_backend.services.tutor_service import TutorService
from src.tutor_booking_backend.services.slot_service import SlotService
from src.tutor_booking_backend.services.ledger_service import CreditLedgerService
from src.tutor_booking_backend.services.session_service import SessionService
from src.tutor_booking_backend.services.blackout_service import BlackoutReconciler
from src.tutor_booking_backend.services.availability_service import AvailabilityService
from src.tutor_booking_backend.services.contract_service import ContractService
from src.tutor_booking_backend.services.notification_service import (
    NotificationService,
    get_notification_service
)


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio' (aiosqlite does not run on trio).
    2. Promotes the scope to 'session' (solves 'ScopeMismatch').
    """
    return "asyncio"


# --- 1. DATABASE FIXTURES ---

@pytest.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A brand-new in-memory database per test."""
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."
    engine = build_engine(settings.DATABASE_URL_TEST)
    await create_all_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session = build_session_factory(db_engine)()
    try:
        yield session
    finally:
        await session.rollback()
        await session.close()


# --- 2. COLLABORATOR FIXTURES ---

@pytest.fixture(scope="function")
def clock() -> FixedClock:
    return FixedClock(TEST_NOW)


@pytest.fixture(scope="function")
def mock_notifier() -> NotificationService:
    """Records every notification instead of dispatching it."""
    return MagicMock(spec=NotificationService)


# --- 3. SERVICE FIXTURES ---

@pytest.fixture(scope="function")
def tutor_service(db_session: AsyncSession) -> TutorService:
    return TutorService(db=db_session)

@pytest.fixture(scope="function")
def slot_service(db_session: AsyncSession, tutor_service: TutorService, clock: FixedClock) -> SlotService:
    return SlotService(db=db_session, tutor_service=tutor_service, clock=clock)

@pytest.fixture(scope="function")
def ledger_service(db_session: AsyncSession, clock: FixedClock) -> CreditLedgerService:
    return CreditLedgerService(db=db_session, clock=clock)

@pytest.fixture(scope="function")
def session_service(
    db_session: AsyncSession,
    tutor_service: TutorService,
    slot_service: SlotService,
    ledger_service: CreditLedgerService,
    mock_notifier: NotificationService,
    clock: FixedClock
) -> SessionService:
    return SessionService(
        db=db_session,
        tutor_service=tutor_service,
        slot_service=slot_service,
        ledger_service=ledger_service,
        notification_service=mock_notifier,
        clock=clock
    )

@pytest.fixture(scope="function")
def blackout_reconciler(
    db_session: AsyncSession,
    session_service: SessionService,
    mock_notifier: NotificationService,
    clock: FixedClock
) -> BlackoutReconciler:
    return BlackoutReconciler(
        db=db_session,
        session_service=session_service,
        notification_service=mock_notifier,
        clock=clock
    )

@pytest.fixture(scope="function")
def availability_service(
    db_session: AsyncSession,
    tutor_service: TutorService,
    blackout_reconciler: BlackoutReconciler,
    clock: FixedClock
) -> AvailabilityService:
    return AvailabilityService(
        db=db_session,
        tutor_service=tutor_service,
        blackout_reconciler=blackout_reconciler,
        clock=clock
    )

@pytest.fixture(scope="function")
def contract_service(
    db_session: AsyncSession,
    tutor_service: TutorService,
    slot_service: SlotService,
    ledger_service: CreditLedgerService,
    session_service: SessionService,
    mock_notifier: NotificationService,
    clock: FixedClock
) -> ContractService:
    return ContractService(
        db=db_session,
        tutor_service=tutor_service,
        slot_service=slot_service,
        ledger_service=ledger_service,
        session_service=session_service,
        notification_service=mock_notifier,
        clock=clock
    )


# --- 4. DATA FIXTURES ---

@pytest.fixture(scope="function")
async def test_tutor_orm(db_session: AsyncSession) -> db_models.TutorProfiles:
    """
    An approved tutor with a 20 minute grid, credit factor 1, one hour of
    notice and a Monday/Wednesday 09:00-12:00 UTC template.
    """
    tutor = TutorProfileFactory.build(id=TEST_TUTOR_ID)
    db_session.add(tutor)
    await db_session.flush()
    db_session.add_all([
        AvailabilityIntervalFactory.build(tutor_id=tutor.id, day_of_week=0, start_minute=9 * 60, end_minute=12 * 60),
        AvailabilityIntervalFactory.build(tutor_id=tutor.id, day_of_week=2, start_minute=9 * 60, end_minute=12 * 60),
    ])
    await db_session.flush()
    return tutor


@pytest.fixture(scope="function")
async def funded_ledger_orm(
    db_session: AsyncSession,
    test_tutor_orm: db_models.TutorProfiles
) -> db_models.CreditLedgers:
    ledger = CreditLedgerFactory.build(
        student_id=TEST_STUDENT_ID,
        tutor_id=test_tutor_orm.id,
        total_purchased=DEFAULT_STUDENT_CREDITS
    )
    db_session.add(ledger)
    await db_session.flush()
    return ledger


# --- 5. HTTP CLIENT FIXTURES ---

@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    clock: FixedClock,
    mock_notifier: NotificationService
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Runs requests against the app in-process. Each request works inside a
    SAVEPOINT of the test session, released on success and rolled back on
    error, mirroring the request-scoped transaction of get_db_session.
    """
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        nested = await db_session.begin_nested()
        try:
            yield db_session
            if nested.is_active:
                await nested.commit()
        except Exception:
            if nested.is_active:
                await nested.rollback()
            raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notification_service] = lambda: mock_notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers_for(user_id, role: UserRole) -> dict:
    token = JWTHandler.create_access_token(user_id, role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def student_headers() -> dict:
    return auth_headers_for(TEST_STUDENT_ID, UserRole.STUDENT)

@pytest.fixture(scope="function")
def other_student_headers() -> dict:
    return auth_headers_for(TEST_OTHER_STUDENT_ID, UserRole.STUDENT)

@pytest.fixture(scope="function")
def tutor_headers() -> dict:
    return auth_headers_for(TEST_TUTOR_ID, UserRole.TUTOR)

@pytest.fixture(scope="function")
def admin_headers() -> dict:
    return auth_headers_for(TEST_ADMIN_ID, UserRole.ADMIN)
