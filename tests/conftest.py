'''
Pytest configuration for the FastAPI application.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any application code is imported.
2. A fresh in-memory SQLite database per test, and a session bound to it.
3. An httpx AsyncClient talking to the app in-process, sharing the test session.
4. Instances of all service classes, pre-injected with the test session
   and a mocked NotificationService.
'''

import os

# Must happen before anything from src.tutorapp_backend is imported.
os.environ["TEST_MODE"] = "True"
os.environ.setdefault("DATABASE_URL_PROD", "sqlite+aiosqlite:///:memory:")
os.environ["DATABASE_URL_TEST"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["SCHEDULER_ENABLED"] = "False"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

import pytest
import httpx
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

# --- Constant Imports ----
from tests.constants import (
    TEST_ADMIN_ID,
    TEST_TUTOR_ID,
    TEST_OTHER_TUTOR_ID,
    TEST_STUDENT_ID,
    TEST_OTHER_STUDENT_ID,
    FIXED_NOW
)

# --- Application Imports ---
from src.tutorapp_backend.main import app
from src.tutorapp_backend.common.config import settings
from src.tutorapp_backend.database import engine as db_engine
from src.tutorapp_backend.database import models as db_models
from src.tutorapp_backend.services.user_service import UserService
from src.tutorapp_backend.services.availability_service import AvailabilityService
from src.tutorapp_backend.services.lesson_service import LessonService
from src.tutorapp_backend.services.earnings_service import EarningsApprovalService, EarningsConfigService
from src.tutorapp_backend.services.notification_service import NotificationService
from tests.database import factories


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio' (solves 'trio' error).
    2. Promotes the scope to 'session' (solves 'ScopeMismatch').
    """
    return "asyncio"


# --- 1. Database Fixtures ---

@pytest.fixture(scope="function")
async def db_engine_fixture() -> AsyncGenerator[AsyncEngine, None]:
    """A brand new in-memory database with the full schema."""
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your environment."

    test_engine = db_engine.build_engine(settings.DATABASE_URL_TEST)
    await db_engine.create_all_tables(test_engine)
    try:
        yield test_engine
    finally:
        await test_engine.dispose()


@pytest.fixture(scope="function")
async def db_session(db_engine_fixture: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Provides a single session for service-level tests and binds the factories to it.
    Factory objects are only added; fixtures flush them.
    """
    session = db_engine.build_session_factory(db_engine_fixture)()
    factories.test_db_session = session
    try:
        yield session
    finally:
        factories.test_db_session = None
        await session.rollback()
        await session.close()


@pytest.fixture(scope="function")
def frozen_now(mocker):
    """Pins the lesson clock to FIXED_NOW (Monday 2025-03-10 09:00)."""
    mocker.patch("src.tutorapp_backend.core.lesson_clock.local_now", return_value=FIXED_NOW)
    return FIXED_NOW


# --- 2. Account Fixtures ---

@pytest.fixture(scope="function")
async def test_admin_orm(db_session: AsyncSession) -> db_models.Admins:
    admin = factories.AdminFactory(id=TEST_ADMIN_ID, first_name="Ada", last_name="Admin")
    await db_session.flush()
    return admin


@pytest.fixture(scope="function")
async def test_tutor_orm(db_session: AsyncSession) -> db_models.Tutors:
    tutor = factories.TutorFactory(id=TEST_TUTOR_ID, first_name="Tom", last_name="Tutor")
    await db_session.flush()
    return tutor


@pytest.fixture(scope="function")
async def test_other_tutor_orm(db_session: AsyncSession) -> db_models.Tutors:
    tutor = factories.TutorFactory(id=TEST_OTHER_TUTOR_ID, first_name="Olga", last_name="Other")
    await db_session.flush()
    return tutor


@pytest.fixture(scope="function")
async def test_student_orm(db_session: AsyncSession) -> db_models.Students:
    student = factories.StudentFactory(id=TEST_STUDENT_ID, first_name="Sam", last_name="Student")
    await db_session.flush()
    return student


@pytest.fixture(scope="function")
async def test_other_student_orm(db_session: AsyncSession) -> db_models.Students:
    student = factories.StudentFactory(id=TEST_OTHER_STUDENT_ID, first_name="Sara", last_name="Second")
    await db_session.flush()
    return student


# --- 3. SERVICE FIXTURES ---

@pytest.fixture(scope="function")
def mock_notification_service() -> NotificationService:
    """A NotificationService whose notify() just records calls."""
    mock_service = MagicMock(spec=NotificationService)
    mock_service.notify = AsyncMock(return_value=None)
    return mock_service


@pytest.fixture(scope="function")
def user_service(db_session: AsyncSession) -> UserService:
    return UserService(db=db_session)


@pytest.fixture(scope="function")
def availability_service(db_session: AsyncSession) -> AvailabilityService:
    return AvailabilityService(db=db_session)


@pytest.fixture(scope="function")
def lesson_service(
    db_session: AsyncSession,
    user_service: UserService,
    availability_service: AvailabilityService,
    mock_notification_service: NotificationService
) -> LessonService:
    return LessonService(
        db=db_session,
        user_service=user_service,
        availability_service=availability_service,
        notification_service=mock_notification_service
    )


@pytest.fixture(scope="function")
def earnings_config_service(db_session: AsyncSession) -> EarningsConfigService:
    return EarningsConfigService(db=db_session)


@pytest.fixture(scope="function")
def earnings_service(
    db_session: AsyncSession,
    user_service: UserService,
    earnings_config_service: EarningsConfigService,
    mock_notification_service: NotificationService
) -> EarningsApprovalService:
    return EarningsApprovalService(
        db=db_session,
        user_service=user_service,
        config_service=earnings_config_service,
        notification_service=mock_notification_service
    )


# --- 4. API Client ---

@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    In-process client. Every request gets the test session, so data created by
    fixtures is visible and nothing is committed.
    """
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[db_engine.get_db_session] = override_get_db_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()
