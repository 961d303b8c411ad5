"""Pytest configuration and fixtures for WorkBridge tests.

Each test gets its own SQLite database file (aiosqlite) under tmp_path,
its own local storage directory and a fresh in-memory rate limiter.
"""

import os
from datetime import date
from typing import AsyncGenerator

# Settings are read at import time; keep tests off real infrastructure
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("UPLOAD_RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOCK_AFTER_SUBMIT", "true")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workbridge.auth.jwt import create_access_token
from workbridge.database import Base, get_db
from workbridge.main import app
from workbridge.models.user import User, UserRole
from workbridge.routers.files import get_storage
from workbridge.routers.onboarding import get_wizard_sessions
from workbridge.services.documents import DocumentService
from workbridge.services.gateway import PersistenceGateway
from workbridge.services.storage import LocalStorage
from workbridge.services.wizard import WizardController, build_wizard_sessions
from workbridge.utils.rate_limit import InMemoryRateLimiter


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """File-backed SQLite: parallel hydration opens several connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Services ─────────────────────────────────────────────────────

@pytest.fixture
def gateway(session_factory) -> PersistenceGateway:
    return PersistenceGateway(session_factory)


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "storage")


@pytest.fixture
def limiter() -> InMemoryRateLimiter:
    return InMemoryRateLimiter()


@pytest.fixture
def document_service(gateway, storage, limiter) -> DocumentService:
    return DocumentService(gateway, storage, limiter)


@pytest.fixture
def make_controller(gateway, document_service):
    """Controller factory with a long debounce; tests flush explicitly."""
    def _make(**kwargs) -> WizardController:
        kwargs.setdefault("debounce_seconds", 10)
        kwargs.setdefault("saved_clear_seconds", 0.05)
        return WizardController(gateway, document_service, **kwargs)

    return _make


# ── Test Data Fixtures ───────────────────────────────────────────

async def _create_user(session_factory, email: str, role: UserRole) -> User:
    async with session_factory() as session:
        user = User(email=email, full_name="Test Worker", role=role, is_active=True)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest_asyncio.fixture
async def worker(session_factory) -> User:
    return await _create_user(session_factory, "worker@example.com", UserRole.WORKER)


@pytest_asyncio.fixture
async def employer(session_factory) -> User:
    return await _create_user(session_factory, "employer@example.com", UserRole.EMPLOYER)


@pytest_asyncio.fixture
async def onboarding(gateway, worker):
    return await gateway.load_or_create(worker.id)


@pytest.fixture
def auth_headers(worker: User) -> dict:
    token = create_access_token(user_id=worker.id, role=worker.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def employer_headers(employer: User) -> dict:
    token = create_access_token(user_id=employer.id, role=employer.role.value)
    return {"Authorization": f"Bearer {token}"}


# ── Step payloads ────────────────────────────────────────────────

@pytest.fixture
def profile_data() -> dict:
    return {
        "full_name": "Asha Verma",
        "date_of_birth": date(date.today().year - 30, 1, 15).isoformat(),
        "gender": "female",
        "phone": "+919876543210",
        "email": "Asha.Verma@Example.com",
    }


@pytest.fixture
def skills_data() -> dict:
    return {
        "skills": [
            {"skill_name": "Welding", "experience_years": 6},
            {"skill_name": "Pipe fitting", "experience_years": 3},
        ],
        "certifications": [
            {"name": "AWS D1.1", "issuer": "American Welding Society", "issue_date": "2021-03-01"},
        ],
    }


@pytest.fixture
def work_history_data() -> dict:
    return {
        "jobs": [
            {
                "company_name": "Gulf Fabrication LLC",
                "role": "Welder",
                "start_date": "2018-01-01",
                "end_date": "2022-06-30",
                "is_current": False,
                "responsibilities": "Structural welding",
            },
            {
                "company_name": "Larsen Works",
                "role": "Senior Welder",
                "start_date": "2022-08-01",
                "is_current": True,
            },
        ],
    }


@pytest.fixture
def languages_data() -> dict:
    return {
        "languages": [
            {"language_name": "Hindi", "proficiency": "native"},
            {"language_name": "English", "proficiency": "conversational"},
        ],
    }


@pytest.fixture
def preferences_data() -> dict:
    return {
        "preferred_countries": ["UAE", "Qatar"],
        "expected_wage_currency": "usd",
        "expected_wage_amount": 1500,
        "contract_length": "2 years",
        "availability_date": date.today().isoformat(),
    }


def _document_entry(document_type: str, status: str = "uploaded") -> dict:
    key = f"user-1/onb-1/{document_type}.pdf"
    return {
        "document_type": document_type,
        "file_name": f"{document_type}.pdf",
        "file_url": key,
        "file_size": 1024,
        "mime_type": "application/pdf",
        "storage_key": key,
        "status": status,
    }


@pytest.fixture
def make_document():
    return _document_entry


@pytest.fixture
def required_documents() -> dict:
    return {
        doc_type: _document_entry(doc_type)
        for doc_type in ("aadhaar_front", "aadhaar_back", "pan")
    }


# ── HTTP client ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def wizard_sessions(session_factory, storage, limiter):
    sessions = build_wizard_sessions(
        session_factory, storage, limiter,
        debounce_seconds=10, saved_clear_seconds=0.05,
    )
    yield sessions
    await sessions.close_all()


@pytest_asyncio.fixture
async def client(session_factory, storage, wizard_sessions) -> AsyncGenerator[AsyncClient, None]:
    """Test client wired to the per-test database, storage and wizard registry."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_wizard_sessions] = lambda: wizard_sessions
    app.dependency_overrides[get_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP endpoint tests")
    config.addinivalue_line("markers", "integration: Integration tests")
