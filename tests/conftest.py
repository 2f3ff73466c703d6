"""Pytest configuration and fixtures."""

from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import auth_utils
import crud
from config import Settings
from database import build_engine, build_sessionmaker, create_all
from main import create_app
from rate_limit import limiter

TEST_SECRET = "test-secret-key"
TEST_PASSWORD = "Sup3rSecret!"


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Start every test with empty per-client counters."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file and upload directory."""
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'onboarding.db'}",
        SECRET_KEY=TEST_SECRET,
        DOCUMENT_STORAGE_DIR=str(tmp_path / "documents"),
        CORS_ORIGINS=["http://frontend.test"],
    )


@pytest_asyncio.fixture
async def engine(test_settings):
    engine = build_engine(test_settings.DATABASE_URL)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(test_settings, engine):
    return create_app(settings=test_settings, engine=engine)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        yield client


@pytest.fixture
def make_user(db):
    """Create a user row directly; returns the ORM user."""
    async def _make(email: str, role: str = "CUSTOMER", password: str = TEST_PASSWORD):
        return await crud.create_user(
            db, email=email, password_hash=auth_utils.get_password_hash(password), role=role
        )
    return _make


@pytest.fixture
def make_customer(db, make_user):
    """Create a user plus its customer row; extra kwargs become customer fields."""
    async def _make(email: str, status: Optional[str] = None, decision_date=None, **fields):
        user = await make_user(email)
        customer = await crud.create_customer(db, user.id, **fields)
        if status is not None or decision_date is not None:
            customer = await crud.update_customer(
                db, customer, status=status or customer.status, decision_date=decision_date
            )
        return customer
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user) -> dict:
        token = auth_utils.create_user_token(user, secret_key=TEST_SECRET)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest_asyncio.fixture
async def employee(make_user):
    return await make_user("officer@bank.test", role="EMPLOYEE")
