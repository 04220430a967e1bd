"""Test config and shared fixtures."""
import pytest
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from main import app
from framework.billing import get_billing_provider
from framework.database.dependencies import get_db
from framework.repository.unit_of_work import UnitOfWork
from framework.security import CurrentUser, get_current_user
from framework.storage import get_storage
import apps.models  # noqa: F401  registers every table
from helpers import FakeBillingProvider, FakeObjectStorage, create_tenant, create_user

# In-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_user() -> CurrentUser:
    """Create test user."""
    return CurrentUser(id=1, email="owner@example.com", tenant_id=1, role="admin")


@pytest.fixture(scope="function")
async def async_session() -> AsyncGenerator[AsyncSession, None]:
    """Create async test database session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async_session_maker = sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def uow(async_session: AsyncSession) -> UnitOfWork:
    return UnitOfWork(session=async_session)


@pytest.fixture
def storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def billing() -> FakeBillingProvider:
    return FakeBillingProvider()


@pytest.fixture
async def client(
    async_session: AsyncSession,
    test_user: CurrentUser,
    storage: FakeObjectStorage,
    billing: FakeBillingProvider,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client."""
    async def _get_db():
        yield async_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = lambda: test_user
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_billing_provider] = lambda: billing

    # Use ASGITransport to test FastAPI app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def sample_user(async_session: AsyncSession) -> int:
    """Create sample user; returns its id."""
    return await create_user(async_session, user_id=1, email="owner@example.com", name="Owner")


@pytest.fixture
async def sample_tenant(async_session: AsyncSession, sample_user: int) -> int:
    """Create sample free-tier tenant owned by sample_user; returns its id."""
    return await create_tenant(async_session, owner_id=sample_user, tenant_id=1, name="Workshop")
