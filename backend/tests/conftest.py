# tests/conftest.py — Shared test fixtures
import os
import uuid
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User, UserRole, enum_value  # noqa: E402
from auth import AuthService, CurrentUser  # noqa: E402
from database import get_db_session  # noqa: E402
from main import app, build_services  # noqa: E402

PASSWORD = "Password123"


class RecordingTransport:
    """Transport double: records every emit, optionally failing chosen channels"""

    def __init__(self):
        self.sent = []  # (channel_id, kind, payload)
        self.failing = set()

    async def emit(self, channel_id, event_kind, payload):
        if channel_id in self.failing:
            raise ConnectionError(f"channel {channel_id} broken")
        self.sent.append((channel_id, event_kind, payload))

    def kinds(self, channel_id):
        return [kind for ch, kind, _ in self.sent if ch == channel_id]


@pytest.fixture(autouse=True)
def fresh_services():
    """Presence, audit locks and the coordinator are rebuilt per test"""
    build_services(app)
    yield app.state


@pytest.fixture
def realtime(fresh_services):
    transport = RecordingTransport()
    fresh_services.dispatcher.transport = transport

    def connect(user, channel_id=None):
        channel_id = channel_id or f"ch-{user.id[:8]}-{uuid.uuid4().hex[:6]}"
        fresh_services.presence.register(user.id, channel_id)
        return channel_id

    return SimpleNamespace(
        presence=fresh_services.presence,
        dispatcher=fresh_services.dispatcher,
        coordinator=fresh_services.coordinator,
        audit_log=fresh_services.audit_log,
        transport=transport,
        connect=connect,
    )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(db_session, name, email, role=UserRole.USER, tenant_id=None):
    user_id = str(uuid.uuid4())
    user = User(
        id=user_id,
        name=name,
        email=email,
        password_hash=AuthService.hash_password(PASSWORD),
        role=role,
        tenant_id=tenant_id or user_id,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user(db_session):
    """Tenant root: the admin's id is the tenant id"""
    return await create_user(db_session, "Alice Admin", "admin@taskhub.dev", UserRole.ADMIN)


@pytest_asyncio.fixture
async def manager_user(db_session, admin_user):
    return await create_user(db_session, "Mona Manager", "manager@taskhub.dev", UserRole.MANAGER, admin_user.id)


@pytest_asyncio.fixture
async def other_manager(db_session, admin_user):
    return await create_user(db_session, "Oscar Manager", "manager2@taskhub.dev", UserRole.MANAGER, admin_user.id)


@pytest_asyncio.fixture
async def test_user(db_session, admin_user):
    return await create_user(db_session, "Uma User", "user@taskhub.dev", UserRole.USER, admin_user.id)


@pytest_asyncio.fixture
async def second_user(db_session, admin_user):
    return await create_user(db_session, "Victor User", "user2@taskhub.dev", UserRole.USER, admin_user.id)


@pytest_asyncio.fixture
async def foreign_admin(db_session):
    """Admin of a different tenant"""
    return await create_user(db_session, "Fiona Foreign", "foreign@elsewhere.dev", UserRole.ADMIN)


def as_actor(user: User, team_ids=()) -> CurrentUser:
    return CurrentUser(
        id=user.id,
        name=user.name,
        email=user.email,
        role=enum_value(user.role),
        tenant_id=user.tenant_id,
        team_ids=list(team_ids),
    )


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.token_for(user)
    return {"Authorization": f"Bearer {token}"}
