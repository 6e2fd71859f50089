"""Pytest configuration and fixtures."""
import asyncio
import os
import uuid
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy import update
from sqlalchemy.pool import NullPool, StaticPool
from fastapi.testclient import TestClient

TEST_DB_PATH = Path("test_taskflow.db")
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()

TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("NOTIFICATION_MODE", "stub")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("DEFAULT_ADMIN_EMAIL", "bootstrap-admin@example.com")

from taskflow.main import app  # noqa: E402
from taskflow.database import Base, get_db  # noqa: E402
from taskflow.core.security import UserRole  # noqa: E402
from taskflow.crud.task import task_store  # noqa: E402
from taskflow.models.task import Task  # noqa: E402
from taskflow.models.user import User  # noqa: E402
from taskflow.services.auth_service import AuthService  # noqa: E402
from taskflow.services.notification_service import NotificationService  # noqa: E402
from taskflow.utils.security import create_access_token  # noqa: E402


# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """Create a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    await asyncio.wait_for(NotificationService.drain(), timeout=5)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
def client(db_session: AsyncSession):
    """Create a test client overriding database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sent_notifications(monkeypatch):
    """Capture delivered notifications instead of handing them to the mail gateway.

    Service-level deliveries run in the background; await
    ``NotificationService.drain()`` before asserting on the list.
    """
    calls = []

    async def fake_deliver(notice):
        calls.append(
            {"task_id": notice.task_id, "recipient": notice.recipient_id, "actor": notice.actor_id, "kind": notice.kind.value}
        )
        return {"ok": True}

    monkeypatch.setattr(NotificationService, "deliver", staticmethod(fake_deliver))
    return calls


async def _make_user(db_session: AsyncSession, *, name: str, email: str, role: UserRole) -> User:
    user = User(
        id=uuid.uuid4(),
        name=name,
        email=email,
        password_hash=AuthService.hash_password("testpassword"),
        role=role.value,
        department="Engineering",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession):
    """Create an administrator."""
    return await _make_user(db_session, name="Ada Admin", email="admin@example.com", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def member_user(db_session: AsyncSession):
    """Create a team member."""
    return await _make_user(db_session, name="Mia Member", email="member@example.com", role=UserRole.TEAM_MEMBER)


@pytest_asyncio.fixture
async def other_member(db_session: AsyncSession):
    """Create a second team member who is not involved in fixture tasks."""
    return await _make_user(db_session, name="Otto Other", email="other@example.com", role=UserRole.TEAM_MEMBER)


def _headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(client, admin_user):
    """Get authentication headers for the administrator."""
    return _headers(admin_user)


@pytest.fixture
def member_headers(client, member_user):
    """Get authentication headers for the team member."""
    return _headers(member_user)


@pytest.fixture
def other_headers(client, other_member):
    """Get authentication headers for the uninvolved team member."""
    return _headers(other_member)


@pytest.fixture
def lose_next_save(monkeypatch):
    """Make the next task write lose a race against a committed competing write.

    Call with the column values the competing writer sets; the task version is
    bumped as well so the pending write no longer matches.
    """
    original_save = task_store.save

    def arm(**values):
        async def racing_save(db, *, task):
            race_engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)
            try:
                async with race_engine.begin() as conn:
                    table = Task.__table__
                    await conn.execute(
                        update(table)
                        .where(table.c.id == task.id)
                        .values(version=table.c.version + 1, **values)
                    )
            finally:
                await race_engine.dispose()
            monkeypatch.setattr(task_store, "save", original_save)
            return await original_save(db, task=task)

        monkeypatch.setattr(task_store, "save", racing_save)

    return arm
