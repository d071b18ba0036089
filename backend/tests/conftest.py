# tests/conftest.py — Shared test fixtures
import os
import uuid

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User
from auth import AuthService
from database import get_db_session
from main import app

TEST_PASSWORD = "TestPassword123!"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory):
    """HTTP test client with overridden DB dependency"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _make_user(db_session, email: str, username: str) -> User:
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        username=username,
        password_hash=AuthService.hash_password(TEST_PASSWORD),
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def owner(db_session):
    """User who creates the project under test"""
    return await _make_user(db_session, "owner@taskboard.dev", "owner")


@pytest_asyncio.fixture
async def member(db_session):
    """User invited to the project with the plain member role"""
    return await _make_user(db_session, "member@taskboard.dev", "member")


@pytest_asyncio.fixture
async def admin(db_session):
    """User invited to the project with the admin role"""
    return await _make_user(db_session, "admin@taskboard.dev", "admin")


@pytest_asyncio.fixture
async def outsider(db_session):
    """User with no relation to the project"""
    return await _make_user(db_session, "outsider@taskboard.dev", "outsider")


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token(AuthService.token_claims(user))
    return {"Authorization": f"Bearer {token}"}


# ============================================================
# API HELPERS
# ============================================================

async def create_project(client: AsyncClient, user: User, name: str = "Website Redesign") -> dict:
    resp = await client.post("/api/projects", json={"name": name}, headers=get_auth_headers(user))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["project"]


async def invite(client: AsyncClient, project_id: str, by: User, user: User, role: str = "member") -> dict:
    resp = await client.post(
        f"/api/projects/{project_id}/invite",
        json={"email": user.email, "role": role},
        headers=get_auth_headers(by),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["project"]


async def create_board(client: AsyncClient, user: User, project_id: str, name: str = "Sprint 1") -> dict:
    resp = await client.post(
        "/api/boards", json={"name": name, "project": project_id}, headers=get_auth_headers(user),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["board"]


async def create_task(client: AsyncClient, user: User, board_id: str, title: str, **fields) -> dict:
    resp = await client.post(
        "/api/tasks", json={"title": title, "board": board_id, **fields}, headers=get_auth_headers(user),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["task"]


async def list_column(client: AsyncClient, user: User, board_id: str, status: str) -> list:
    resp = await client.get(
        f"/api/boards/{board_id}/tasks",
        params={"status": status, "sort_by": "position", "sort_order": "asc"},
        headers=get_auth_headers(user),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["tasks"]


@pytest_asyncio.fixture
async def project(client, owner):
    return await create_project(client, owner)


@pytest_asyncio.fixture
async def board(client, owner, project):
    return await create_board(client, owner, project["id"])
