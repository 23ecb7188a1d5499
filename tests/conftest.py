"""Shared pytest fixtures for the RBAC tests."""

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.database.engine import build_engine, build_sessionmaker, get_db, init_db
from app.features.permissions.seed import seed_rbac
from app.features.projects.models import Project
from app.features.users.dependencies import get_optional_user
from app.features.users.models import User


@pytest_asyncio.fixture()
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """Provide a file-backed SQLite database with every table created."""

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rbac.sqlite'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


@pytest_asyncio.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def seeded(db: AsyncSession) -> AsyncSession:
    """Seed roles, permissions and the matrix before any user exists."""

    await seed_rbac(db)
    return db


@pytest.fixture()
def make_user(db: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Create users with increasing ``created_at`` so the oldest is predictable."""

    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    async def _make_user(email: Optional[str] = None, **fields) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            appwrite_id=fields.pop("appwrite_id", f"appwrite-{n}"),
            email=email or f"user{n}@example.com",
            name=fields.pop("name", f"User {n}"),
            created_at=start + timedelta(minutes=n),
            **fields,
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture()
def make_project(db: AsyncSession) -> Callable[[str], Awaitable[Project]]:
    async def _make_project(name: str = "SOC 2 readiness") -> Project:
        project = Project(name=name)
        db.add(project)
        await db.commit()
        return project

    return _make_project


def auth(user: User) -> dict[str, str]:
    """Request headers identifying ``user`` to the test identity override."""

    return {"Authorization": f"Bearer {user.id}"}


def install_overrides(app: FastAPI, session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Bind ``app`` to the test database and a bearer-token-is-user-id identity."""

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _get_optional_user(
        request: Request,
        db: AsyncSession = Depends(get_db),
    ) -> Optional[User]:
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        user = await db.get(User, token)
        if user is None or not user.is_active:
            return None
        return user

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_optional_user] = _get_optional_user


@pytest.fixture()
def app(session_factory: async_sessionmaker[AsyncSession]) -> Iterator[FastAPI]:
    """Return the application bound to the per-test database."""

    from app.main import app as application

    install_overrides(application, session_factory)
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def grant(db: AsyncSession) -> Callable[..., Awaitable[None]]:
    """Assign a role by code at organization scope, or on ``project_id``."""

    from app.features.permissions import repository

    async def _grant(user: User, role_code: str, project_id: Optional[int] = None) -> None:
        role = await repository.role_by_code(db, role_code)
        assert role is not None, role_code
        if project_id is None:
            await repository.add_org_roles(db, user.id, [role.id])
        else:
            await repository.add_project_roles(db, user.id, project_id, [role.id])
        await db.commit()

    return _grant
