"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavedesk.common.constants import UserRole
from leavedesk.config import settings
from leavedesk.database import Base, get_db, get_session_factory
from leavedesk.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import leavedesk.common.audit  # noqa: F401
import leavedesk.employees.models  # noqa: F401
import leavedesk.holidays.models  # noqa: F401
import leavedesk.leave.models  # noqa: F401

from leavedesk.employees.models import Employee
from leavedesk.leave.models import LeaveType

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

ANNUAL = "Cuti Tahunan"
SICK = "Cuti Sakit"


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leavedesk.common.rate_limit import limiter
    try:
        if hasattr(limiter, "_storage"):
            limiter._storage.reset()
    except Exception:
        pass
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def _override_get_session_factory() -> async_sessionmaker:
    return TestSessionFactory


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_session_factory] = _override_get_session_factory
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

_counter = {"n": 0}


def _make_employee(
    *,
    name: str = "Test Pegawai",
    email: Optional[str] = None,
    role: UserRole = UserRole.user,
    leave_balance: Optional[dict] = None,
    is_active: bool = True,
) -> dict:
    _counter["n"] += 1
    n = _counter["n"]
    return dict(
        nip=f"1987{n:010d}",
        name=name,
        email=email or f"pegawai{n}@leavedesk.test",
        position="Analis",
        workunit="Bagian Umum",
        address=f"Jl. Merdeka No. {n}",
        phone=f"0812000{n:05d}",
        role=role,
        is_active=is_active,
        leave_balance=dict(leave_balance or {}),
        balance_version=0,
    )


async def seed_employee(db: AsyncSession, **kwargs) -> Employee:
    """Insert an employee and return the ORM instance (id populated)."""
    employee = Employee(**_make_employee(**kwargs))
    db.add(employee)
    await db.flush()
    return employee


async def seed_leave_types(db: AsyncSession, *names: str) -> None:
    for name in names or (ANNUAL, SICK):
        db.add(LeaveType(name=name))
    await db.flush()


@pytest.fixture
async def people(db) -> dict[str, Employee]:
    """Requester, supervisor, authorized officer and admin, plus leave types."""
    await seed_leave_types(db)
    staff = {
        "requester": await seed_employee(
            db, name="Budi Santoso", leave_balance={"2024": 12, "2023": 4},
        ),
        "supervisor": await seed_employee(db, name="Siti Aminah"),
        "officer": await seed_employee(db, name="Agus Salim"),
        "admin": await seed_employee(db, name="Admin Kepegawaian", role=UserRole.admin),
    }
    await db.commit()
    return staff


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(employee_id: int, expired: bool = False) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=8)
    payload = {"sub": str(employee_id), "exp": exp}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(employee: Employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee.id)}"}
