import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DATABASE_SSL"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENV"] = "test"

from dataclasses import dataclass  # noqa: E402
from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401 - register tables
from app.core.db import get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User  # noqa: E402


@dataclass
class People:
    provider: User
    other_provider: User
    patient: User
    other_patient: User
    admin: User


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest_asyncio.fixture
async def people(session) -> People:
    users = People(
        provider=User(email="dr.house@example.com", full_name="Gregory House", role="provider"),
        other_provider=User(email="dr.wilson@example.com", full_name="James Wilson", role="provider"),
        patient=User(email="pat@example.com", full_name="Pat Doe", role="patient"),
        other_patient=User(email="sam@example.com", full_name="Sam Roe", role="patient"),
        admin=User(email="desk@example.com", full_name="Front Desk", role="admin"),
    )
    session.add_all(
        [users.provider, users.other_provider, users.patient, users.other_patient, users.admin]
    )
    await session.commit()
    return users


@pytest.fixture
def monday() -> date:
    """The next Monday strictly after today."""
    today = date.today()
    return today + timedelta(days=7 - today.weekday())


@pytest_asyncio.fixture
async def client(session_maker, people):
    async def override_session():
        async with session_maker() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
