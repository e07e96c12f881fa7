"""Shared test fixtures for all test groups."""

import os
import time

# Set before any app import: get_settings() is cached on first use.
os.environ.setdefault("PADDLE_WEBHOOK_SECRET", "pdl_ntfset_test_secret")
os.environ.setdefault("PADDLE_API_KEY", "pdl_test_api_key")
os.environ.setdefault("PADDLE_PRICE_STARTER", "pri_test_starter")
os.environ.setdefault("PADDLE_PRICE_PRO", "pri_test_pro")
os.environ.setdefault("PADDLE_PRICE_BUSINESS", "pri_test_business")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("CLOUDWATCH_METRICS_ENABLED", "false")

import jwt as pyjwt
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.webhook_signature import compute_signature
from app.db.base import Base

WEBHOOK_SECRET = os.environ["PADDLE_WEBHOOK_SECRET"]
JWT_SECRET = os.environ["AUTH_JWT_SECRET"]


@pytest.fixture
def database_url(tmp_path) -> str:
    """File-backed SQLite database, one per test, shared across event loops."""
    return f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}"


@pytest.fixture
async def engine(database_url) -> AsyncEngine:
    """Create the SQLite test engine and plan catalog.

    Sets the global session factory in the pytest-asyncio event loop, so
    in-process callers (services, AsyncClient) can use get_session_factory().
    """
    import app.db.base as db_mod

    engine = create_async_engine(database_url, echo=False)

    # Import all models so metadata is populated
    import app.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    from app.db.seed import seed_plans

    await seed_plans()

    yield engine

    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_organisation(session_factory):
    """Factory fixture: insert an organisation row and return its id."""
    from app.db.models.organisation import Organisation

    async def _make(org_id: str, **fields) -> str:
        async with session_factory() as session:
            session.add(Organisation(id=org_id, name=fields.pop("name", org_id), **fields))
            await session.commit()
        return org_id

    return _make


@pytest.fixture
def paddle_signature():
    """Build a Paddle-Signature header for a raw body."""

    def _sign(body: bytes, secret: str = WEBHOOK_SECRET, ts: int | None = None) -> str:
        timestamp = str(int(time.time()) if ts is None else ts)
        return f"ts={timestamp};h1={compute_signature(timestamp, body, secret)}"

    return _sign


@pytest.fixture
def auth_headers():
    """Build bearer headers for an organisation member."""

    def _headers(organisation_id: str | None = "org_test", role: str = "owner", sub: str = "user_test") -> dict:
        claims = {"sub": sub, "exp": int(time.time()) + 3600, "org_role": role}
        if organisation_id is not None:
            claims["organisation_id"] = organisation_id
        token = pyjwt.encode(claims, JWT_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _headers
