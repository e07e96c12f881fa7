"""API fixtures: the billing router mounted on a bare app with production error handling."""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient


def _build_app(lifespan=None) -> FastAPI:
    # Skips create_app so the SIGTERM handler and price map check stay out of tests
    from app.api.routes import api_router
    from app.main import register_exception_handlers
    from app.middleware.correlation import setup_correlation_middleware

    billing_app = FastAPI(title="Adapt Billing (tests)", lifespan=lifespan)
    setup_correlation_middleware(billing_app)
    register_exception_handlers(billing_app)
    billing_app.include_router(api_router, prefix="/api")
    return billing_app


@pytest.fixture
def api_client(engine, database_url):
    """Sync TestClient. It runs its own event loop, so the store is re-initialised inside it."""
    import app.db.base as db_mod
    from app.db import close_db, init_db

    @asynccontextmanager
    async def store_lifespan(_: FastAPI):
        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(database_url)
        yield
        await close_db()

    with TestClient(_build_app(store_lifespan)) as test_client:
        yield test_client


@pytest.fixture
def app(engine) -> FastAPI:
    """No lifespan: routes reuse the session factory installed by the engine fixture."""
    return _build_app()


@pytest.fixture
async def client(app, engine):
    """Async client sharing the pytest-asyncio loop, for webhook deliveries and DB assertions."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
