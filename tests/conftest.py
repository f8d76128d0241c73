"""Shared test fixtures."""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cinewatch.api.routes import admin, anomalies, cinemas, health, runs
from cinewatch.database import get_db
from cinewatch.models import Base


@pytest.fixture
def test_app() -> FastAPI:
    """FastAPI app with every router, for API tests."""
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(admin.router, prefix="/api")
    app.include_router(anomalies.router, prefix="/api")
    app.include_router(cinemas.router, prefix="/api")
    app.include_router(runs.router, prefix="/api")
    return app


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on a fresh in-memory SQLite database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def db_app(test_app: FastAPI, db_session: AsyncSession) -> FastAPI:
    """``test_app`` with ``get_db`` bound to the SQLite session."""

    async def _override():
        yield db_session

    test_app.dependency_overrides[get_db] = _override
    yield test_app
    test_app.dependency_overrides.clear()
