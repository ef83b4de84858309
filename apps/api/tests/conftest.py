import os

os.environ.setdefault("TRACING_ENABLED", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rewards_api.app import create_app
from rewards_api.db.base import Base
from rewards_api.db.session import get_session
from rewards_api.observability.payments import get_payment_store
from rewards_api.services.configuration import clear_config_cache


@pytest.fixture(autouse=True)
def _reset_process_state():
    clear_config_cache()
    get_payment_store().reset()
    yield
    clear_config_cache()
    get_payment_store().reset()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
