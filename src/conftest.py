import contextlib
from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.config.database import create_engine
from src.main import app
from src.models.base import BaseModel

# Registers the automation tables on the metadata
from src.automation.repository import orm_models  # noqa: F401


@pytest.fixture
async def session_factory(tmp_path) -> AsyncIterator[async_sessionmaker]:
    """Session factory bound to a fresh SQLite database file."""
    test_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'automation.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    yield async_sessionmaker(test_engine, expire_on_commit=False)

    await test_engine.dispose()


@pytest.fixture
def client_factory():
    """Build a test client with the given dependency overrides applied."""

    @contextlib.asynccontextmanager
    async def _client(overrides: dict) -> AsyncIterator[AsyncClient]:
        app.dependency_overrides.update(overrides)
        transport = ASGITransport(app=app)
        try:
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client
        finally:
            app.dependency_overrides.clear()

    return _client
