"""Фикстуры для тестов API и сервисов."""
import asyncio
import os
import tempfile

import pytest

# Тестовая БД: TEST_DATABASE_URL (чтобы не трогать прод) или временный файл SQLite.
# Переменные окружения задаются до импорта radioplan: настройки читаются один раз.
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL") or (
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="radioplan-"), "test.db")
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["DB_NULL_POOL"] = "true"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"

from fastapi.testclient import TestClient  # noqa: E402

from radioplan.core.database import Base, async_session_maker, engine  # noqa: E402
import radioplan.models  # noqa: E402,F401


async def _recreate_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture(autouse=True)
def clean_db():
    """Пустые таблицы перед каждым тестом."""
    asyncio.run(_recreate_tables())
    yield


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def db():
    """Сессия для тестов сервисов (тесты с @pytest.mark.anyio)."""
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def client():
    """Тестовый клиент приложения."""
    from radioplan.main import app
    return TestClient(app)
