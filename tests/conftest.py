"""
Pytest fixtures for Conduit tests.
"""

from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import EnvironmentSettings
from conduit.database import Database
from conduit.kernel.models import Article, User
from conduit.kernel.repositories import ArticleRepository, UserRepository


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """A fresh SQLite file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'conduit_test.db'}"


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> EnvironmentSettings:
    """Environment settings isolated from the developer's shell and .env file."""
    for name in ("APP_DB_URL", "APP_DEBUG", "APP_RUN_MODE", "RUN_MODE"):
        monkeypatch.delenv(name, raising=False)
    return EnvironmentSettings(_env_file=None)


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncGenerator[Database, None]:
    """Database with every table and timestamp trigger created."""
    db = Database(database_url)
    await db.init_db()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """Session rolled back at the end of the test."""
    async with database.session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user."""
    return await UserRepository(db_session).create(
        username="jake",
        email="jake@jake.jake",
        password="$2b$12$hashedpassword",
        bio="I work at statefarm",
    )


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Create a second user."""
    return await UserRepository(db_session).create(
        username="jane",
        email="jane@example.com",
        password="$2b$12$anotherhash",
    )


@pytest_asyncio.fixture
async def test_article(db_session: AsyncSession, test_user: User) -> Article:
    """Create a test article."""
    return await ArticleRepository(db_session).create(
        author_id=test_user.id,
        slug="how-to-train-your-dragon",
        title="How to train your dragon",
        description="Ever wonder how?",
        body="You have to believe",
    )
