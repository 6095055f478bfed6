"""Shared test fixtures for LangCMS."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from langcms.cache.backends import MemoryCacheBackend
from langcms.cache.service import ContentCache
from langcms.config import Settings
from langcms.database import create_engine, ensure_tables
from langcms.filesystem.source_manager import SourceManager
from langcms.main import build_services, create_app

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_ADMIN_PASSWORD = "correct-horse-battery"

SKILLS_EN = {"skills": [{"name": "Python", "level": 5}, {"name": "SQL", "level": 4}]}
SITE_EN = {"title": "Portfolio", "nav": ["home", "work"]}
SKILLS_FR = {"skills": [{"name": "Python", "level": 5}]}


def write_json(path: Path, value: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(value, indent=2), encoding="utf-8")


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Create a source tree covering every table plus files the scanner must skip."""
    root = tmp_path / "public"
    write_json(root / "collections" / "en" / "data" / "skills.json", SKILLS_EN)
    write_json(root / "collections" / "en" / "config" / "site.json", SITE_EN)
    write_json(root / "collections" / "fr" / "data" / "skills.json", SKILLS_FR)
    write_json(root / "config" / "app.json", {"theme": "dark"})
    write_json(root / "data" / "items.json", [1, 2, 3])
    (root / "files").mkdir()
    (root / "files" / "readme.txt").write_text("hello", encoding="utf-8")
    (root / "js").mkdir()
    (root / "js" / "app.js").write_text("console.log('hi');\n", encoding="utf-8")
    (root / "image").mkdir()
    (root / "image" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    (root / "resume").mkdir()
    (root / "resume" / "cv.pdf").write_bytes(b"%PDF-1.4 fake")
    # Everything below must be ignored.
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "node_modules" / "pkg" / "index.js").write_text("x", encoding="utf-8")
    (root / "notes.md").write_text("# not allowed", encoding="utf-8")
    write_json(root / "other" / "thing.json", {"unclassified": True})
    return root


@pytest.fixture
def test_settings(source_dir: Path, tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    db_path = tmp_path / "test.db"
    return Settings(
        secret_key=TEST_SECRET_KEY,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        redis_url="",
        source_dir=source_dir,
        admin_username="admin",
        admin_password=TEST_ADMIN_PASSWORD,
    )


@pytest.fixture
async def db_engine(
    test_settings: Settings,
) -> AsyncGenerator[tuple[AsyncEngine, async_sessionmaker[AsyncSession]]]:
    """Create a test database engine with all tables."""
    engine, session_factory = create_engine(test_settings)
    await ensure_tables(engine)
    yield engine, session_factory
    await engine.dispose()


@pytest.fixture
def session_factory(
    db_engine: tuple[AsyncEngine, async_sessionmaker[AsyncSession]],
) -> async_sessionmaker[AsyncSession]:
    return db_engine[1]


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache() -> ContentCache:
    return ContentCache(MemoryCacheBackend(), namespace="test", content_ttl=300, list_ttl=60)


@pytest.fixture
def source(source_dir: Path) -> SourceManager:
    return SourceManager(source_dir=source_dir)


@asynccontextmanager
async def create_test_client(settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan because
    ASGITransport does not trigger it.
    """
    app = create_app(settings)
    settings.validate_runtime_security()

    engine, session_factory = create_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory
    await ensure_tables(engine)
    build_services(app, settings)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await app.state.cache.close()
    await engine.dispose()


@pytest.fixture
async def client(test_settings: Settings) -> AsyncGenerator[AsyncClient]:
    async with create_test_client(test_settings) as ac:
        yield ac


@pytest.fixture
async def admin_headers(client: AsyncClient) -> dict[str, str]:
    """Bearer header for the configured admin."""
    resp = await client.post(
        "/api/auth/token",
        json={"username": "admin", "password": TEST_ADMIN_PASSWORD},
    )
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
