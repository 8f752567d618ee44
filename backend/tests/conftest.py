"""Shared test fixtures for the tag browser backend."""

import os

# Settings are read at import time; keep the tests off Postgres and the scheduler.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SWEEP_ENABLED", "false")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from tagbrowser.core.job_queue import JobQueue  # noqa: E402
from tagbrowser.core.path_mapper import PathMapper  # noqa: E402
from tagbrowser.db.models import Base  # noqa: E402
from tagbrowser.db.repositories import folder_repo  # noqa: E402
from tagbrowser.services.context import StorageContext  # noqa: E402


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    """A file-backed SQLite database per test.

    Background jobs open their own sessions, so the database has to be
    shared between connections; an in-memory one is not.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    """Yield a fresh async session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def upload_root(tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def mapper(upload_root) -> PathMapper:
    return PathMapper(str(upload_root))


@pytest_asyncio.fixture
async def ctx(mapper, session_factory) -> StorageContext:
    """Storage context on the test database; drains its queue on teardown."""
    storage = StorageContext(mapper=mapper, queue=JobQueue(), session_factory=session_factory)
    yield storage
    await storage.queue.join()


@pytest_asyncio.fixture
async def root_folder(db, upload_root):
    """The ``/root`` folder, as a committed record and a directory."""
    root = await folder_repo.ensure_root_folder(db)
    await db.commit()
    (upload_root / "root").mkdir(exist_ok=True)
    return root


@pytest_asyncio.fixture
async def client(session_factory, ctx, tmp_path, monkeypatch):
    """HTTP client against the app, wired to the test database and storage."""
    from tagbrowser.api.dependencies import get_db, get_storage
    from tagbrowser.config import settings
    from tagbrowser.main import app

    monkeypatch.setattr(settings, "staging_dir", str(tmp_path / "staging"))

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: ctx
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
