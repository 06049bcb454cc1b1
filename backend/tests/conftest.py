"""Pytest configuration for sharebox tests."""
import os
import tempfile
from pathlib import Path

# Settings are read once at import time, so the environment has to be in
# place before anything from sharebox is imported.
# Tests talk to the per-test file database from the session_factory fixture.
# DATABASE_URL only points the module-level engine in sharebox.db.session,
# built when sharebox.main is imported, away from Postgres; it never connects.
os.environ.setdefault('DATABASE_URL', 'sqlite+aiosqlite:///:memory:')
os.environ.setdefault('STORAGE_ROOT', tempfile.mkdtemp(prefix='sharebox-tests-'))
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('JWT_SECRET', 'test-secret-key-for-share-tokens')
os.environ.setdefault('TELEGRAM_ENABLED', 'false')

import pytest
import pytest_asyncio

from helpers import FakeClock, RecordingNotifier
from sharebox.core.config import settings
from sharebox.db.base import Base
from sharebox.db.session import build_engine, build_session_factory
from sharebox.services.lifecycle import ShareManager
from sharebox.services.shares import ShareStore
from sharebox.services.storage import StorageService


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'shares.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> ShareStore:
    return ShareStore(session_factory)


@pytest.fixture
def storage(tmp_path: Path) -> StorageService:
    service = StorageService(tmp_path / 'storage')
    service.ensure_base_dirs()
    return service


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def config():
    return settings.model_copy(
        update={
            'max_file_size_bytes': 1024,
            'max_request_size_bytes': 2048,
            'orphan_grace_minutes': 60,
        }
    )


@pytest.fixture
def manager(store, storage, notifier, config, clock) -> ShareManager:
    return ShareManager(store, storage, notifier=notifier, config=config, clock=clock)
