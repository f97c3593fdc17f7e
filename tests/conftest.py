import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("COOKIE_SECURE", "false")

from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from chatapp.errors import NotFoundError, StorageError
from chatapp.models import Base, User
from chatapp.storage import ObjectStorage, StoredObject, Upload
from chatapp.websocket_manager import ConnectionManager


class FakeStorage(ObjectStorage):
    """In-memory object store. Filenames listed in ``fail_on`` fail to upload."""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_on = set()
        self._counter = 0

    async def upload(self, data: bytes, filename: str = "", content_type: Optional[str] = None,
                     folder: str = "uploads") -> StoredObject:
        if filename in self.fail_on:
            raise StorageError(f"Failed to upload {filename}")
        self._counter += 1
        key = f"{folder}/{self._counter}-{filename}"
        self.objects[key] = data
        return StoredObject(storage_id=key, url=f"https://cdn.test/{key}")

    async def delete(self, storage_id: str) -> None:
        if storage_id not in self.objects:
            raise NotFoundError(f"Stored object {storage_id} not found")
        del self.objects[storage_id]
        self.deleted.append(storage_id)


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    def events(self, event_type):
        return [e for e in self.sent if e.get("type") == event_type]


def image(name="photo.png", data=b"\x89PNG fake"):
    return Upload(data=data, filename=name, content_type="image/png")


@pytest_asyncio.fixture
async def engine(tmp_path):
    db_path = tmp_path / "chat_tests.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def users(db):
    """Four users: alice, bob, carol, dave (ids in that order).

    Returned as plain records so a rollback inside a service call cannot
    expire them under the test.
    """
    created = []
    for name in ("alice", "bob", "carol", "dave"):
        user = User(full_name=name, email=f"{name}@example.com", hashed_password="not-a-real-hash")
        db.add(user)
        created.append(user)
    await db.commit()
    return [SimpleNamespace(id=u.id, full_name=u.full_name, email=u.email) for u in created]


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.fixture
def clock():
    """Strictly increasing timestamps for joined_at control."""
    start = datetime(2024, 1, 1, 12, 0, 0)
    return lambda minutes: start + timedelta(minutes=minutes)
