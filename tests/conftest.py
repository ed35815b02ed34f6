import os
import tempfile
from typing import Any, List, Optional

import pytest
import pytest_asyncio

# Must be set before core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="chat-uploads-"))
os.environ.setdefault("EXPLICIT_DELETE_DENIAL", "false")

from fastapi.testclient import TestClient

from services.broadcaster import EventBroadcaster
from services.message_store import MessageStore
from services.room_registry import RoomRegistry
from services.session import Session


class FakeConnection:
    """Stands in for a WebSocket: records every frame sent to it."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.frames: List[dict] = []
        self.broken = False

    async def send_json(self, data: Any) -> None:
        if self.broken:
            raise RuntimeError("connection closed")
        self.frames.append(data)

    def data(self, event: str) -> List[Any]:
        """Payloads of every received frame with the given event name, in order."""
        return [f["data"] for f in self.frames if f["event"] == event]

    def events(self) -> List[str]:
        return [f["event"] for f in self.frames]

    def clear(self) -> None:
        self.frames.clear()


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def broadcaster(registry) -> EventBroadcaster:
    return EventBroadcaster(registry)


@pytest_asyncio.fixture
async def store():
    message_store = MessageStore("sqlite+aiosqlite:///:memory:")
    await message_store.init()
    yield message_store
    await message_store.dispose()


@pytest.fixture
def make_session(registry, broadcaster, store):
    def _make(connection: Optional[FakeConnection] = None, **kwargs) -> Session:
        return Session(
            connection or FakeConnection(),
            registry=registry,
            store=store,
            broadcaster=broadcaster,
            **kwargs,
        )

    return _make


@pytest.fixture(scope="session")
def client():
    """One application lifecycle for every HTTP / WebSocket test."""
    from main import app

    with TestClient(app) as test_client:
        yield test_client
