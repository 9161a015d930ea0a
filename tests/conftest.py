import json
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from chatty.database.connection import ensure_indexes, mongo_db_dependency
from chatty.main import create_app
from chatty.repositories.conversation_repository import ConversationRepository
from chatty.repositories.message_repository import MessageRepository
from chatty.repositories.user_repository import UserRepository
from chatty.services.chat_service import ChatService
from chatty.services.live_dispatcher import LiveEventDispatcher
from chatty.utils.security import create_access_token
from chatty.utils.websocket_manager import ConnectionManager, LiveSession


class FakeSocket:
    """Stands in for a WebSocket; records every frame sent to it."""

    def __init__(self, broken: bool = False):
        self.frames = []
        self.broken = broken

    async def send_text(self, text: str) -> None:
        if self.broken:
            raise RuntimeError("socket is closed")
        self.frames.append(json.loads(text))

    def events(self, name=None):
        return [f for f in self.frames if name is None or f["event"] == name]


@pytest.fixture()
async def db():
    client = AsyncMongoMockClient()
    database = client[f"chatty_test_{uuid4().hex}"]
    await ensure_indexes(database)
    return database


@pytest.fixture()
async def users(db):
    """Three registered users, by name."""
    repo = UserRepository(db)
    return {
        name: await repo.create_user(name, email=f"{name}@chatty.io")
        for name in ("alice", "bob", "carol")
    }


@pytest.fixture()
def conversations(db):
    return ConversationRepository(db)


@pytest.fixture()
def messages(db, conversations):
    return MessageRepository(db, conversations)


@pytest.fixture()
def user_repo(db):
    return UserRepository(db)


@pytest.fixture()
def service(messages, conversations, user_repo):
    return ChatService(messages, conversations, user_repo)


@pytest.fixture()
def manager():
    return ConnectionManager()


@pytest.fixture()
def dispatcher(manager):
    return LiveEventDispatcher(manager)


@pytest.fixture()
def open_session(dispatcher, user_repo):
    """Connect a fake live session for a user id."""

    async def _open(user_id: str, broken: bool = False) -> LiveSession:
        session = LiveSession(FakeSocket(broken=broken), user_id)
        await dispatcher.connect(session, user_repo)
        return session

    return _open


@pytest.fixture()
def app(db):
    """A fresh app per test, wired to the in-memory database."""
    application = create_app()
    application.dependency_overrides[mongo_db_dependency] = lambda: db
    return application


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def auth_headers():
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
