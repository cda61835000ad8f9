"""Shared fixtures: an in-memory motor database and an app wired to it."""
import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from app import main
from app.database.connection import mongo_db_dependency
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.repositories.user_repository import UserRepository


@pytest.fixture
def mongo_db():
    return AsyncMongoMockClient()["chat_test"]


@pytest.fixture
def conversation_repo(mongo_db):
    return ConversationRepository(mongo_db)


@pytest.fixture
def message_repo(mongo_db):
    return MessageRepository(mongo_db)


@pytest.fixture
def user_repo(mongo_db):
    return UserRepository(mongo_db)


@pytest.fixture
def client(mongo_db, monkeypatch):
    """TestClient running the real lifespan against the in-memory database.

    Used as a context manager so REST calls and websocket sessions share one
    event loop, which the connection registry relies on.
    """
    async def fake_connect():
        return mongo_db

    async def fake_close():
        return None

    monkeypatch.setattr(main, "connect_to_mongo", fake_connect)
    monkeypatch.setattr(main, "close_mongo_connection", fake_close)
    main.app.dependency_overrides[mongo_db_dependency] = lambda: mongo_db
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
