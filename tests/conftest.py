"""
Pytest configuration file with shared fixtures.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import asyncio
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from branchchat.main import app
from branchchat.api.deps import get_llm_provider
from branchchat.db.base_class import Base
from branchchat.db.database import build_engine, get_db, get_session_factory
from branchchat.db.models.message import MessageRole
from branchchat.repositories.conversation_repository import ConversationRepository
from branchchat.repositories.message_repository import MessageRepository
from tests.fakes import FakeProvider

# Single in-memory database shared by every session in a test
engine = build_engine("sqlite://", poolclass=StaticPool)

# Create a TestingSessionLocal
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """
    Create a fresh database for each test.
    """
    # Create the database tables
    Base.metadata.create_all(bind=engine)

    # Create a new session for the test
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

    # Drop the database tables
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db):
    """Session factory bound to the test database"""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def fake_provider():
    return FakeProvider()


@pytest.fixture(scope="function")
def client(db, fake_provider):
    """
    Create a test client with a database session and a scripted provider.
    """
    def override_get_db():
        try:
            yield db
        finally:
            pass

    # Override the database and provider dependencies
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_llm_provider] = lambda: fake_provider

    # Create a test client
    with TestClient(app) as client:
        yield client

    # Remove the override
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def make_conversation(db):
    """
    Factory for a conversation with a scripted log.

    Usage: ``conversation, messages = make_conversation("Mystery", [("user", "u1"), ...])``
    """
    def _make(title: str, log: List[Tuple[str, str]]):
        conversation = asyncio.run(ConversationRepository.create(title, db))
        messages = [
            asyncio.run(MessageRepository.append(conversation.id, MessageRole(role), content, db))
            for role, content in log
        ]
        return conversation, messages

    return _make
