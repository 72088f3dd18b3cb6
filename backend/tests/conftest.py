"""Pytest fixtures for the groupmail test suite.

Provides reusable test fixtures for:
- Database session on an in-memory SQLite database (tables created and
  dropped per test)
- A recording EmailSenderPort standing in for the Celery queue
- The inbound pipeline wired to both
- A FastAPI TestClient with the same overrides

Usage:
    def test_new_thread(pipeline, make_email, sent):
        pipeline.process(make_email(Subject="Hello"))
        assert [m.template for m in sent.messages] == ["groupCreated", "threadCreated"]
"""

import os

# Set environment variables BEFORE any imports to ensure they take effect
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MAIL_DOMAIN"] = "groupmail.test"
os.environ["BASE_URL"] = "https://groupmail.test"
os.environ["JWT_SECRET"] = "test-jwt-secret-key-256-bits-minimum-length-required-for-security"
os.environ["LOG_JSON"] = "false"

from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from groupmail.config import get_settings
from groupmail.database import get_db as database_get_db
from groupmail.models import Base, User
from groupmail.notifications.ports import EmailSenderPort, OutboundEmail
from groupmail.services.pipeline import InboundEmailPipeline

DOMAIN = "groupmail.test"

# One shared connection: the webhook runs the pipeline in a worker thread
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class RecordingSender(EmailSenderPort):
    """EmailSenderPort that keeps every message in memory."""

    def __init__(self):
        self.messages: List[OutboundEmail] = []

    def send(
        self,
        to: List[str],
        subject: str,
        template: str,
        data: Dict[str, Any],
        cc: Optional[List[str]] = None,
        from_addr: Optional[str] = None,
        exclude: Optional[List[str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.messages.append(OutboundEmail(
            to=list(to),
            subject=subject,
            template=template,
            data=data,
            cc=list(cc or []),
            from_addr=from_addr,
            exclude=list(exclude or []),
            headers=dict(headers or {}),
        ))

    def templates(self) -> List[str]:
        return [m.template for m in self.messages]

    def of(self, template: str) -> List[OutboundEmail]:
        return [m for m in self.messages if m.template == template]


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    Each test gets a clean database state.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory(db_session: Session):
    """Session factory on the test database, for code that opens its own sessions."""
    return TestingSessionLocal


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def sent() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def pipeline(db_session: Session, sent: RecordingSender, settings) -> InboundEmailPipeline:
    return InboundEmailPipeline(db_session, sent, settings=settings)


@pytest.fixture
def make_email():
    """Factory for webhook payloads; keyword arguments override header fields.

    Pass a field as None to drop it from the payload.
    """
    def _make(**overrides) -> Dict[str, Any]:
        payload = {
            "From": "Alice <alice@example.com>",
            "To": f"testgroup@{DOMAIN}",
            "Subject": "Hello everyone",
            "Message-Id": "<msg-1@mail.example.com>",
            "stripped-html": "<p>Hello world</p>",
            "stripped-text": "Hello world",
        }
        for key, value in overrides.items():
            key = key.replace("_", "-")
            if value is None:
                payload.pop(key, None)
            else:
                payload[key] = value
        return payload

    return _make


@pytest.fixture
def user_factory(db_session: Session):
    """Create committed users by email."""
    def _create(email: str, name: Optional[str] = None) -> User:
        user = User(email=email, name=name)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create


@pytest.fixture(scope="function")
def client(db_session: Session, sent: RecordingSender):
    """Create a test client bound to the test database and recording sender."""
    from groupmail.dependencies import get_avatar_lookup, get_email_sender
    from groupmail.main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[database_get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: sent
    app.dependency_overrides[get_avatar_lookup] = lambda: None

    yield TestClient(app)

    app.dependency_overrides.clear()
