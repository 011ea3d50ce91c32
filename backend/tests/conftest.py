import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Use in-memory SQLite for tests by default, can be overridden via TEST_DATABASE_URL
TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

# Ensure the app uses SQLite during imports (main creates tables in non-prod).
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", TEST_DB_URL)
os.environ.setdefault("SMTP_HOST", "")

from content_approval.core.config import WorkflowConfig, get_settings
from content_approval.db.base import Base
from content_approval.db.session import get_db_session
from content_approval.main import create_app
from content_approval.models import ContentItem, User, UserRole
from content_approval.services.notifications import get_notification_dispatcher
from content_approval.workflow.state_machine import ApprovalWorkflow


class RecordingDispatcher:
    """Collects (template_key, recipient, variables) instead of sending mail."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.sent = []
        self.fail = fail
        self.raise_error = raise_error

    def send(self, template_key, recipient, variables):
        if self.raise_error:
            raise RuntimeError("smtp down")
        self.sent.append((template_key, recipient, dict(variables)))
        return not self.fail

    def recipients(self, template_key=None):
        return [r for (k, r, _) in self.sent if template_key is None or k == template_key]


@pytest.fixture(scope="function")
def engine():
    # Important: in-memory SQLite needs StaticPool to keep the same DB across connections.
    kwargs = {"connect_args": {"check_same_thread": False}}
    if TEST_DB_URL.endswith(":memory:"):
        kwargs["poolclass"] = StaticPool
    eng = create_engine(TEST_DB_URL, **kwargs)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def raising_dispatcher():
    return RecordingDispatcher(raise_error=True)


@pytest.fixture
def config():
    return WorkflowConfig(
        min_required_reviews=2,
        publish_without_approval=False,
        content_types=frozenset({"post", "page"}),
        roles_can_request=frozenset({"admin", "editor", "author"}),
        roles_can_approve=frozenset({"admin", "editor"}),
    )


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(role=UserRole.editor, name=None):
        counter["n"] += 1
        n = counter["n"]
        user = User(email=f"user{n}@example.com", display_name=name or f"User {n}", role=role)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_item(db_session):
    def _make(author=None, content_type="post", status="draft", title="Launch post"):
        item = ContentItem(
            title=title,
            content_type=content_type,
            status=status,
            author_id=author.id if author else None,
        )
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _make


@pytest.fixture
def workflow(db_session, config, dispatcher):
    return ApprovalWorkflow(db_session, config, dispatcher)


def token_for(user) -> str:
    settings = get_settings()
    exp = datetime.now(timezone.utc) + timedelta(minutes=15)
    return jwt.encode(
        {"sub": str(user.id), "typ": "access", "exp": exp},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def auth(user) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture(scope="function")
def client(db_session, dispatcher, config):
    from content_approval.api.deps import get_workflow_config

    app = create_app()

    # Override the DB session dependency to use the test database
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_workflow_config] = lambda: config
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return auth
