"""Pytest configuration for tests.

Points the app at a throwaway SQLite file (before any jevehome import reads settings),
creates the schema once, and empties every table between tests.
"""
import os
import sys
import tempfile
import threading
from pathlib import Path

_TMP_DIR = tempfile.mkdtemp(prefix="jevehome-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["REDIS_URL"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["VERTEX_PROJECT_ID"] = ""
os.environ["PHOTO_UPLOAD_DIR"] = os.path.join(_TMP_DIR, "photos")

# Add project root to Python path so imports work correctly
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from jevehome.auth import create_access_token  # noqa: E402
from jevehome.database import Base, SessionLocal, engine  # noqa: E402
from jevehome.main import app  # noqa: E402
from jevehome.models import User  # noqa: E402
from jevehome.repositories.config_repository import ConfigRepository  # noqa: E402
from jevehome.services.ai_service import get_chat_provider  # noqa: E402

Base.metadata.create_all(bind=engine)


class FakeProvider:
    """Stands in for Gemini: records every call, replays scripted chunks."""

    def __init__(self, chunks=None, fail_after=None, title="Our Wedding Year", title_error=None):
        self.chunks = list(chunks if chunks is not None else ["Hello", " there", "!"])
        self.fail_after = fail_after
        self.title = title
        self.title_error = title_error
        self.stream_calls: list[dict] = []
        self.title_calls: list[tuple] = []
        self._lock = threading.Lock()

    def stream_reply(self, model, system_instruction, history, message):
        with self._lock:
            self.stream_calls.append(
                {
                    "model": model,
                    "system_instruction": system_instruction,
                    "history": list(history),
                    "message": message,
                }
            )
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("provider exploded")
            yield chunk
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise RuntimeError("provider exploded")

    def generate_title(self, model, first_message, first_reply):
        self.title_calls.append((model, first_message, first_reply))
        if self.title_error:
            raise self.title_error
        return self.title


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(role="family", email=None, password_hash=None):
        user = User(
            email=email or f"{role}-{len(db.query(User).all())}@example.com",
            full_name=role.title(),
            role=role,
            password=password_hash,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def family_user(make_user):
    return make_user("family")


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}

    return _headers


@pytest.fixture
def set_config(db):
    def _set(namespace, key, value):
        ConfigRepository.upsert(db, namespace, key, value)

    return _set


@pytest.fixture
def provider():
    fake = FakeProvider()
    app.dependency_overrides[get_chat_provider] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_chat_provider, None)


@pytest.fixture
def client(provider):
    with TestClient(app) as c:
        yield c
