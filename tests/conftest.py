"""
Shared pytest fixtures for notesearch tests.

Tests run against an in-memory SQLite database with SQLite registered as a
semantic storage dialect, and a deterministic fake embedding client so no
provider is ever called.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-instance-secret"
os.environ["OPENAI_API_KEY"] = ""
os.environ["OPENAI_BASE_URL"] = ""
os.environ["OPENAI_EMBEDDING_MODEL"] = ""

import asyncio
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from notesearch.common.constants import Role, Visibility
from notesearch.common.exceptions import EmbeddingRequestError
from notesearch.config import settings
from notesearch.db.base import Base
from notesearch.db.session import SessionLocal, engine
from notesearch.models import Note, User
from notesearch.services.embedding_service import EmbeddingClientProvider, EmbeddingTask

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeEmbeddingClient:
    """
    Deterministic embedding client.

    Known texts map to fixed vectors; anything else gets a vector derived
    from its hash. Every call is recorded.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, Sequence[float]]] = None,
        model: str = "fake-embedding",
        fail_on: Sequence[str] = (),
        dimension: int = 4,
    ):
        self.model = model
        self.vectors = dict(vectors or {})
        self.fail_on = set(fail_on)
        self.dimension = dimension
        self.calls: List[tuple] = []
        self.active = 0
        self.max_active = 0
        self.delay = 0.0

    @property
    def embed_calls(self) -> int:
        return len(self.calls)

    async def embed(self, text: str, task: EmbeddingTask = EmbeddingTask.PASSAGE) -> List[float]:
        self.calls.append((text, task))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if text in self.fail_on:
                raise EmbeddingRequestError("fake provider failure", status_code=500, retryable=True)
            if text in self.vectors:
                return [float(v) for v in self.vectors[text]]
            digest = hashlib.md5(text.encode("utf-8")).digest()
            return [digest[i] / 255.0 + 0.01 for i in range(self.dimension)]
        finally:
            self.active -= 1


@pytest.fixture(autouse=True)
def semantic_sqlite(monkeypatch):
    """Let SQLite stand in for PostgreSQL as a semantic storage backend."""
    monkeypatch.setattr(settings, "SEMANTIC_STORAGE_DIALECTS", ["postgresql", "sqlite"])


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_client():
    return FakeEmbeddingClient()


@pytest.fixture
def provider(fake_client):
    """Embedding provider that always hands out ``fake_client``."""
    return EmbeddingClientProvider(settings, factory=lambda config: fake_client)


@pytest.fixture
def unconfigured_provider():
    """Production provider with no API key anywhere."""
    return EmbeddingClientProvider(settings)


def make_user(db, email: str, role: str = Role.USER) -> User:
    user = User(email=email, role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_note(
    db,
    user: User,
    content: Optional[str],
    visibility: str = Visibility.PRIVATE,
    is_archived: bool = False,
    minutes: int = 0,
    **fields,
) -> Note:
    stamp = BASE_TIME + timedelta(minutes=minutes)
    note = Note(
        user_id=user.id,
        title=fields.pop("title", (content or "untitled")[:40]),
        content=content,
        visibility=visibility,
        is_archived=is_archived,
        created_at=stamp,
        updated_at=stamp,
        **fields,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


@pytest.fixture
def alice(db):
    return make_user(db, "alice@example.com")


@pytest.fixture
def bob(db):
    return make_user(db, "bob@example.com")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role=Role.ADMIN)
