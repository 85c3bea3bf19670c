"""Tests for background note embedding refresh/delete."""
import hashlib
import logging
import threading

import pytest

from conftest import make_note
from notesearch.config import settings
from notesearch.db.session import SessionLocal
from notesearch.models import NoteEmbedding
from notesearch.services import semantic_index_service
from notesearch.services.embedding_service import EmbeddingTask
from notesearch.services.semantic_index_service import (
    SemanticIndexService,
    content_hash,
    refresh_note_embedding,
)


def stored_embedding(db, note_id):
    db.expire_all()
    return db.query(NoteEmbedding).filter(NoteEmbedding.note_id == note_id).first()


@pytest.fixture
def indexer(provider):
    return SemanticIndexService(provider, session_factory=SessionLocal, concurrency=4)


def test_content_hash_is_sha256_hex():
    assert content_hash("hello") == hashlib.sha256(b"hello").hexdigest()


class TestRefreshNoteEmbedding:

    @pytest.mark.asyncio
    async def test_writes_embedding_with_hash_of_trimmed_content(self, db, alice, fake_client):
        note = make_note(db, alice, "  meeting notes  ")

        written = await refresh_note_embedding(db, fake_client, note.id, note.content)

        assert written
        row = stored_embedding(db, note.id)
        assert row.content_hash == content_hash("meeting notes")
        assert row.model == "fake-embedding"
        assert row.dimension == len(row.vector) == 4
        assert fake_client.calls == [("meeting notes", EmbeddingTask.PASSAGE)]

    @pytest.mark.asyncio
    async def test_unchanged_content_is_not_re_embedded(self, db, alice, fake_client):
        note = make_note(db, alice, "groceries")

        assert await refresh_note_embedding(db, fake_client, note.id, "groceries")
        assert not await refresh_note_embedding(db, fake_client, note.id, "groceries\n")
        assert fake_client.embed_calls == 1

    @pytest.mark.asyncio
    async def test_force_re_embeds_unchanged_content(self, db, alice, fake_client):
        note = make_note(db, alice, "groceries")

        await refresh_note_embedding(db, fake_client, note.id, "groceries")
        assert await refresh_note_embedding(db, fake_client, note.id, "groceries", force=True)
        assert fake_client.embed_calls == 2

    @pytest.mark.asyncio
    async def test_changed_content_overwrites_single_row(self, db, alice, fake_client):
        note = make_note(db, alice, "draft")

        await refresh_note_embedding(db, fake_client, note.id, "draft")
        await refresh_note_embedding(db, fake_client, note.id, "final version")

        assert db.query(NoteEmbedding).filter(NoteEmbedding.note_id == note.id).count() == 1
        assert stored_embedding(db, note.id).content_hash == content_hash("final version")
        assert fake_client.embed_calls == 2

    @pytest.mark.asyncio
    async def test_blank_content_is_skipped(self, db, alice, fake_client):
        note = make_note(db, alice, "   ")

        assert not await refresh_note_embedding(db, fake_client, note.id, note.content)
        assert fake_client.embed_calls == 0
        assert stored_embedding(db, note.id) is None


class TestSemanticIndexService:

    @pytest.mark.asyncio
    async def test_schedule_refresh_embeds_in_background(self, db, alice, fake_client, indexer):
        note = make_note(db, alice, "project kickoff")

        indexer.schedule_refresh(note.id, note.content)
        await indexer.wait_idle()

        assert fake_client.embed_calls == 1
        assert stored_embedding(db, note.id) is not None
        assert indexer.pending == 0

    @pytest.mark.asyncio
    async def test_repeated_refresh_with_same_content_embeds_once(self, db, alice, fake_client, indexer):
        note = make_note(db, alice, "project kickoff")

        indexer.schedule_refresh(note.id, note.content)
        await indexer.wait_idle()
        indexer.schedule_refresh(note.id, note.content)
        await indexer.wait_idle()

        assert fake_client.embed_calls == 1

    @pytest.mark.asyncio
    async def test_blank_content_schedules_nothing(self, db, alice, fake_client, indexer):
        note = make_note(db, alice, None)

        indexer.schedule_refresh(note.id, note.content)
        indexer.schedule_refresh(note.id, "  \n")

        assert indexer.pending == 0
        await indexer.wait_idle()
        assert fake_client.embed_calls == 0

    @pytest.mark.asyncio
    async def test_unconfigured_provider_skips_quietly(self, db, alice, unconfigured_provider):
        indexer = SemanticIndexService(unconfigured_provider, session_factory=SessionLocal)
        note = make_note(db, alice, "no key yet")

        indexer.schedule_refresh(note.id, note.content)
        await indexer.wait_idle()

        assert stored_embedding(db, note.id) is None

    @pytest.mark.asyncio
    async def test_unsupported_storage_skips(self, db, alice, fake_client, indexer, monkeypatch):
        monkeypatch.setattr(settings, "SEMANTIC_STORAGE_DIALECTS", ["postgresql"])
        note = make_note(db, alice, "stored elsewhere")

        indexer.schedule_refresh(note.id, note.content)
        await indexer.wait_idle()

        assert fake_client.embed_calls == 0

    @pytest.mark.asyncio
    async def test_provider_failure_is_logged_not_raised(self, db, alice, fake_client, indexer, caplog):
        fake_client.fail_on.add("will fail")
        note = make_note(db, alice, "will fail")

        with caplog.at_level(logging.WARNING, logger="notesearch.services.semantic_index_service"):
            indexer.schedule_refresh(note.id, note.content)
            await indexer.wait_idle()

        assert f"failed to refresh note embedding note_id={note.id}" in caplog.text
        assert stored_embedding(db, note.id) is None

    @pytest.mark.asyncio
    async def test_schedule_delete_removes_embedding(self, db, alice, fake_client, indexer):
        note = make_note(db, alice, "short lived")
        await refresh_note_embedding(db, fake_client, note.id, note.content)

        indexer.schedule_delete(note.id)
        await indexer.wait_idle()

        assert stored_embedding(db, note.id) is None

    @pytest.mark.asyncio
    async def test_delete_without_embedding_is_harmless(self, db, alice, indexer):
        note = make_note(db, alice, "never embedded")

        indexer.schedule_delete(note.id)
        await indexer.wait_idle()

        assert stored_embedding(db, note.id) is None

    @pytest.mark.asyncio
    async def test_concurrent_embedding_calls_are_bounded(self, db, alice, fake_client, provider):
        indexer = SemanticIndexService(provider, session_factory=SessionLocal, concurrency=2)
        fake_client.delay = 0.02
        notes = [make_note(db, alice, f"note number {i}") for i in range(6)]

        for note in notes:
            indexer.schedule_refresh(note.id, note.content)
        await indexer.wait_idle()

        assert fake_client.embed_calls == 6
        assert fake_client.max_active == 2

    @pytest.mark.asyncio
    async def test_new_limit_applies_to_later_work(self, db, alice, fake_client, provider):
        indexer = SemanticIndexService(provider, session_factory=SessionLocal, concurrency=4)
        fake_client.delay = 0.02
        indexer.set_concurrency_limit(1)
        notes = [make_note(db, alice, f"serial note {i}") for i in range(3)]

        for note in notes:
            indexer.schedule_refresh(note.id, note.content)
        await indexer.wait_idle()

        assert indexer.concurrency_limit == 1
        assert fake_client.max_active == 1

    def test_invalid_limit_is_clamped(self, provider):
        indexer = SemanticIndexService(provider, concurrency=3)
        indexer.set_concurrency_limit(0)
        assert indexer.concurrency_limit == 1

    def test_scheduling_without_event_loop_is_skipped(self, provider, caplog):
        indexer = SemanticIndexService(provider)

        with caplog.at_level(logging.WARNING, logger="notesearch.services.semantic_index_service"):
            indexer.schedule_refresh(1, "no loop here")

        assert indexer.pending == 0
        assert "No running event loop" in caplog.text

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending_work(self, db, alice, fake_client, indexer):
        fake_client.delay = 5
        note = make_note(db, alice, "slow provider")

        indexer.schedule_refresh(note.id, note.content)
        await indexer.shutdown()

        assert indexer.pending == 0
        assert stored_embedding(db, note.id) is None


@pytest.mark.asyncio
async def test_database_work_runs_off_the_event_loop(db, alice, fake_client, monkeypatch):
    loop_thread = threading.get_ident()
    threads = []
    original_lookup = semantic_index_service.get_note_embedding_content_hash
    original_upsert = semantic_index_service.upsert_note_embedding

    def recording_lookup(*args):
        threads.append(threading.get_ident())
        return original_lookup(*args)

    def recording_upsert(*args):
        threads.append(threading.get_ident())
        return original_upsert(*args)

    monkeypatch.setattr(semantic_index_service, "get_note_embedding_content_hash", recording_lookup)
    monkeypatch.setattr(semantic_index_service, "upsert_note_embedding", recording_upsert)
    note = make_note(db, alice, "threaded write")

    assert await refresh_note_embedding(db, fake_client, note.id, note.content)

    assert len(threads) == 2
    assert loop_thread not in threads
