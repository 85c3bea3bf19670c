"""
Background indexing of note embeddings.

Note lifecycle events schedule fire-and-forget asyncio tasks that keep each
note's stored embedding in sync with its content. Identical content is
detected by its SHA-256 hash and never re-embedded; concurrent embedding
calls are bounded by a semaphore that can be swapped at runtime.
"""
import asyncio
import hashlib
import logging
from contextlib import AsyncExitStack
from typing import Callable, Optional, Set

from sqlalchemy.orm import Session

from notesearch.common.constants import Common
from notesearch.common.exceptions import ConfigurationError
from notesearch.config import DEFAULT_EMBEDDING_CONCURRENCY
from notesearch.db.session import SessionLocal
from notesearch.services.embedding_service import (
    EmbeddingClientProvider,
    EmbeddingTask,
    SemanticEmbeddingClient,
)
from notesearch.services.note_embedding_service import (
    delete_note_embedding,
    get_note_embedding_content_hash,
    supports_semantic_storage,
    upsert_note_embedding,
)

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


async def refresh_note_embedding(
    db: Session,
    client: SemanticEmbeddingClient,
    note_id: int,
    content: str,
    *,
    force: bool = False,
    limiter: Optional[asyncio.Semaphore] = None,
) -> bool:
    """
    Embed a note's content and upsert its ``NoteEmbedding`` row.

    Skips the embedding call when the stored content hash already matches,
    unless ``force`` is set (reindex). Database calls run in a worker thread;
    when ``limiter`` is given, a slot is held only around the provider call.

    Returns:
        True if a new embedding was written, False if skipped
    """
    text = (content or "").strip()
    if not text:
        return False

    digest = content_hash(text)
    if not force and await asyncio.to_thread(get_note_embedding_content_hash, db, note_id) == digest:
        logger.debug("Embedding for note_id=%s is up to date, skipping", note_id)
        return False

    async with AsyncExitStack() as stack:
        if limiter is not None:
            await stack.enter_async_context(limiter)
        vector = await client.embed(text, task=EmbeddingTask.PASSAGE)

    await asyncio.to_thread(upsert_note_embedding, db, note_id, client.model, vector, digest)
    logger.info("Stored %d-dim embedding for note_id=%s (model=%s)", len(vector), note_id, client.model)
    return True


class SemanticIndexService:
    """
    Schedules embedding refresh/delete work in the background.

    Each unit of work opens its own database session, the same way the worker
    jobs do, so nothing scheduled here shares the caller's request session.
    """

    def __init__(
        self,
        provider: EmbeddingClientProvider,
        session_factory: Callable[[], Session] = SessionLocal,
        concurrency: int = DEFAULT_EMBEDDING_CONCURRENCY,
    ):
        self._provider = provider
        self._session_factory = session_factory
        self._concurrency = max(1, concurrency)
        self._limiter = asyncio.Semaphore(self._concurrency)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def provider(self) -> EmbeddingClientProvider:
        return self._provider

    @property
    def session_factory(self) -> Callable[[], Session]:
        return self._session_factory

    @property
    def concurrency_limit(self) -> int:
        return self._concurrency

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def set_concurrency_limit(self, limit: int) -> None:
        """
        Apply a new concurrency limit to work scheduled from now on.

        Work already in flight keeps the limiter it captured.
        """
        limit = max(1, int(limit))
        if limit == self._concurrency:
            return
        self._concurrency = limit
        self._limiter = asyncio.Semaphore(limit)
        logger.info("Embedding concurrency limit set to %d", limit)

    def schedule_refresh(self, note_id: int, content: Optional[str]) -> None:
        if not content or not content.strip():
            return
        self._spawn(self._run_refresh(note_id, content, self._limiter), "refresh", note_id)

    def schedule_delete(self, note_id: int) -> None:
        self._spawn(self._run_delete(note_id), "delete", note_id)

    def _spawn(self, coro, kind: str, note_id: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, skipping embedding %s for note_id=%s", kind, note_id)
            return
        task = loop.create_task(coro, name=f"note-embedding-{kind}-{note_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_refresh(self, note_id: int, content: str, limiter: asyncio.Semaphore) -> None:
        db = self._session_factory()
        try:
            if not supports_semantic_storage(db):
                return
            try:
                client = await asyncio.to_thread(self._provider.get_client, db)
            except ConfigurationError as exc:
                logger.debug("Semantic indexing disabled, skipping note_id=%s: %s", note_id, exc)
                return
            await asyncio.wait_for(
                refresh_note_embedding(db, client, note_id, content, limiter=limiter),
                timeout=Common.EMBEDDING_REFRESH_TIMEOUT_SECONDS,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            db.rollback()
            logger.warning("failed to refresh note embedding note_id=%s: %s", note_id, exc)
        finally:
            db.close()

    async def _run_delete(self, note_id: int) -> None:
        db = self._session_factory()
        try:
            if not supports_semantic_storage(db):
                return
            await asyncio.wait_for(
                asyncio.to_thread(self._delete_in_session, note_id),
                timeout=Common.EMBEDDING_DELETE_TIMEOUT_SECONDS,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("failed to delete note embedding note_id=%s: %s", note_id, exc)
        finally:
            db.close()

    def _delete_in_session(self, note_id: int) -> None:
        db = self._session_factory()
        try:
            delete_note_embedding(db, note_id)
        finally:
            db.close()

    async def wait_idle(self) -> None:
        """Wait until every scheduled unit of work has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()
