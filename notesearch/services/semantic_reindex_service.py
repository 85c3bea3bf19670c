"""
Full-corpus semantic reindex.

A reindex walks every live and archived note and forces a fresh embedding
through the same refresh primitive the live indexing pipeline uses, skipping
the content-hash check. Progress is persisted in the ``AI`` instance setting
so it survives restarts and can be polled by administrators. At most one run
is active per process; a stale ``running`` flag left by a crashed process is
cleared on startup.
"""
import asyncio
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notesearch.common.common_message import CommonMessage
from notesearch.common.constants import Common
from notesearch.common.exceptions import ConfigurationError
from notesearch.common.response_common import ResponseCommon
from notesearch.db.session import SessionLocal
from notesearch.models import Note
from notesearch.schemas.instance_setting import ReindexState
from notesearch.services.embedding_service import EmbeddingClientProvider
from notesearch.services.instance_setting_service import (
    get_instance_ai_setting,
    upsert_instance_ai_setting,
)
from notesearch.services.note_embedding_service import supports_semantic_storage
from notesearch.services.note_service import iter_note_batches
from notesearch.services.semantic_index_service import refresh_note_embedding

logger = logging.getLogger(__name__)


def get_reindex_state(db: Session) -> ReindexState:
    return get_instance_ai_setting(db).semantic_reindex


def save_reindex_state(db: Session, state: ReindexState) -> None:
    """Persist reindex progress, leaving the rest of the ``AI`` setting as stored."""
    setting = get_instance_ai_setting(db)
    setting.semantic_reindex = state
    upsert_instance_ai_setting(db, setting)


def reset_stale_reindex_state(db: Session) -> bool:
    """
    Clear a ``running`` flag left behind by a process that died mid-run.

    Must only be called when no reindex task is running in this process.

    Returns:
        True if a stale flag was cleared
    """
    state = get_reindex_state(db)
    if not state.running:
        return False
    state.running = False
    state.updated_ts = int(time.time())
    save_reindex_state(db, state)
    logger.warning(
        "Reset stale semantic reindex state (processed=%d/%d, model=%s)",
        state.processed,
        state.total,
        state.model,
    )
    return True


def list_notes_for_reindex(db: Session) -> List[Tuple[int, Optional[str]]]:
    """Every live note followed by every archived note, as ``(id, content)``."""
    notes: List[Tuple[int, Optional[str]]] = []
    for archived in (False, True):
        query = db.query(Note.id, Note.content).filter(Note.is_archived == archived)
        for batch in iter_note_batches(query, Common.SEMANTIC_SEARCH_BATCH_SIZE):
            notes.extend((row.id, row.content) for row in batch)
    return notes


class SemanticReindexService:
    """Owns the single-run guard and the background reindex task."""

    def __init__(
        self,
        provider: EmbeddingClientProvider,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self._provider = provider
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def get_status(self, db: Session) -> ResponseCommon:
        return ResponseCommon.success_response(
            data=get_reindex_state(db),
            message=CommonMessage.SEMANTIC_REINDEX_STATE_RETRIEVED,
        )

    def start_reindex(self, db: Session) -> ResponseCommon:
        """
        Start a reindex in the background.

        Returns 412 when semantic storage or the provider is unavailable,
        409 when a reindex is already running, otherwise 202 with the
        persisted state.
        """
        if not supports_semantic_storage(db):
            return ResponseCommon.error_response(
                message=CommonMessage.SEMANTIC_STORAGE_UNSUPPORTED,
                code=status.HTTP_412_PRECONDITION_FAILED,
            )
        try:
            self._provider.get_client(db)
        except ConfigurationError as exc:
            return ResponseCommon.error_response(
                message=CommonMessage.SEMANTIC_NOT_CONFIGURED % exc,
                code=status.HTTP_412_PRECONDITION_FAILED,
            )

        with self._lock:
            if self._running:
                return ResponseCommon.error_response(
                    message=CommonMessage.SEMANTIC_REINDEX_ALREADY_RUNNING,
                    code=status.HTTP_409_CONFLICT,
                )
            self._running = True

        try:
            loop = asyncio.get_running_loop()
            self._task = loop.create_task(self._run(), name="semantic-reindex")
        except RuntimeError:
            self._release()
            raise

        logger.info("Semantic reindex started")
        return ResponseCommon.success_response(
            code=status.HTTP_202_ACCEPTED,
            data=get_reindex_state(db),
            message=CommonMessage.SEMANTIC_REINDEX_STARTED,
        )

    async def wait(self) -> None:
        """Wait for the current reindex task, if any, to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def _release(self) -> None:
        with self._lock:
            self._running = False

    async def _run(self) -> None:
        db = self._session_factory()
        try:
            await asyncio.wait_for(self._reindex(db), timeout=Common.SEMANTIC_REINDEX_TIMEOUT_SECONDS)
        except asyncio.CancelledError:
            self._mark_idle(db)
            raise
        except Exception as exc:
            logger.error("Semantic reindex aborted: %s", exc, exc_info=True)
            self._mark_idle(db)
        finally:
            db.close()
            self._release()

    def _mark_idle(self, db: Session) -> None:
        try:
            db.rollback()
            state = get_reindex_state(db)
            state.running = False
            state.updated_ts = int(time.time())
            save_reindex_state(db, state)
        except SQLAlchemyError as exc:
            logger.warning("Failed to persist semantic reindex state: %s", exc)

    async def _flush(self, db: Session, state: ReindexState) -> None:
        try:
            await asyncio.to_thread(save_reindex_state, db, state)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Failed to persist semantic reindex progress: %s", exc)

    async def _reindex(self, db: Session) -> None:
        try:
            client = await asyncio.to_thread(self._provider.get_client, db)
        except ConfigurationError as exc:
            logger.warning("Failed to initialize semantic reindex: %s", exc)
            return

        model = client.model
        started_ts = int(time.time())
        state = ReindexState(
            running=True,
            started_ts=started_ts,
            updated_ts=started_ts,
            model=model,
        )
        await self._flush(db, state)

        try:
            notes = await asyncio.to_thread(list_notes_for_reindex, db)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Failed to list notes for semantic reindex: %s", exc)
            state = (await asyncio.to_thread(get_reindex_state, db)).model_copy(
                update={"running": False, "updated_ts": int(time.time()), "model": model}
            )
            await self._flush(db, state)
            return

        total = len(notes)
        state = state.model_copy(update={"total": total, "updated_ts": int(time.time())})
        await self._flush(db, state)
        logger.info("Semantic reindex of %d notes with model %s", total, model)

        processed = 0
        failed = 0
        for note_id, content in notes:
            if content and content.strip():
                try:
                    await refresh_note_embedding(db, client, note_id, content, force=True)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    db.rollback()
                    failed += 1
                    logger.warning("semantic reindex failed for note_id=%s: %s", note_id, exc)

            processed += 1
            if processed % Common.SEMANTIC_REINDEX_PROGRESS_FLUSH_STEP == 0 or processed == total:
                state = state.model_copy(
                    update={"processed": processed, "failed": failed, "updated_ts": int(time.time())}
                )
                await self._flush(db, state)

        state = state.model_copy(
            update={
                "running": False,
                "processed": processed,
                "failed": failed,
                "updated_ts": int(time.time()),
            }
        )
        await self._flush(db, state)
        logger.info(
            "Semantic reindex finished: processed=%d failed=%d total=%d", processed, failed, total
        )
