"""
Persistence for ``NoteEmbedding`` rows.

Embedding storage relies on the pgvector column type, so every operation
checks the session's dialect first and raises ``UnsupportedStorageError`` on
backends that cannot hold it.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from notesearch.common.exceptions import UnsupportedStorageError
from notesearch.config import settings
from notesearch.models import NoteEmbedding

logger = logging.getLogger(__name__)


def supports_semantic_storage(db: Session) -> bool:
    """Capability flag: can the active database persist note embeddings."""
    dialect = db.get_bind().dialect.name
    return dialect in settings.SEMANTIC_STORAGE_DIALECTS


def _ensure_supported(db: Session) -> None:
    if not supports_semantic_storage(db):
        raise UnsupportedStorageError(
            f"semantic storage is not supported by the {db.get_bind().dialect.name} driver"
        )


def get_note_embedding_content_hash(db: Session, note_id: int) -> Optional[str]:
    """Return the content hash of the stored embedding, or None if the note has none."""
    _ensure_supported(db)
    row = (
        db.query(NoteEmbedding.content_hash)
        .filter(NoteEmbedding.note_id == note_id)
        .first()
    )
    return row[0] if row else None


def upsert_note_embedding(
    db: Session,
    note_id: int,
    model: str,
    vector: List[float],
    content_hash: str,
) -> None:
    """Insert or overwrite the embedding of a note (keyed by note id)."""
    _ensure_supported(db)
    if not vector:
        raise ValueError("embedding vector cannot be empty")

    values = {
        "note_id": note_id,
        "model": model,
        "dimension": len(vector),
        "vector": list(vector),
        "content_hash": content_hash,
        "updated_at": datetime.now(timezone.utc),
    }
    dialect = db.get_bind().dialect.name
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
    stmt = insert(NoteEmbedding).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[NoteEmbedding.note_id],
        set_={
            "model": stmt.excluded.model,
            "dimension": stmt.excluded.dimension,
            "vector": stmt.excluded.vector,
            "content_hash": stmt.excluded.content_hash,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    db.commit()


def delete_note_embedding(db: Session, note_id: int) -> None:
    _ensure_supported(db)
    deleted = (
        db.query(NoteEmbedding)
        .filter(NoteEmbedding.note_id == note_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.debug("Deleted %d embedding row(s) for note_id=%s", deleted, note_id)


def list_note_embeddings_by_note_ids(db: Session, note_ids: Iterable[int]) -> Dict[int, NoteEmbedding]:
    """Bulk load embeddings for the given notes, keyed by note id."""
    _ensure_supported(db)
    ids = list(note_ids)
    if not ids:
        return {}
    rows = db.query(NoteEmbedding).filter(NoteEmbedding.note_id.in_(ids)).all()
    return {row.note_id: row for row in rows}
