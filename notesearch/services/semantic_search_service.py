"""
Semantic note search.

The query is embedded once, every note the caller may see is scored by
cosine similarity against its stored embedding, and the ranked list is
paginated with an opaque ``(limit, offset)`` page token. Ranking happens in
application memory over the full eligible candidate set.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from fastapi import status
from sqlalchemy.orm import Session

from notesearch.common.common_message import CommonMessage
from notesearch.common.constants import Common
from notesearch.common.exceptions import ConfigurationError, EmbeddingError
from notesearch.common.pagination_utils import PageToken
from notesearch.common.response_common import ResponseCommon
from notesearch.models import Note, NoteEmbedding, User
from notesearch.schemas.note import Note as NoteSchema, SemanticSearchRequest, SemanticSearchResponse
from notesearch.services.embedding_service import EmbeddingClientProvider, EmbeddingTask
from notesearch.services.note_embedding_service import (
    list_note_embeddings_by_note_ids,
    supports_semantic_storage,
)
from notesearch.services.note_service import build_note_query, iter_note_batches

logger = logging.getLogger(__name__)


@dataclass
class ScoredNote:
    note: Note
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> Optional[float]:
    """
    Cosine similarity of two vectors.

    Returns None when either vector is empty or has zero magnitude, or when
    their dimensions differ (embeddings from different models), or when the
    score is not finite.
    """
    if a is None or b is None:
        return None
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.size == 0 or vb.size == 0 or va.size != vb.size:
        return None

    with np.errstate(over="ignore", invalid="ignore"):
        norm_a = float(np.dot(va, va))
        norm_b = float(np.dot(vb, vb))
        if norm_a == 0.0 or norm_b == 0.0:
            return None
        score = float(np.dot(va, vb)) / (np.sqrt(norm_a) * np.sqrt(norm_b))
    if not np.isfinite(score):
        return None
    # Guard floating point overshoot
    return max(-1.0, min(1.0, score))


def _timestamp(value: Optional[datetime]) -> float:
    if value is None:
        return 0.0
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).timestamp()
    return value.timestamp()


def rank_notes(
    query_vector: Sequence[float],
    notes: Sequence[Note],
    embeddings: Dict[int, NoteEmbedding],
) -> List[ScoredNote]:
    """
    Score and order candidate notes.

    Notes without an embedding, or whose embedding cannot be compared to the
    query vector, are dropped. Order: score desc, then ``updated_at`` desc,
    then note id desc.
    """
    scored: List[ScoredNote] = []
    for note in notes:
        embedding = embeddings.get(note.id)
        if embedding is None:
            continue
        score = cosine_similarity(query_vector, embedding.vector)
        if score is None:
            continue
        scored.append(ScoredNote(note=note, score=score))

    scored.sort(key=lambda item: (-item.score, -_timestamp(item.note.updated_at), -item.note.id))
    return scored


def resolve_page(page_size: int, page_token: str) -> Tuple[int, int]:
    """
    Resolve ``(limit, offset)`` from the request.

    Raises:
        ValueError: If the page token is malformed
    """
    limit, offset = page_size, 0
    if page_token:
        limit, offset = PageToken.decode(page_token)
    if limit <= 0:
        limit = Common.DEFAULT_PAGE_SIZE
    if limit > Common.MAX_PAGE_SIZE:
        limit = Common.MAX_PAGE_SIZE
    return limit, offset


def paginate_ranked(ranked: List[ScoredNote], limit: int, offset: int) -> Tuple[List[ScoredNote], str]:
    if offset >= len(ranked):
        return [], ""
    end = min(offset + limit, len(ranked))
    next_page_token = PageToken.encode(limit, end) if end < len(ranked) else ""
    return ranked[offset:end], next_page_token


def _empty_result() -> ResponseCommon:
    return ResponseCommon.success_response(
        data=SemanticSearchResponse(notes=[], next_page_token=""),
        message=CommonMessage.SEMANTIC_SEARCH_COMPLETED,
    )


async def search_notes_semantic(
    db: Session,
    provider: EmbeddingClientProvider,
    request: SemanticSearchRequest,
    current_user: Optional[User] = None,
) -> ResponseCommon:
    """
    Rank the notes visible to ``current_user`` by similarity to ``request.query``.

    Error codes: 400 for a blank query or bad page token, 412 when semantic
    storage is unavailable or the provider is not configured, 500 when the
    provider call or a storage read fails.
    """
    query_text = (request.query or "").strip()
    if not query_text:
        return ResponseCommon.error_response(
            message=CommonMessage.SEMANTIC_QUERY_REQUIRED,
            code=status.HTTP_400_BAD_REQUEST,
        )
    if not supports_semantic_storage(db):
        return ResponseCommon.error_response(
            message=CommonMessage.SEMANTIC_STORAGE_UNSUPPORTED,
            code=status.HTTP_412_PRECONDITION_FAILED,
        )

    try:
        client = provider.get_client(db)
    except ConfigurationError as exc:
        return ResponseCommon.error_response(
            message=CommonMessage.SEMANTIC_NOT_CONFIGURED % exc,
            code=status.HTTP_412_PRECONDITION_FAILED,
        )

    try:
        limit, offset = resolve_page(request.page_size, request.page_token)
    except ValueError as exc:
        return ResponseCommon.error_response(
            message=CommonMessage.INVALID_PAGE_TOKEN % exc,
            code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        query_vector = await client.embed(query_text, task=EmbeddingTask.QUERY)
    except EmbeddingError as exc:
        logger.warning("Semantic query embedding failed: %s", exc)
        return ResponseCommon.error_response(
            message=CommonMessage.SEMANTIC_QUERY_EMBEDDING_FAILED % exc,
            code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    query = build_note_query(db, current_user, request.filter, is_archived=request.archived)
    candidates: List[Note] = []
    embeddings: Dict[int, NoteEmbedding] = {}
    try:
        for batch in iter_note_batches(query, Common.SEMANTIC_SEARCH_BATCH_SIZE):
            candidates.extend(batch)
    except Exception as exc:
        logger.error("Failed to list semantic candidates: %s", exc, exc_info=True)
        return ResponseCommon.error_response(
            message=CommonMessage.SEMANTIC_CANDIDATES_FAILED % exc,
            code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    if not candidates:
        return _empty_result()

    try:
        for start in range(0, len(candidates), Common.SEMANTIC_SEARCH_BATCH_SIZE):
            chunk = candidates[start:start + Common.SEMANTIC_SEARCH_BATCH_SIZE]
            embeddings.update(list_note_embeddings_by_note_ids(db, [note.id for note in chunk]))
    except Exception as exc:
        logger.error("Failed to load semantic embeddings: %s", exc, exc_info=True)
        return ResponseCommon.error_response(
            message=CommonMessage.SEMANTIC_EMBEDDINGS_FAILED % exc,
            code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    ranked = rank_notes(query_vector, candidates, embeddings)
    page, next_page_token = paginate_ranked(ranked, limit, offset)
    logger.info(
        "Semantic search ranked %d of %d candidates, returning %d (offset=%d)",
        len(ranked),
        len(candidates),
        len(page),
        offset,
    )

    return ResponseCommon.success_response(
        data=SemanticSearchResponse(
            notes=[NoteSchema.model_validate(item.note) for item in page],
            next_page_token=next_page_token,
        ),
        message=CommonMessage.SEMANTIC_SEARCH_COMPLETED,
    )
