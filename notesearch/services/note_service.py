from typing import Iterator, List, Optional
from sqlalchemy.orm import Session, Query
from sqlalchemy import or_
from fastapi import status
import logging

from notesearch.common.common_message import CommonMessage
from notesearch.common.constants import Common, Visibility
from notesearch.common.pagination_utils import PaginationHelper
from notesearch.models import Note, User
from notesearch.common.response_common import ResponseCommon
from notesearch.schemas.note import Note as NoteSchema, NoteSearchDto, NoteSearchFilter
from notesearch.schemas.pagination import PageDto, SortOrder
from notesearch.services.semantic_index_service import SemanticIndexService

logger = logging.getLogger(__name__)


def apply_note_visibility_filter(
    query: Query,
    current_user: Optional[User],
    creator_id: Optional[int] = None,
) -> Query:
    """
    Restrict a note query to what the caller may see.

    Anonymous callers see PUBLIC notes only. Signed-in callers see their own
    notes plus PUBLIC and PROTECTED notes of others; when the query is scoped
    to another user's notes, only that user's PUBLIC and PROTECTED notes.
    """
    if current_user is None:
        return query.filter(Note.visibility == Visibility.PUBLIC)

    shared = [Visibility.PUBLIC, Visibility.PROTECTED]
    if creator_id is None:
        return query.filter(or_(Note.user_id == current_user.id, Note.visibility.in_(shared)))
    if creator_id != current_user.id:
        return query.filter(Note.visibility.in_(shared))
    return query


def apply_note_search_filter(query: Query, search_filter: Optional[NoteSearchFilter]) -> Query:
    if search_filter is None:
        return query

    if search_filter.creator_id is not None:
        query = query.filter(Note.user_id == search_filter.creator_id)

    if search_filter.category is not None:
        query = query.filter(Note.category == search_filter.category)

    if search_filter.is_favorite is not None:
        query = query.filter(Note.is_favorite == search_filter.is_favorite)

    if search_filter.tags:
        query = query.filter(Note.tags.ilike(f"%{search_filter.tags}%"))

    if search_filter.from_date:
        query = query.filter(Note.created_at >= search_filter.from_date)

    if search_filter.to_date:
        query = query.filter(Note.created_at <= search_filter.to_date)

    return query


def build_note_query(
    db: Session,
    current_user: Optional[User],
    search_filter: Optional[NoteSearchFilter] = None,
    is_archived: Optional[bool] = False,
) -> Query:
    """Visibility-filtered note query. ``is_archived=None`` includes both states."""
    query = db.query(Note)
    if is_archived is not None:
        query = query.filter(Note.is_archived == is_archived)
    query = apply_note_search_filter(query, search_filter)
    creator_id = search_filter.creator_id if search_filter else None
    return apply_note_visibility_filter(query, current_user, creator_id)


def iter_note_batches(query: Query, batch_size: int = Common.SEMANTIC_SEARCH_BATCH_SIZE) -> Iterator[List[Note]]:
    """Page through a note query in id order, one batch at a time."""
    offset = 0
    ordered = query.order_by(Note.id.asc())
    while True:
        batch = ordered.offset(offset).limit(batch_size).all()
        if not batch:
            break
        yield batch
        if len(batch) < batch_size:
            break
        offset += len(batch)


def search_notes(db: Session, current_user: Optional[User], search_dto: NoteSearchDto) -> PageDto[NoteSchema]:
    """
    Search and filter notes with pagination

    Args:
        db: Database session
        current_user: Signed-in user, or None for anonymous callers
        search_dto: Search filters and pagination options

    Returns:
        PageDto with notes and pagination metadata
    """
    is_archived = search_dto.is_archived if search_dto.is_archived is not None else False
    query = build_note_query(db, current_user, search_dto, is_archived=is_archived)

    if search_dto.search:
        search_term = f"%{search_dto.search}%"
        query = query.filter(
            or_(
                Note.title.ilike(search_term),
                Note.content.ilike(search_term),
                Note.tags.ilike(search_term),
            )
        )

    order_value = getattr(search_dto.order, "value", search_dto.order)
    if str(order_value).upper() == SortOrder.ASC.value:
        query = query.order_by(Note.updated_at.asc(), Note.id.asc())
    else:
        query = query.order_by(Note.updated_at.desc(), Note.id.desc())

    return PaginationHelper.paginate_query(
        query=query,
        page_options=search_dto,
        response_model=NoteSchema,
    )


def get_note_by_id(db: Session, note_id: int, current_user: Optional[User]) -> ResponseCommon:
    """
    Get a single note by ID, if the caller may see it.

    Args:
        db: Database session
        note_id: Note ID
        current_user: Signed-in user, or None for anonymous callers

    Returns:
        Note object
    """
    query = db.query(Note).filter(Note.id == note_id)
    note = apply_note_visibility_filter(query, current_user).first()

    if not note:
        return ResponseCommon.error_response(
            message=CommonMessage.NOTE_NOT_FOUND,
            code=status.HTTP_404_NOT_FOUND
        )

    return ResponseCommon.success_response(
        data=NoteSchema.model_validate(note),
        message=CommonMessage.NOTE_RETRIEVED_SUCCESS
    )


def create_note(
    db: Session,
    user_id: int,
    note_data: dict,
    indexer: Optional[SemanticIndexService] = None,
) -> ResponseCommon:
    """
    Create a new note and schedule its embedding.

    Args:
        db: Database session
        user_id: User ID
        note_data: Dictionary containing note fields
        indexer: Background indexer notified once the note is committed

    Returns:
        Created note object
    """
    try:
        note = Note(
            user_id=user_id,
            **note_data
        )

        db.add(note)
        db.commit()
        db.refresh(note)
    except Exception as e:
        db.rollback()
        logger.error("Failed to create note: %s", e, exc_info=True)
        return ResponseCommon.error_response(
            message=CommonMessage.NOTE_CREATE_FAILED,
            code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    logger.info("Created note %s for user %s", note.id, user_id)
    if indexer is not None:
        indexer.schedule_refresh(note.id, note.content)

    return ResponseCommon.success_response(
        code=status.HTTP_201_CREATED,
        data=NoteSchema.model_validate(note),
        message=CommonMessage.NOTE_CREATED_SUCCESS
    )


def update_note(
    db: Session,
    note_id: int,
    user_id: int,
    update_data: dict,
    indexer: Optional[SemanticIndexService] = None,
) -> ResponseCommon:
    """
    Update a note owned by the user. A content change schedules a re-embed.

    Args:
        db: Database session
        note_id: Note ID
        user_id: User ID (for ownership verification)
        update_data: Dictionary containing fields to update
        indexer: Background indexer notified when content changed

    Returns:
        Updated note object
    """
    note = db.query(Note).filter(
        Note.id == note_id,
        Note.user_id == user_id
    ).first()

    if not note:
        return ResponseCommon.error_response(
            message=CommonMessage.NOTE_NOT_FOUND,
            code=status.HTTP_404_NOT_FOUND
        )

    content_changed = "content" in update_data and update_data["content"] != note.content

    try:
        # Update only provided fields
        for field, value in update_data.items():
            if value is not None and hasattr(note, field):
                setattr(note, field, value)

        db.commit()
        db.refresh(note)
    except Exception as e:
        db.rollback()
        logger.error("Failed to update note %s: %s", note_id, e, exc_info=True)
        return ResponseCommon.error_response(
            message=CommonMessage.NOTE_UPDATE_FAILED,
            code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    logger.info("Updated note %s", note_id)
    if content_changed and indexer is not None:
        indexer.schedule_refresh(note.id, note.content)

    return ResponseCommon.success_response(
        data=NoteSchema.model_validate(note),
        message=CommonMessage.NOTE_UPDATED_SUCCESS
    )


def delete_note(
    db: Session,
    note_id: int,
    user_id: int,
    indexer: Optional[SemanticIndexService] = None,
) -> ResponseCommon:
    """
    Delete a note owned by the user and schedule removal of its embedding.

    Args:
        db: Database session
        note_id: Note ID
        user_id: User ID (for ownership verification)
        indexer: Background indexer notified after the delete

    Returns:
        Success message
    """
    note = db.query(Note).filter(
        Note.id == note_id,
        Note.user_id == user_id
    ).first()

    if not note:
        return ResponseCommon.error_response(
            message=CommonMessage.NOTE_NOT_FOUND,
            code=status.HTTP_404_NOT_FOUND
        )

    try:
        db.delete(note)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("Failed to delete note %s: %s", note_id, e, exc_info=True)
        return ResponseCommon.error_response(
            message=CommonMessage.NOTE_DELETE_FAILED,
            code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    logger.info("Deleted note %s", note_id)
    if indexer is not None:
        indexer.schedule_delete(note_id)

    return ResponseCommon.success_response(
        message=CommonMessage.NOTE_DELETED_SUCCESS
    )
