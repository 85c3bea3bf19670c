from fastapi import APIRouter, Depends, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Optional
import json

from notesearch.api.deps import (
    get_db,
    get_current_active_user,
    get_optional_user,
    get_embedding_provider,
    get_semantic_indexer,
)
from notesearch.models import User
from notesearch.common.common_message import CommonMessage
from notesearch.schemas.note import (
    Note,
    NoteCreate,
    NoteUpdate,
    NoteSearchDto,
    SemanticSearchRequest,
)
from notesearch.schemas.pagination import ResponseCommon as ResponseCommonSchema, PageDto
from notesearch.common.pagination_utils import PaginationHelper
from notesearch.services.embedding_service import EmbeddingClientProvider
from notesearch.services.note_service import (
    get_note_by_id,
    create_note,
    update_note,
    delete_note,
    search_notes as search_notes_service,
)
from notesearch.services.semantic_index_service import SemanticIndexService
from notesearch.services.semantic_search_service import search_notes_semantic

router = APIRouter()


@router.post("/search", response_model=ResponseCommonSchema[PageDto[Note]])
async def search_notes(
    search_dto: NoteSearchDto,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """
    Search and filter notes with pagination.

    - **page**: Current page number (default: 1)
    - **page_size**: Items per page (default: 10)
    - **order**: Sort order - ASC or DESC (default: DESC)
    - **search**: Search in title, content, tags
    - **category**: Filter by category
    - **creator_id**: Filter by note owner
    - **is_favorite**: Filter favorite notes
    - **is_archived**: Filter archived notes
    - **tags**: Filter by tags
    - **from_date**: Filter notes created after date
    - **to_date**: Filter notes created before date
    """
    paginated_notes = search_notes_service(
        db=db,
        current_user=current_user,
        search_dto=search_dto,
    )

    return PaginationHelper.create_response(
        paginated_data=paginated_notes,
        message=CommonMessage.NOTES_LIST_RETRIEVED_SUCCESS,
    )


@router.post("/semantic-search")
async def search_notes_by_semantic(
    request: SemanticSearchRequest,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    provider: EmbeddingClientProvider = Depends(get_embedding_provider),
):
    """
    Search notes by meaning rather than keywords.

    The query is embedded and compared against every note the caller can see.
    Results are ordered by similarity and paginated with `next_page_token`.

    - **query**: Free-text query (required)
    - **filter**: Optional structured filter (category, tags, creator_id, ...)
    - **archived**: Search archived notes instead of live ones
    - **page_size**: Page size (default 10, max 1000)
    - **page_token**: Token from a previous response
    """
    result = await search_notes_semantic(
        db=db,
        provider=provider,
        request=request,
        current_user=current_user,
    )

    if not result.success:
        return Response(
            content=json.dumps(result.to_json()),
            status_code=result.code,
            media_type="application/json"
        )

    return result.to_json()


@router.get("/{note_id}")
async def get_note(
    note_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    """
    Get a single note by ID.
    """
    note_response = get_note_by_id(db=db, note_id=note_id, current_user=current_user)
    if not note_response.success:
        return Response(
            content=json.dumps(note_response.to_json()),
            status_code=note_response.code,
            media_type="application/json"
        )
    return note_response.to_json()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_new_note(
    note_data: NoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    indexer: SemanticIndexService = Depends(get_semantic_indexer),
):
    """
    Create a new note. Its embedding is computed in the background.
    """
    create_response = create_note(
        db=db,
        user_id=current_user.id,
        note_data=note_data.model_dump(exclude_unset=True),
        indexer=indexer,
    )

    if not create_response.success:
        return Response(
            content=json.dumps(create_response.to_json()),
            status_code=create_response.code,
            media_type="application/json"
        )

    return create_response.to_json()


@router.patch("/{note_id}")
async def update_existing_note(
    note_id: int,
    update_data: NoteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    indexer: SemanticIndexService = Depends(get_semantic_indexer),
):
    """
    Update a note.

    Only provided fields will be updated. Null/missing fields are ignored.
    """
    update_response = update_note(
        db=db,
        note_id=note_id,
        user_id=current_user.id,
        update_data=update_data.model_dump(exclude_unset=True),
        indexer=indexer,
    )

    if not update_response.success:
        return Response(
            content=json.dumps(update_response.to_json()),
            status_code=update_response.code,
            media_type="application/json"
        )

    return update_response.to_json()


@router.delete("/{note_id}", status_code=status.HTTP_200_OK)
async def delete_existing_note(
    note_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    indexer: SemanticIndexService = Depends(get_semantic_indexer),
):
    """
    Delete a note permanently.
    """
    delete_response = delete_note(db=db, note_id=note_id, user_id=current_user.id, indexer=indexer)
    if not delete_response.success:
        return Response(
            content=json.dumps(delete_response.to_json()),
            status_code=delete_response.code,
            media_type="application/json"
        )
    return delete_response.to_json()
