from fastapi import APIRouter, Depends, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
import json

from notesearch.api.deps import (
    get_db,
    get_current_admin_user,
    get_embedding_provider,
    get_semantic_indexer,
    get_semantic_reindexer,
)
from notesearch.models import User
from notesearch.schemas.instance_setting import AISettingUpdate
from notesearch.services.embedding_service import EmbeddingClientProvider
from notesearch.services.instance_setting_service import get_ai_setting, update_ai_setting
from notesearch.services.semantic_index_service import SemanticIndexService
from notesearch.services.semantic_reindex_service import SemanticReindexService

router = APIRouter()


@router.get("/settings/ai")
async def get_instance_ai_setting(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """
    Get the embedding provider setting and the latest reindex progress.

    The API key itself is never returned, only whether one is stored.
    """
    return get_ai_setting(db).to_json()


@router.patch("/settings/ai")
async def update_instance_ai_setting(
    setting: AISettingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    provider: EmbeddingClientProvider = Depends(get_embedding_provider),
    indexer: SemanticIndexService = Depends(get_semantic_indexer),
    reindexer: SemanticReindexService = Depends(get_semantic_reindexer),
):
    """
    Update the embedding provider setting.

    - **openai_api_key**: New key, encrypted before storage (omit to keep the current key)
    - **clear_openai_api_key**: Remove the stored key
    - **semantic_embedding_concurrency**: Applied to background indexing immediately
    - **trigger_semantic_reindex**: Start a full reindex after saving
    """
    result = update_ai_setting(
        db=db,
        request=setting,
        secret=provider.settings.SECRET_KEY,
        indexer=indexer,
        reindexer=reindexer,
    )

    if not result.success:
        return Response(
            content=json.dumps(result.to_json()),
            status_code=result.code,
            media_type="application/json"
        )

    return result.to_json()


@router.post("/semantic-reindex", status_code=status.HTTP_202_ACCEPTED)
async def start_semantic_reindex(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    reindexer: SemanticReindexService = Depends(get_semantic_reindexer),
):
    """
    Re-embed every note in the background, e.g. after changing the model.

    Fails with 409 if a reindex is already running. Poll
    `GET /instance/semantic-reindex` for progress.
    """
    result = reindexer.start_reindex(db)
    if not result.success:
        return Response(
            content=json.dumps(result.to_json()),
            status_code=result.code,
            media_type="application/json"
        )
    return result.to_json()


@router.get("/semantic-reindex")
async def get_semantic_reindex_state(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
    reindexer: SemanticReindexService = Depends(get_semantic_reindexer),
):
    """
    Get progress of the current or most recent reindex.
    """
    return reindexer.get_status(db).to_json()
