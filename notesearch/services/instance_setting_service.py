import json
import logging
from typing import List, Optional, Tuple, TYPE_CHECKING

from fastapi import status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from notesearch.common.common_message import CommonMessage
from notesearch.common.constants import InstanceSettingKey
from notesearch.common.response_common import ResponseCommon
from notesearch.core.secret_crypto import encrypt_sensitive_value
from notesearch.models import InstanceSetting
from notesearch.schemas.instance_setting import AISettingResponse, AISettingUpdate, InstanceAISetting
from notesearch.services.embedding_service import resolve_embedding_concurrency

if TYPE_CHECKING:
    from notesearch.services.semantic_index_service import SemanticIndexService
    from notesearch.services.semantic_reindex_service import SemanticReindexService

logger = logging.getLogger(__name__)


def get_instance_ai_setting(db: Session) -> InstanceAISetting:
    """Load the ``AI`` setting document, or an empty one if none is stored."""
    row = db.query(InstanceSetting).filter(InstanceSetting.name == InstanceSettingKey.AI).first()
    if row is None or not row.value:
        return InstanceAISetting()
    try:
        return InstanceAISetting.model_validate_json(row.value)
    except ValidationError as exc:
        logger.warning("Stored AI setting is invalid, using defaults: %s", exc)
        return InstanceAISetting()


def upsert_instance_ai_setting(db: Session, setting: InstanceAISetting) -> InstanceAISetting:
    value = json.dumps(setting.model_dump(mode="json"), sort_keys=True)
    row = db.query(InstanceSetting).filter(InstanceSetting.name == InstanceSettingKey.AI).first()
    if row is None:
        row = InstanceSetting(name=InstanceSettingKey.AI, value=value)
        db.add(row)
    else:
        row.value = value
    db.commit()
    return setting


def normalize_embedding_models(models: List[str], selected: str) -> Tuple[List[str], str]:
    """
    Trim and dedupe the model list, with the selected model first.

    Returns the list and the selected model, which falls back to the first
    listed model when blank.
    """
    result: List[str] = []
    seen = set()
    for model in [selected, *models]:
        model = (model or "").strip()
        if not model or model in seen:
            continue
        seen.add(model)
        result.append(model)
    selected = (selected or "").strip()
    if not selected and result:
        selected = result[0]
    return result, selected


def validate_ai_setting_update(request: AISettingUpdate) -> Optional[str]:
    for field in (
        "openai_embedding_max_retry",
        "openai_embedding_retry_backoff_ms",
        "semantic_embedding_concurrency",
    ):
        if getattr(request, field) < 0:
            return CommonMessage.AI_SETTING_NEGATIVE_VALUE % field
    return None


def get_ai_setting(db: Session) -> ResponseCommon:
    setting = get_instance_ai_setting(db)
    return ResponseCommon.success_response(
        data=AISettingResponse.from_setting(setting),
        message=CommonMessage.AI_SETTING_RETRIEVED_SUCCESS,
    )


def update_ai_setting(
    db: Session,
    request: AISettingUpdate,
    secret: str,
    indexer: Optional["SemanticIndexService"] = None,
    reindexer: Optional["SemanticReindexService"] = None,
) -> ResponseCommon:
    """
    Update the ``AI`` instance setting.

    The stored API key is replaced only when a new one is given (or cleared
    explicitly). Reindex progress is carried over untouched. The resolved
    concurrency limit is applied to the indexer right away, and a reindex is
    started when requested.
    """
    error = validate_ai_setting_update(request)
    if error:
        return ResponseCommon.error_response(message=error, code=status.HTTP_400_BAD_REQUEST)

    current = get_instance_ai_setting(db)
    encrypted_api_key = current.openai_api_key_encrypted
    if request.clear_openai_api_key:
        encrypted_api_key = ""
    if request.openai_api_key is not None and request.openai_api_key.strip():
        try:
            encrypted_api_key = encrypt_sensitive_value(secret, request.openai_api_key.strip())
        except ValueError as exc:
            logger.error("Failed to encrypt openai api key: %s", exc)
            return ResponseCommon.error_response(
                message=CommonMessage.AI_SETTING_UPDATE_FAILED,
                code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

    models, selected_model = normalize_embedding_models(
        request.openai_embedding_models, request.openai_embedding_model
    )
    updated = InstanceAISetting(
        openai_base_url=request.openai_base_url.strip(),
        openai_embedding_model=selected_model,
        openai_embedding_models=models,
        openai_api_key_encrypted=encrypted_api_key,
        openai_embedding_max_retry=request.openai_embedding_max_retry,
        openai_embedding_retry_backoff_ms=request.openai_embedding_retry_backoff_ms,
        semantic_embedding_concurrency=request.semantic_embedding_concurrency,
        semantic_reindex=current.semantic_reindex,
    )

    try:
        upsert_instance_ai_setting(db, updated)
    except Exception as exc:
        db.rollback()
        logger.error("Failed to update AI setting: %s", exc, exc_info=True)
        return ResponseCommon.error_response(
            message=CommonMessage.AI_SETTING_UPDATE_FAILED,
            code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    logger.info("Updated AI setting (model=%s)", selected_model or "<default>")

    if indexer is not None:
        indexer.set_concurrency_limit(resolve_embedding_concurrency(updated, indexer.provider.settings))

    if request.trigger_semantic_reindex and reindexer is not None:
        started = reindexer.start_reindex(db)
        if not started.success:
            return started

    return ResponseCommon.success_response(
        data=AISettingResponse.from_setting(get_instance_ai_setting(db)),
        message=CommonMessage.AI_SETTING_UPDATED_SUCCESS,
    )
