from typing import List, Optional

from pydantic import BaseModel, Field


class ReindexState(BaseModel):
    """Progress of the most recent (or ongoing) full-corpus reindex."""

    running: bool = False
    total: int = 0
    processed: int = 0
    failed: int = 0
    started_ts: int = 0
    updated_ts: int = 0
    model: str = ""


class InstanceAISetting(BaseModel):
    """Stored form of the ``AI`` instance setting document."""

    openai_base_url: str = ""
    openai_embedding_model: str = ""
    openai_embedding_models: List[str] = Field(default_factory=list)
    openai_api_key_encrypted: str = ""
    openai_embedding_max_retry: int = 0
    openai_embedding_retry_backoff_ms: int = 0
    semantic_embedding_concurrency: int = 0
    semantic_reindex: ReindexState = Field(default_factory=ReindexState)


class AISettingResponse(BaseModel):
    """Administrator view of the AI setting. The API key is never returned."""

    openai_base_url: str = ""
    openai_embedding_model: str = ""
    openai_embedding_models: List[str] = Field(default_factory=list)
    openai_api_key_set: bool = False
    openai_embedding_max_retry: int = 0
    openai_embedding_retry_backoff_ms: int = 0
    semantic_embedding_concurrency: int = 0
    semantic_reindex: ReindexState = Field(default_factory=ReindexState)

    @classmethod
    def from_setting(cls, setting: InstanceAISetting) -> "AISettingResponse":
        return cls(
            openai_base_url=setting.openai_base_url,
            openai_embedding_model=setting.openai_embedding_model,
            openai_embedding_models=list(setting.openai_embedding_models),
            openai_api_key_set=setting.openai_api_key_encrypted != "",
            openai_embedding_max_retry=setting.openai_embedding_max_retry,
            openai_embedding_retry_backoff_ms=setting.openai_embedding_retry_backoff_ms,
            semantic_embedding_concurrency=setting.semantic_embedding_concurrency,
            semantic_reindex=setting.semantic_reindex,
        )


class AISettingUpdate(BaseModel):
    openai_base_url: str = ""
    openai_embedding_model: str = ""
    openai_embedding_models: List[str] = Field(default_factory=list)
    openai_api_key: Optional[str] = Field(default=None, description="New plaintext key; encrypted before storage")
    clear_openai_api_key: bool = False
    openai_embedding_max_retry: int = 0
    openai_embedding_retry_backoff_ms: int = 0
    semantic_embedding_concurrency: int = 0
    trigger_semantic_reindex: bool = False
