"""
Embedding client for OpenAI-compatible ``/embeddings`` endpoints.

Configuration is resolved from the administrator ``AI`` instance setting with
process-level fallbacks from ``Settings``; the stored API key is decrypted
immediately before the client is built and never logged.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol

import httpx
from sqlalchemy.orm import Session

from notesearch.common.constants import Common
from notesearch.common.exceptions import (
    ConfigurationError,
    EmbeddingRequestError,
    EmptyInputError,
)
from notesearch.config import (
    DEFAULT_EMBEDDING_CONCURRENCY,
    DEFAULT_EMBEDDING_MAX_RETRY,
    DEFAULT_EMBEDDING_RETRY_BACKOFF_MS,
    Settings,
)
from notesearch.core.secret_crypto import decrypt_sensitive_value
from notesearch.schemas.instance_setting import InstanceAISetting

logger = logging.getLogger(__name__)

_JINA_MODEL_PREFIX = "jina"


class EmbeddingTask(str, Enum):
    """Whether the text being embedded is a search query or a stored document."""

    QUERY = "query"
    PASSAGE = "passage"


@dataclass(frozen=True)
class EmbeddingConfig:
    base_url: str
    api_key: str
    model: str
    max_retry: int = DEFAULT_EMBEDDING_MAX_RETRY
    retry_backoff_ms: int = DEFAULT_EMBEDDING_RETRY_BACKOFF_MS

    def __repr__(self) -> str:
        return (
            f"EmbeddingConfig(base_url={self.base_url!r}, model={self.model!r}, "
            f"max_retry={self.max_retry}, retry_backoff_ms={self.retry_backoff_ms}, "
            f"api_key_set={bool(self.api_key)})"
        )


class SemanticEmbeddingClient(Protocol):
    """Narrow embedding capability used by indexing, search and reindex."""

    @property
    def model(self) -> str:
        ...

    async def embed(self, text: str, task: EmbeddingTask = EmbeddingTask.PASSAGE) -> List[float]:
        ...


def normalize_base_url(raw_base_url: Optional[str]) -> str:
    """
    Normalize an operator-entered base URL.

    Blank falls back to the default provider, a missing scheme gets ``https://``
    and trailing slashes are stripped. An explicit ``http://`` is kept.
    """
    base_url = (raw_base_url or "").strip()
    if not base_url:
        base_url = Common.DEFAULT_OPENAI_BASE_URL
    if "://" not in base_url:
        base_url = "https://" + base_url
    return base_url.rstrip("/")


def resolve_embedding_config(
    ai_setting: InstanceAISetting,
    app_settings: Settings,
    secret: str,
) -> EmbeddingConfig:
    """
    Resolve the effective provider configuration.

    Administrator values win when set, otherwise the process-level fallback
    from ``app_settings`` is used, otherwise the built-in default.

    Raises:
        ConfigurationError: If the stored API key cannot be decrypted
    """
    base_url = ai_setting.openai_base_url.strip() or app_settings.OPENAI_BASE_URL.strip()
    model = ai_setting.openai_embedding_model.strip() or app_settings.OPENAI_EMBEDDING_MODEL.strip()

    api_key = ""
    encrypted_api_key = ai_setting.openai_api_key_encrypted.strip()
    if encrypted_api_key:
        try:
            api_key = decrypt_sensitive_value(secret, encrypted_api_key).strip()
        except ValueError as exc:
            raise ConfigurationError(f"failed to decrypt stored openai api key: {exc}") from exc
    if not api_key:
        api_key = app_settings.OPENAI_API_KEY.strip()

    if ai_setting.openai_embedding_max_retry > 0:
        max_retry = ai_setting.openai_embedding_max_retry
    else:
        max_retry = app_settings.OPENAI_EMBEDDING_MAX_RETRY
    if ai_setting.openai_embedding_retry_backoff_ms > 0:
        retry_backoff_ms = ai_setting.openai_embedding_retry_backoff_ms
    else:
        retry_backoff_ms = app_settings.OPENAI_EMBEDDING_RETRY_BACKOFF_MS

    return EmbeddingConfig(
        base_url=normalize_base_url(base_url),
        api_key=api_key,
        model=model or Common.DEFAULT_EMBEDDING_MODEL,
        max_retry=max_retry,
        retry_backoff_ms=retry_backoff_ms,
    )


def resolve_embedding_concurrency(ai_setting: InstanceAISetting, app_settings: Settings) -> int:
    if ai_setting.semantic_embedding_concurrency > 0:
        return ai_setting.semantic_embedding_concurrency
    if app_settings.SEMANTIC_EMBEDDING_CONCURRENCY > 0:
        return app_settings.SEMANTIC_EMBEDDING_CONCURRENCY
    return DEFAULT_EMBEDDING_CONCURRENCY


def is_retryable_status(status_code: int) -> bool:
    if status_code in (429, 408):
        return True
    return status_code >= 500


class OpenAIEmbeddingClient:
    """Embedding client for a single OpenAI-compatible provider."""

    def __init__(self, config: EmbeddingConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        api_key = (config.api_key or "").strip()
        if not api_key:
            raise ConfigurationError("openai api key is not configured")

        self._base_url = normalize_base_url(config.base_url)
        self._api_key = api_key
        self._model = (config.model or "").strip() or Common.DEFAULT_EMBEDDING_MODEL
        self._max_retry = max(0, config.max_retry)
        self._backoff_seconds = max(0, config.retry_backoff_ms) / 1000.0
        self._transport = transport

    def __repr__(self) -> str:
        return f"OpenAIEmbeddingClient(base_url={self._base_url!r}, model={self._model!r})"

    @property
    def model(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    def _build_payload(self, text: str, task: EmbeddingTask) -> dict:
        # Jina models take a batch input and a retrieval task hint
        if self._model.lower().startswith(_JINA_MODEL_PREFIX):
            return {
                "model": self._model,
                "input": [text],
                "task": f"retrieval.{task.value}",
            }
        return {"model": self._model, "input": text}

    async def embed(self, text: str, task: EmbeddingTask = EmbeddingTask.PASSAGE) -> List[float]:
        """
        Embed one text.

        Retryable failures (transport errors, 5xx, 429, 408) are retried
        ``max_retry`` more times with exponential backoff. Cancellation is
        never converted into an ``EmbeddingRequestError``.

        Raises:
            EmptyInputError: If the text is blank
            EmbeddingRequestError: If the provider call fails
        """
        if not text or not text.strip():
            raise EmptyInputError("embedding text cannot be empty")

        payload = self._build_payload(text, EmbeddingTask(task))
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "User-Agent": Common.EMBEDDING_USER_AGENT,
        }

        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=Common.EMBEDDING_HTTP_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            attempt = 0
            while True:
                try:
                    return await self._embed_once(client, payload)
                except EmbeddingRequestError as exc:
                    if not exc.retryable or attempt >= self._max_retry:
                        raise
                    delay = self._backoff_seconds * (2 ** attempt)
                    logger.warning(
                        "Embedding request failed with retryable error: %s. Retrying in %.2fs (attempt %d/%d)",
                        exc,
                        delay,
                        attempt + 1,
                        self._max_retry,
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

    async def _embed_once(self, client: httpx.AsyncClient, payload: dict) -> List[float]:
        try:
            response = await client.post("/embeddings", json=payload)
        except httpx.HTTPError as exc:
            raise EmbeddingRequestError(
                f"failed to call openai embedding api: {exc}", retryable=True
            ) from exc

        retryable = is_retryable_status(response.status_code)
        try:
            body = response.json()
        except ValueError as exc:
            raise EmbeddingRequestError(
                f"failed to decode openai embedding response: {exc}",
                status_code=response.status_code,
                retryable=retryable,
            ) from exc
        if not isinstance(body, dict):
            raise EmbeddingRequestError(
                "failed to decode openai embedding response",
                status_code=response.status_code,
                retryable=retryable,
            )

        if response.status_code >= 400:
            error = body.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            if message:
                detail = f"openai embedding request failed: {message}"
            else:
                detail = f"openai embedding request failed with status {response.status_code}"
            raise EmbeddingRequestError(detail, status_code=response.status_code, retryable=retryable)

        data = body.get("data")
        if data is not None and not isinstance(data, list):
            raise EmbeddingRequestError(
                "failed to decode openai embedding response: data is not a list",
                status_code=response.status_code,
            )
        embedding = None
        if data and isinstance(data[0], dict):
            embedding = data[0].get("embedding")
        if not embedding:
            raise EmbeddingRequestError(
                "openai embedding response is empty", status_code=response.status_code
            )
        if not isinstance(embedding, list):
            raise EmbeddingRequestError(
                "failed to decode openai embedding response: embedding is not a list",
                status_code=response.status_code,
            )
        try:
            return [float(value) for value in embedding]
        except (TypeError, ValueError) as exc:
            raise EmbeddingRequestError(
                f"failed to decode openai embedding response: {exc}",
                status_code=response.status_code,
            ) from exc


ClientFactory = Callable[[EmbeddingConfig], SemanticEmbeddingClient]


class EmbeddingClientProvider:
    """
    Builds embedding clients from the persisted ``AI`` instance setting.

    ``factory`` replaces the production ``OpenAIEmbeddingClient`` constructor,
    which is how tests inject a fake provider.
    """

    def __init__(
        self,
        app_settings: Settings,
        factory: Optional[ClientFactory] = None,
    ):
        self._settings = app_settings
        self._factory = factory or OpenAIEmbeddingClient

    @property
    def settings(self) -> Settings:
        return self._settings

    def resolve_config(self, db: Session) -> EmbeddingConfig:
        # Deferred: instance_setting_service depends on this module
        from notesearch.services.instance_setting_service import get_instance_ai_setting

        ai_setting = get_instance_ai_setting(db)
        return resolve_embedding_config(ai_setting, self._settings, self._settings.SECRET_KEY)

    def get_client(self, db: Session) -> SemanticEmbeddingClient:
        """
        Raises:
            ConfigurationError: If no usable provider configuration exists
        """
        return self._factory(self.resolve_config(db))

    def is_configured(self, db: Session) -> bool:
        try:
            self.get_client(db)
        except ConfigurationError as exc:
            logger.debug("Embedding provider not configured: %s", exc)
            return False
        return True
