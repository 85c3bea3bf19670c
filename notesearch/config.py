import logging
import os
from typing import List

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()  # Load environment variables from .env file

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MAX_RETRY = 2
DEFAULT_EMBEDDING_RETRY_BACKOFF_MS = 100
DEFAULT_EMBEDDING_CONCURRENCY = 8


def _int_or_default(name: str, value, default: int, minimum: int = 1) -> int:
    if value is None or str(value).strip() == "":
        return default
    try:
        parsed = int(str(value).strip())
    except ValueError:
        logger.warning("Invalid %s=%s, using default %d", name, value, default)
        return default
    if parsed < minimum:
        logger.warning("Invalid %s=%s, using default %d", name, value, default)
        return default
    return parsed


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    LOG_LEVEL: str = "INFO"

    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours
    ALGORITHM: str = "HS256"
    JWT_SECRET_KEY: str = "dev-jwt-secret"

    # Instance secret, used to encrypt provider credentials at rest
    SECRET_KEY: str = "dev-instance-secret"

    # Process-level fallbacks for the embedding provider
    OPENAI_BASE_URL: str = ""
    OPENAI_API_KEY: str = ""
    OPENAI_EMBEDDING_MODEL: str = ""
    OPENAI_EMBEDDING_MAX_RETRY: int = DEFAULT_EMBEDDING_MAX_RETRY
    OPENAI_EMBEDDING_RETRY_BACKOFF_MS: int = DEFAULT_EMBEDDING_RETRY_BACKOFF_MS
    SEMANTIC_EMBEDDING_CONCURRENCY: int = DEFAULT_EMBEDDING_CONCURRENCY

    # Database dialects able to persist note embeddings
    SEMANTIC_STORAGE_DIALECTS: List[str] = ["postgresql"]

    @field_validator("OPENAI_EMBEDDING_MAX_RETRY", mode="before")
    @classmethod
    def parse_max_retry(cls, v):
        # Zero retries is a valid choice
        return _int_or_default("OPENAI_EMBEDDING_MAX_RETRY", v, DEFAULT_EMBEDDING_MAX_RETRY, minimum=0)

    @field_validator("OPENAI_EMBEDDING_RETRY_BACKOFF_MS", mode="before")
    @classmethod
    def parse_retry_backoff(cls, v):
        return _int_or_default(
            "OPENAI_EMBEDDING_RETRY_BACKOFF_MS", v, DEFAULT_EMBEDDING_RETRY_BACKOFF_MS
        )

    @field_validator("SEMANTIC_EMBEDDING_CONCURRENCY", mode="before")
    @classmethod
    def parse_concurrency(cls, v):
        return _int_or_default(
            "SEMANTIC_EMBEDDING_CONCURRENCY", v, DEFAULT_EMBEDDING_CONCURRENCY
        )


settings = Settings()
