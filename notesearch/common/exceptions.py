"""
Exceptions raised by the semantic retrieval layer.

Services translate these into ``ResponseCommon`` error responses; they are
never surfaced to HTTP callers directly.
"""
from typing import Optional


class EmbeddingError(Exception):
    """Base class for embedding provider failures."""


class ConfigurationError(EmbeddingError):
    """The embedding provider is not usable (e.g. no API key configured)."""


class EmptyInputError(EmbeddingError, ValueError):
    """Embedding was requested for blank text."""


class EmbeddingRequestError(EmbeddingError):
    """A call to the embedding provider failed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class UnsupportedStorageError(RuntimeError):
    """The active database backend cannot persist note embeddings."""
