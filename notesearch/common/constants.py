class Common:
    """Semantic retrieval constants."""

    DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
    EMBEDDING_USER_AGENT = "notesearch-semantic-search/1.0"
    EMBEDDING_HTTP_TIMEOUT_SECONDS = 30.0

    # Pagination
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 1000

    # Candidate notes are read from the note store in batches of this size
    SEMANTIC_SEARCH_BATCH_SIZE = 2000

    # Background work deadlines
    EMBEDDING_REFRESH_TIMEOUT_SECONDS = 45
    EMBEDDING_DELETE_TIMEOUT_SECONDS = 10
    SEMANTIC_REINDEX_TIMEOUT_SECONDS = 12 * 60 * 60

    # Reindex progress is persisted every N notes (and on the final note)
    SEMANTIC_REINDEX_PROGRESS_FLUSH_STEP = 10


class Visibility:
    PRIVATE = "PRIVATE"
    PROTECTED = "PROTECTED"
    PUBLIC = "PUBLIC"

    ALL = (PRIVATE, PROTECTED, PUBLIC)


class Role:
    USER = "USER"
    ADMIN = "ADMIN"


class InstanceSettingKey:
    AI = "AI"
