class CommonMessage:
    """User-facing response messages."""

    # Notes
    NOTE_NOT_FOUND = "Note not found"
    NOTE_RETRIEVED_SUCCESS = "Note retrieved successfully"
    NOTES_LIST_RETRIEVED_SUCCESS = "Notes retrieved successfully"
    NOTE_CREATED_SUCCESS = "Note created successfully"
    NOTE_CREATE_FAILED = "Failed to create note"
    NOTE_UPDATED_SUCCESS = "Note updated successfully"
    NOTE_UPDATE_FAILED = "Failed to update note"
    NOTE_DELETED_SUCCESS = "Note deleted successfully"
    NOTE_DELETE_FAILED = "Failed to delete note"

    # Semantic search
    SEMANTIC_SEARCH_COMPLETED = "Semantic search completed"
    SEMANTIC_QUERY_REQUIRED = "query is required"
    SEMANTIC_STORAGE_UNSUPPORTED = "semantic search only supports postgres driver"
    SEMANTIC_NOT_CONFIGURED = "semantic search is not configured: %s"
    SEMANTIC_QUERY_EMBEDDING_FAILED = "failed to generate query embedding: %s"
    SEMANTIC_CANDIDATES_FAILED = "failed to list semantic candidates: %s"
    SEMANTIC_EMBEDDINGS_FAILED = "failed to load semantic embeddings: %s"
    INVALID_PAGE_TOKEN = "invalid page token: %s"

    # Reindex
    SEMANTIC_REINDEX_STARTED = "Semantic reindex started"
    SEMANTIC_REINDEX_ALREADY_RUNNING = "semantic reindex is already running"
    SEMANTIC_REINDEX_STATE_RETRIEVED = "Semantic reindex state retrieved successfully"

    # Instance settings
    AI_SETTING_RETRIEVED_SUCCESS = "AI setting retrieved successfully"
    AI_SETTING_UPDATED_SUCCESS = "AI setting updated successfully"
    AI_SETTING_UPDATE_FAILED = "Failed to update AI setting"
    AI_SETTING_NEGATIVE_VALUE = "%s must be non-negative"

    # Auth
    NOT_AUTHENTICATED = "user not authenticated"
    PERMISSION_DENIED = "permission denied"
