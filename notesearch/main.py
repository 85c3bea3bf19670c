from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
import time
import logging

from notesearch.api.v1.router import api_router
from notesearch.config import settings
from notesearch.services.embedding_service import EmbeddingClientProvider, resolve_embedding_concurrency
from notesearch.services.instance_setting_service import get_instance_ai_setting
from notesearch.services.note_embedding_service import supports_semantic_storage
from notesearch.services.semantic_index_service import SemanticIndexService
from notesearch.services.semantic_reindex_service import SemanticReindexService, reset_stale_reindex_state

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="Notesearch API", version="1.0.0", docs_url="/docs")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router)


def init_database(engine) -> None:
    """Create the pgvector extension (PostgreSQL only) and all tables."""
    from notesearch.db.base import Base

    if engine.dialect.name == "postgresql":
        with engine.begin() as connection:
            connection.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
    Base.metadata.create_all(bind=engine)


@app.on_event("startup")
async def startup_event():
    """Create database tables on startup with retry logic, then wire semantic services"""
    from notesearch.db.session import engine, SessionLocal

    max_retries = 5
    retry_delay = 2

    for attempt in range(max_retries):
        try:
            init_database(engine)
            logging.info("Database tables created successfully")
            break
        except Exception as e:
            logging.warning("Database connection attempt %d failed: %s", attempt + 1, e)
            if attempt < max_retries - 1:
                time.sleep(retry_delay)
            else:
                logging.error("Failed to connect to database after all retries")
                raise

    provider = EmbeddingClientProvider(settings)

    db = SessionLocal()
    try:
        concurrency = resolve_embedding_concurrency(get_instance_ai_setting(db), settings)
        # No reindex can be running yet in this process
        reset_stale_reindex_state(db)
        if not supports_semantic_storage(db):
            logging.info("Semantic search disabled: %s driver has no vector storage", engine.dialect.name)
    finally:
        db.close()

    app.state.embedding_provider = provider
    app.state.semantic_indexer = SemanticIndexService(provider, SessionLocal, concurrency)
    app.state.semantic_reindexer = SemanticReindexService(provider, SessionLocal)


@app.on_event("shutdown")
async def shutdown_event():
    if hasattr(app.state, "semantic_indexer"):
        await app.state.semantic_indexer.shutdown()
