from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from notesearch.common.common_message import CommonMessage
from notesearch.common.constants import Role
from notesearch.db.session import SessionLocal
from notesearch.models import User
from notesearch.services.auth_service import get_user_by_email, verify_token
from notesearch.services.embedding_service import EmbeddingClientProvider
from notesearch.services.semantic_index_service import SemanticIndexService
from notesearch.services.semantic_reindex_service import SemanticReindexService

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Resolve the bearer token to a user, or None for anonymous callers."""
    if credentials is None:
        return None
    email = verify_token(credentials.credentials)
    if email is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=CommonMessage.NOT_AUTHENTICATED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=CommonMessage.NOT_AUTHENTICATED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_current_active_user(current_user: Optional[User] = Depends(get_optional_user)) -> User:
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=CommonMessage.NOT_AUTHENTICATED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current_user


def get_current_admin_user(current_user: User = Depends(get_current_active_user)) -> User:
    if current_user.role != Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=CommonMessage.PERMISSION_DENIED)
    return current_user


def get_embedding_provider(request: Request) -> EmbeddingClientProvider:
    return request.app.state.embedding_provider


def get_semantic_indexer(request: Request) -> SemanticIndexService:
    return request.app.state.semantic_indexer


def get_semantic_reindexer(request: Request) -> SemanticReindexService:
    return request.app.state.semantic_reindexer
