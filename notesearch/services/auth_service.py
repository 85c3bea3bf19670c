import logging
from datetime import timedelta, datetime, timezone
from typing import Union, Any, Optional

from jose import jwt, JWTError
from sqlalchemy.orm import Session

from notesearch.config import settings
from notesearch.models import User

logger = logging.getLogger(__name__)


# Service functions for JWT token creation
def create_access_token(subject: Union[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is not None:
        expires_at = datetime.now(timezone.utc) + expires_delta
    else:
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {"exp": expires_at, "sub": str(subject)}
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, settings.ALGORITHM)
    return encoded_jwt


def verify_token(token: str, secret_key: Optional[str] = None) -> Optional[str]:
    """Return the token subject (user email), or None if the token is invalid or expired."""
    try:
        payload = jwt.decode(token, secret_key or settings.JWT_SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Token has expired")
        return None
    except JWTError as e:
        logger.info("JWT Error: %s", e)
        return None
    return payload.get("sub")


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()
