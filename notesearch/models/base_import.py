from datetime import datetime, timezone  # noqa: F401

from sqlalchemy import (  # noqa: F401
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship  # noqa: F401

from notesearch.db.session import Base  # noqa: F401
