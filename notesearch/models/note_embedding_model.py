from pgvector.sqlalchemy import Vector

from notesearch.models.base_import import Base, Column, Integer, String, DateTime, datetime, timezone, Text, ForeignKey, relationship


class NoteEmbedding(Base):
    """
    Vector embedding of a note's full content.

    One row per note, written only by the semantic indexing pipeline.
    The vector column carries no fixed dimension so rows produced by
    different embedding models can coexist; ``dimension`` always equals
    the stored vector length.
    """
    __tablename__ = "note_embeddings"

    note_id = Column(Integer, ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True)
    model = Column(String(200), nullable=False)
    dimension = Column(Integer, nullable=False)
    vector = Column(Vector(), nullable=False)
    content_hash = Column(Text, nullable=False)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    note = relationship("Note", back_populates="embedding")
