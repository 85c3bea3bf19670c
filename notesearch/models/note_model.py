from notesearch.models.base_import import Base, Column, Integer, String, Boolean, DateTime, datetime, timezone, Text, ForeignKey, relationship


class Note(Base):
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Content
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=True)

    # Categorization
    category = Column(String(50), default="general")  # meeting, lecture, personal, etc.
    tags = Column(String(500), nullable=True)          # comma separated

    # Metadata
    visibility = Column(String(20), nullable=False, default="PRIVATE", index=True)  # PRIVATE, PROTECTED, PUBLIC
    is_favorite = Column(Boolean, default=False)
    is_archived = Column(Boolean, default=False, index=True)
    color = Column(String(7), default="#FFFFFF")       # Hex color for UI

    # Timestamps
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    user = relationship("User", back_populates="notes")
    embedding = relationship(
        "NoteEmbedding",
        back_populates="note",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
