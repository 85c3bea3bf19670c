from notesearch.models.base_import import Base, Column, String, DateTime, datetime, timezone, Text


class InstanceSetting(Base):
    """Instance-wide settings stored as one JSON document per key."""
    __tablename__ = "instance_settings"

    name = Column(String(50), primary_key=True)
    value = Column(Text, nullable=False, default="{}")
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
