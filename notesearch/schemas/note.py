from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime

from notesearch.common.constants import Visibility
from notesearch.schemas.pagination import PageOptionsDto


class NoteBase(BaseModel):
    title: str
    content: Optional[str] = None
    category: Optional[str] = "general"
    tags: Optional[str] = None
    visibility: Optional[str] = Visibility.PRIVATE
    is_favorite: Optional[bool] = False
    color: Optional[str] = "#FFFFFF"

    @field_validator("visibility")
    @classmethod
    def check_visibility(cls, v):
        if v is not None and v not in Visibility.ALL:
            raise ValueError(f"visibility must be one of {', '.join(Visibility.ALL)}")
        return v


class NoteCreate(NoteBase):
    pass


class NoteUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[str] = None
    visibility: Optional[str] = None
    is_favorite: Optional[bool] = None
    is_archived: Optional[bool] = None
    color: Optional[str] = None

    @field_validator("visibility")
    @classmethod
    def check_visibility(cls, v):
        if v is not None and v not in Visibility.ALL:
            raise ValueError(f"visibility must be one of {', '.join(Visibility.ALL)}")
        return v


class Note(NoteBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    is_archived: bool
    created_at: datetime
    updated_at: datetime


class NoteSearchFilter(BaseModel):
    """Structured note filters shared by listing and semantic search."""

    category: Optional[str] = Field(default=None, description="Filter by category")
    tags: Optional[str] = Field(default=None, description="Filter by tags (substring match)")
    creator_id: Optional[int] = Field(default=None, description="Filter by note owner")
    is_favorite: Optional[bool] = Field(default=None, description="Filter favorite notes")
    from_date: Optional[datetime] = Field(default=None, description="Filter notes created after this date")
    to_date: Optional[datetime] = Field(default=None, description="Filter notes created before this date")


class NoteSearchDto(PageOptionsDto, NoteSearchFilter):
    """
    Notes search/filter request payload.
    Extends base pagination with note-specific filters.
    """

    is_archived: Optional[bool] = Field(default=None, description="Filter archived notes")


class SemanticSearchRequest(BaseModel):
    """Natural-language note search ranked by embedding similarity."""

    query: str = Field(..., description="Free-text query")
    filter: Optional[NoteSearchFilter] = Field(default=None, description="Additional structured filter")
    archived: bool = Field(default=False, description="Search archived notes instead of live ones")
    page_size: int = Field(default=0, ge=0, description="Page size; 0 uses the default")
    page_token: str = Field(default="", description="Opaque token from a previous response")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "query": "notes about quarterly planning",
                "filter": {"category": "meeting"},
                "page_size": 10,
                "page_token": "",
            }
        }
    )


class SemanticSearchResponse(BaseModel):
    notes: List[Note]
    next_page_token: str = ""
