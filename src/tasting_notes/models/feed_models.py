"""
Feed request and response models.

`NoteFilters` is a closed set of optional predicates. The document store evaluates the
equality and range ones (`type`, `rating`, `would_order_again`, `owner_id`, the date
range); `tags` and `search_term` are applied after the merge.
"""

from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

from tasting_notes.models.note_models import NoteType
from tasting_notes.utils.datetime_utils import ensure_utc

ItemT = TypeVar("ItemT")


class SortField(str, Enum):
    DATE = "date"
    CREATED_AT = "created_at"
    RATING = "rating"
    TITLE = "title"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class NoteSort(BaseModel):
    field: SortField = SortField.DATE
    direction: SortDirection = SortDirection.DESC


class NoteFilters(BaseModel):
    type: Optional[NoteType] = None
    rating: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    would_order_again: Optional[bool] = None
    tags: List[str] = Field(default_factory=list, description="Every tag must be present")
    search_term: Optional[str] = Field(None, description="Case-insensitive substring")
    owner_id: Optional[str] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None


class FeedPage(BaseModel, Generic[ItemT]):
    items: List[ItemT] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(None, description="Opaque; null when the feed is exhausted")
    partial: bool = Field(False, description="True when a non-critical source was skipped")
