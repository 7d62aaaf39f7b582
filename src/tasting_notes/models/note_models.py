"""
# Tasting Note Models

A note records a restaurant visit or a recipe. It is owned by exactly one principal
(`owner_id`, never changed after creation) and carries two independent timestamps:
`date` (when the tasting happened, entered by the user) and `created_at` (when the note
was written).

## Visibility

*   **private**: owner and explicit recipients only.
*   **friends**: as private, plus everyone when the owner's profile is public, or the
    owner's accepted followers when it is private.
*   **public**: everyone.

`shared_with` grants access regardless of the tier. It holds principal ids.

## Catalog References

A restaurant note may name the menu item it is about (`menu_item_id`, which must belong
to the restaurant in `location.name`); a recipe note may name its `recipe_creator_id`.
Both point into the catalog and are checked when the note is written.

## Counters

`likes` mirrors `len(liked_by)` and `comment_count` mirrors `len(comments)`; both are
written in the same update as the list they count.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tasting_notes.utils.datetime_utils import ensure_utc, utc_now


class NoteType(str, Enum):
    RESTAURANT = "restaurant"
    RECIPE = "recipe"


class NoteVisibility(str, Enum):
    PRIVATE = "private"
    FRIENDS = "friends"
    PUBLIC = "public"


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class Location(BaseModel):
    name: str
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class NoteComment(BaseModel):
    id: str
    author_id: str
    text: str
    created_at: datetime = Field(default_factory=utc_now)


class NoteDocument(BaseModel):
    """Stored note (`notes` collection)."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    owner_id: str
    type: NoteType
    title: str
    rating: int
    date: datetime
    location: Optional[Location] = None
    notes: str = ""
    photos: List[str] = Field(default_factory=list, description="Opaque object-storage URLs")
    tags: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    would_order_again: bool = False
    favorite: bool = False
    recipe_url: Optional[str] = None
    menu_item_id: Optional[str] = None
    recipe_creator_id: Optional[str] = None
    visibility: NoteVisibility = NoteVisibility.PRIVATE
    shared_with: List[str] = Field(default_factory=list)
    liked_by: List[str] = Field(default_factory=list)
    likes: int = 0
    comments: List[NoteComment] = Field(default_factory=list)
    comment_count: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("date", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class NoteCreate(BaseModel):
    """Payload for a new note. Business rules are checked by `NoteService`."""

    type: NoteType
    title: str
    rating: int
    date: datetime
    location: Optional[Location] = None
    notes: str = ""
    photos: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    would_order_again: bool = False
    favorite: bool = False
    recipe_url: Optional[str] = None
    menu_item_id: Optional[str] = None
    recipe_creator_id: Optional[str] = None
    visibility: NoteVisibility = NoteVisibility.PRIVATE
    shared_with: List[str] = Field(default_factory=list, description="Principal ids or emails")


class NoteUpdate(BaseModel):
    """Partial update; only fields that are set are written."""

    title: Optional[str] = None
    rating: Optional[int] = None
    date: Optional[datetime] = None
    location: Optional[Location] = None
    notes: Optional[str] = None
    photos: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    improvements: Optional[List[str]] = None
    would_order_again: Optional[bool] = None
    favorite: Optional[bool] = None
    recipe_url: Optional[str] = None
    menu_item_id: Optional[str] = None
    recipe_creator_id: Optional[str] = None
    visibility: Optional[NoteVisibility] = None
    shared_with: Optional[List[str]] = None


class SharingUpdate(BaseModel):
    recipients: List[str] = Field(default_factory=list, description="Principal ids or emails")


class CommentCreate(BaseModel):
    text: str = Field(..., max_length=2000)
