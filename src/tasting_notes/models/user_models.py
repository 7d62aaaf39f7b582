"""
# Principal Models

A principal is a user identity in the social graph. Edges are stored on both ends:
`following` on the actor and `followers` on the target, always written together in a
single transaction. `family_members` is symmetric.

`settings.is_private` gates two things: friends-tier notes are visible only to accepted
followers, and follow attempts become follow requests that the owner must accept.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tasting_notes.utils.datetime_utils import utc_now

DIETARY_PREFERENCES_OPTIONS = [
    "Vegetarian",
    "Vegan",
    "Pescatarian",
    "Gluten-Free",
    "Dairy-Free",
    "Kosher",
    "Halal",
    "Keto",
    "Paleo",
    "Low-Carb",
    "Low-Fat",
    "Low-Sodium",
]


class UserSettings(BaseModel):
    is_private: bool = Field(False, description="Friends-tier content and follows need approval")
    email_notifications: bool = True
    language: str = "en"


class UserDocument(BaseModel):
    """Stored principal record (`users` collection)."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(..., description="Principal id supplied by the auth provider")
    username: str = Field(..., description="Display name")
    email: Optional[str] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    dietary_preferences: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    settings: UserSettings = Field(default_factory=UserSettings)
    following: List[str] = Field(default_factory=list)
    followers: List[str] = Field(default_factory=list)
    family_members: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_private(self) -> bool:
        return self.settings.is_private


class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=60)
    email: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=500)
    photo_url: Optional[str] = None
    is_private: bool = False


class UpdateProfileRequest(BaseModel):
    username: Optional[str] = Field(None, min_length=1, max_length=60)
    bio: Optional[str] = Field(None, max_length=500)
    photo_url: Optional[str] = None
    dietary_preferences: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    settings: Optional[UserSettings] = None


class UserSummary(BaseModel):
    """Public card for a principal, built from the current record at read time."""

    id: str
    username: str
    photo_url: Optional[str] = None
    is_private: bool = False

    @classmethod
    def from_document(cls, user: UserDocument) -> "UserSummary":
        return cls(id=user.id, username=user.username, photo_url=user.photo_url, is_private=user.is_private)
