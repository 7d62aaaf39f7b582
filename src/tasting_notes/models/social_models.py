"""
# Social Models

Activity records, follow requests, notifications and bookmarks.

## Follow Request Lifecycle

```
pending ──accept──▶ accepted   (follow edge created in the same transaction)
   │
   └────reject──▶ rejected     (no edge)
```

A request leaves `pending` exactly once. At most one pending request exists per
(from_id, to_id) pair; a rejected requester may ask again.

## Activities

Activities are append-only. `actor_name` and `title` are snapshots taken at write time
and are only a fallback: feeds resolve names from the current principal record.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tasting_notes.models.user_models import UserSummary
from tasting_notes.utils.datetime_utils import utc_now


class ActivityType(str, Enum):
    CONTENT_CREATED = "content_created"
    CONTENT_UPDATED = "content_updated"
    STARTED_FOLLOWING = "started_following"


CONTENT_ACTIVITY_TYPES = (ActivityType.CONTENT_CREATED.value, ActivityType.CONTENT_UPDATED.value)


class ActivityComment(BaseModel):
    id: str
    author_id: str
    text: str
    created_at: datetime = Field(default_factory=utc_now)


class ActivityDocument(BaseModel):
    """Stored activity (`activities` collection)."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    type: ActivityType
    actor_id: str
    target_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    actor_name: Optional[str] = None
    title: Optional[str] = None
    liked_by: List[str] = Field(default_factory=list)
    likes: int = 0
    comments: List[ActivityComment] = Field(default_factory=list)


class ActivityView(BaseModel):
    """Activity enriched for a specific viewer."""

    id: str
    type: ActivityType
    actor: UserSummary
    target_id: str
    timestamp: datetime
    target_user: Optional[UserSummary] = None
    note_title: Optional[str] = None
    likes: int = 0
    liked_by_viewer: bool = False
    comments: List[ActivityComment] = Field(default_factory=list)


class FollowRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class FollowDecision(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class FollowRequestDocument(BaseModel):
    """Stored follow request (`follow_requests` collection)."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    from_id: str
    to_id: str
    status: FollowRequestStatus = FollowRequestStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    responded_at: Optional[datetime] = None


class FollowRequestView(BaseModel):
    id: str
    requester: UserSummary
    created_at: datetime


class FollowResult(BaseModel):
    status: str = Field(..., description="'following' or 'requested'")
    request_id: Optional[str] = None


class RespondToRequest(BaseModel):
    decision: FollowDecision


class NotificationType(str, Enum):
    FOLLOW = "follow"
    FOLLOW_REQUEST = "follow_request"
    FOLLOW_REQUEST_ACCEPTED = "follow_request_accepted"
    FOLLOW_REQUEST_REJECTED = "follow_request_rejected"
    NOTE_SHARED = "note_shared"
    NOTE_LIKED = "note_liked"
    NOTE_COMMENTED = "note_commented"


class NotificationDocument(BaseModel):
    """Stored notification (`notifications` collection)."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    type: NotificationType
    sender_id: str
    recipient_id: str
    sender_name: Optional[str] = None
    target_id: Optional[str] = None
    title: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)
    read: bool = False


class BookmarkDocument(BaseModel):
    id: str
    user_id: str
    note_id: str
    created_at: datetime = Field(default_factory=utc_now)
