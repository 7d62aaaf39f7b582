"""
# Data Models Package

Pydantic models for the documents stored by the Tasting Notes API and for the request
and response payloads of its routes.

- **`user_models`**: principals, profile settings, public user cards.
- **`note_models`**: tasting notes, comments, create/update payloads.
- **`social_models`**: activities, follow requests, notifications, bookmarks.
- **`feed_models`**: feed filters, sort options and the paginated `FeedPage`.

Document models use `use_enum_values=True` so enum fields are stored as plain strings.
"""

from .feed_models import FeedPage, NoteFilters, NoteSort, SortDirection, SortField
from .note_models import (
    CommentCreate,
    NoteComment,
    NoteCreate,
    NoteDocument,
    NoteType,
    NoteUpdate,
    NoteVisibility,
    SharingUpdate,
)
from .social_models import (
    ActivityDocument,
    ActivityType,
    ActivityView,
    BookmarkDocument,
    FollowDecision,
    FollowRequestDocument,
    FollowRequestStatus,
    FollowRequestView,
    FollowResult,
    NotificationDocument,
    NotificationType,
)
from .user_models import CreateUserRequest, UpdateProfileRequest, UserDocument, UserSettings, UserSummary

__all__ = [
    "ActivityDocument",
    "ActivityType",
    "ActivityView",
    "BookmarkDocument",
    "CommentCreate",
    "CreateUserRequest",
    "FeedPage",
    "FollowDecision",
    "FollowRequestDocument",
    "FollowRequestStatus",
    "FollowRequestView",
    "FollowResult",
    "NoteComment",
    "NoteCreate",
    "NoteDocument",
    "NoteFilters",
    "NoteSort",
    "NoteType",
    "NoteUpdate",
    "NoteVisibility",
    "NotificationDocument",
    "NotificationType",
    "SharingUpdate",
    "SortDirection",
    "SortField",
    "UpdateProfileRequest",
    "UserDocument",
    "UserSettings",
    "UserSummary",
]
