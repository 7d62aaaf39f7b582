"""
# Route Dependencies

FastAPI dependencies shared by every router.

## Caller Identity

Authentication happens upstream (gateway or auth proxy). The trusted principal id of the
caller arrives in the `X-User-Id` header and is injected with `get_current_user_id`:

```python
@router.get("/notes/mine")
async def my_notes(user_id: str = Depends(get_current_user_id)):
    ...
```

A missing or blank header is a 401.

## Services

Service providers build each service over the process-wide document store, so tests can
swap the store with `set_document_store()` or override a provider through
`app.dependency_overrides`.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import Header, HTTPException, Query, status

from tasting_notes.database import get_document_store
from tasting_notes.models.feed_models import NoteFilters, NoteSort, SortDirection, SortField
from tasting_notes.models.note_models import NoteType
from tasting_notes.services.activity_service import ActivityService
from tasting_notes.services.bookmark_service import BookmarkService
from tasting_notes.services.catalog_service import CatalogService
from tasting_notes.services.follow_service import FollowService
from tasting_notes.services.note_feed_service import NoteFeedService
from tasting_notes.services.note_service import NoteService
from tasting_notes.services.notification_service import NotificationService
from tasting_notes.services.user_service import UserService


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_user_service() -> UserService:
    return UserService(get_document_store())


def get_note_feed_service() -> NoteFeedService:
    return NoteFeedService(get_document_store())


def get_note_service() -> NoteService:
    return NoteService(get_document_store())


def get_follow_service() -> FollowService:
    return FollowService(get_document_store())


def get_activity_service() -> ActivityService:
    return ActivityService(get_document_store())


def get_notification_service() -> NotificationService:
    return NotificationService(get_document_store())


def get_bookmark_service() -> BookmarkService:
    return BookmarkService(get_document_store())


def get_catalog_service() -> CatalogService:
    return CatalogService(get_document_store())


# --- Feed query parameters ---


class PageParams:
    def __init__(
        self,
        page_size: Optional[int] = Query(None, ge=1, description="Items per page"),
        cursor: Optional[str] = Query(None, description="next_cursor of the previous page"),
    ):
        self.page_size = page_size
        self.cursor = cursor


def get_note_filters(
    type: Optional[NoteType] = Query(None),
    rating: Optional[int] = Query(None, ge=1, le=5),
    date_from: Optional[datetime] = Query(None, description="ISO-8601 timestamp"),
    date_to: Optional[datetime] = Query(None, description="ISO-8601 timestamp"),
    would_order_again: Optional[bool] = Query(None),
    tags: List[str] = Query([]),
    search: Optional[str] = Query(None, alias="q"),
    owner_id: Optional[str] = Query(None),
) -> NoteFilters:
    return NoteFilters(
        type=type,
        rating=rating,
        date_from=date_from,
        date_to=date_to,
        would_order_again=would_order_again,
        tags=tags,
        search_term=search,
        owner_id=owner_id,
    )


def get_note_sort(
    sort: SortField = Query(SortField.DATE),
    direction: SortDirection = Query(SortDirection.DESC),
) -> NoteSort:
    return NoteSort(field=sort, direction=direction)


__all__ = [
    "PageParams",
    "get_activity_service",
    "get_bookmark_service",
    "get_catalog_service",
    "get_current_user_id",
    "get_follow_service",
    "get_note_feed_service",
    "get_note_filters",
    "get_note_service",
    "get_note_sort",
    "get_notification_service",
    "get_user_service",
]
