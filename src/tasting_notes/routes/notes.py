"""
# Note Routes

REST endpoints for tasting notes: creation and editing, the note feeds, sharing, likes,
comments and bookmarks.

## API Endpoints

### Feeds
- `GET /notes/mine` - The caller's own notes
- `GET /notes/shared` - Notes shared with the caller, public notes, friends notes
- `GET /notes/friends` - Notes by the principals the caller follows
- `GET /notes/bookmarks` - The caller's bookmarked notes
- `GET /notes/tags` - Tags available for filtering

Feed endpoints accept `page_size`, `cursor`, the filter parameters (`type`, `rating`,
`date_from`, `date_to`, `would_order_again`, `tags`, `q`, `owner_id`) and `sort` /
`direction`, and return `{items, next_cursor, partial}`.

### Notes
- `POST /notes` - Create
- `GET /notes/{id}` - Read (403 when hidden, 404 when missing)
- `PATCH /notes/{id}` - Update (owner only)
- `PUT /notes/{id}/sharing` - Replace the explicit recipients (owner only)
- `DELETE /notes/{id}` - Delete (owner only)

### Interactions
- `POST|DELETE /notes/{id}/like`
- `POST /notes/{id}/comments`, `DELETE /notes/{id}/comments/{comment_id}`
- `POST|DELETE /notes/{id}/bookmark`

## Usage Example

```python
page = client.get("/notes/shared", params={"tags": ["spicy"], "page_size": 20},
                  headers={"X-User-Id": "user_1"}).json()
next_page = client.get("/notes/shared", params={"tags": ["spicy"], "cursor": page["next_cursor"]},
                       headers={"X-User-Id": "user_1"}).json()
```

Domain errors are translated to HTTP responses by the handlers registered in `main.py`.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.feed_models import FeedPage, NoteFilters, NoteSort
from tasting_notes.models.note_models import CommentCreate, NoteComment, NoteCreate, NoteDocument, NoteUpdate, SharingUpdate
from tasting_notes.routes.dependencies import (
    PageParams,
    get_bookmark_service,
    get_current_user_id,
    get_note_feed_service,
    get_note_filters,
    get_note_service,
    get_note_sort,
)
from tasting_notes.services.bookmark_service import BookmarkService
from tasting_notes.services.note_feed_service import NoteFeedService
from tasting_notes.services.note_service import NoteService

logger = get_logger(prefix="[Note Routes]")

router = APIRouter(prefix="/notes", tags=["notes"])


# Feeds


@router.get("/mine", response_model=FeedPage[NoteDocument])
async def get_my_notes(
    page: PageParams = Depends(),
    filters: NoteFilters = Depends(get_note_filters),
    sort: NoteSort = Depends(get_note_sort),
    user_id: str = Depends(get_current_user_id),
    feed: NoteFeedService = Depends(get_note_feed_service),
):
    """
    List the caller's own notes.

    This is a primary read: if the store fails or times out the request fails with 503
    rather than returning a partial page.
    """
    return await feed.fetch_my_notes(user_id, filters, page.page_size, page.cursor, sort)


@router.get("/shared", response_model=FeedPage[NoteDocument])
async def get_shared_notes(
    page: PageParams = Depends(),
    filters: NoteFilters = Depends(get_note_filters),
    sort: NoteSort = Depends(get_note_sort),
    user_id: str = Depends(get_current_user_id),
    feed: NoteFeedService = Depends(get_note_feed_service),
):
    """
    List notes other principals made visible to the caller.

    Combines explicitly shared notes, public notes and friends-tier notes of followed
    principals into one deduplicated, sorted feed. `partial` is true when one of the
    sources could not be read in time.
    """
    return await feed.fetch_shared_with_me(user_id, filters, page.page_size, page.cursor, sort)


@router.get("/friends", response_model=FeedPage[NoteDocument])
async def get_friends_notes(
    page: PageParams = Depends(),
    filters: NoteFilters = Depends(get_note_filters),
    sort: NoteSort = Depends(get_note_sort),
    user_id: str = Depends(get_current_user_id),
    feed: NoteFeedService = Depends(get_note_feed_service),
):
    return await feed.fetch_friends_notes(user_id, filters, page.page_size, page.cursor, sort)


@router.get("/bookmarks", response_model=FeedPage[NoteDocument])
async def get_bookmarked_notes(
    page: PageParams = Depends(),
    user_id: str = Depends(get_current_user_id),
    bookmarks: BookmarkService = Depends(get_bookmark_service),
):
    return await bookmarks.get_bookmarked_notes(user_id, page.page_size, page.cursor)


@router.get("/tags", response_model=List[str])
async def get_available_tags(
    user_id: str = Depends(get_current_user_id),
    feed: NoteFeedService = Depends(get_note_feed_service),
):
    return await feed.get_available_tags(user_id)


# Notes


@router.post("", response_model=NoteDocument, status_code=status.HTTP_201_CREATED)
async def create_note(
    request: NoteCreate,
    user_id: str = Depends(get_current_user_id),
    notes: NoteService = Depends(get_note_service),
):
    """
    Create a note owned by the caller.

    `shared_with` may contain principal ids or email addresses; every recipient is
    notified once.

    Raises:
        HTTPException(422): If a business rule fails (blank title, rating outside 1-5,
            empty notes, restaurant without a name) or a recipient is unknown.
    """
    note = await notes.create_note(user_id, request)
    logger.info("Note %s created by %s", note.id, user_id)
    return note


@router.get("/{note_id}", response_model=NoteDocument)
async def get_note(
    note_id: str,
    user_id: str = Depends(get_current_user_id),
    feed: NoteFeedService = Depends(get_note_feed_service),
):
    return await feed.get_note(user_id, note_id)


@router.patch("/{note_id}", response_model=NoteDocument)
async def update_note(
    note_id: str,
    request: NoteUpdate,
    user_id: str = Depends(get_current_user_id),
    notes: NoteService = Depends(get_note_service),
):
    return await notes.update_note(user_id, note_id, request)


@router.put("/{note_id}/sharing", response_model=NoteDocument)
async def update_sharing(
    note_id: str,
    request: SharingUpdate,
    user_id: str = Depends(get_current_user_id),
    notes: NoteService = Depends(get_note_service),
):
    """
    Replace the explicit recipients of a note.

    Only recipients that were not already on the list are notified, so saving the same
    list twice notifies nobody the second time.
    """
    return await notes.update_sharing(user_id, note_id, request.recipients)


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    note_id: str,
    user_id: str = Depends(get_current_user_id),
    notes: NoteService = Depends(get_note_service),
):
    await notes.delete_note(user_id, note_id)


# Interactions


@router.post("/{note_id}/like", response_model=NoteDocument)
async def like_note(
    note_id: str,
    user_id: str = Depends(get_current_user_id),
    notes: NoteService = Depends(get_note_service),
):
    return await notes.like_note(user_id, note_id)


@router.delete("/{note_id}/like", response_model=NoteDocument)
async def unlike_note(
    note_id: str,
    user_id: str = Depends(get_current_user_id),
    notes: NoteService = Depends(get_note_service),
):
    return await notes.unlike_note(user_id, note_id)


@router.post("/{note_id}/comments", response_model=NoteComment, status_code=status.HTTP_201_CREATED)
async def add_comment(
    note_id: str,
    request: CommentCreate,
    user_id: str = Depends(get_current_user_id),
    notes: NoteService = Depends(get_note_service),
):
    return await notes.add_comment(user_id, note_id, request.text)


@router.delete("/{note_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    note_id: str,
    comment_id: str,
    user_id: str = Depends(get_current_user_id),
    notes: NoteService = Depends(get_note_service),
):
    await notes.delete_comment(user_id, note_id, comment_id)


@router.post("/{note_id}/bookmark", status_code=status.HTTP_201_CREATED)
async def add_bookmark(
    note_id: str,
    user_id: str = Depends(get_current_user_id),
    bookmarks: BookmarkService = Depends(get_bookmark_service),
):
    bookmark = await bookmarks.add_bookmark(user_id, note_id)
    return {"bookmarked": True, "note_id": bookmark.note_id}


@router.delete("/{note_id}/bookmark", status_code=status.HTTP_204_NO_CONTENT)
async def remove_bookmark(
    note_id: str,
    user_id: str = Depends(get_current_user_id),
    bookmarks: BookmarkService = Depends(get_bookmark_service),
):
    await bookmarks.remove_bookmark(user_id, note_id)
