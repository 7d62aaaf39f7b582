"""
Bookmarks: a principal's saved notes.

Bookmark ids are `"{user_id}_{note_id}"`, which makes adding idempotent. Listing re-checks
every note against the access predicate, so a note that was deleted or made private
since it was saved silently disappears from the list.
"""

from typing import Dict, List, Optional

from tasting_notes.config import settings
from tasting_notes.database import get_document_store
from tasting_notes.database.store import DocumentStore, Filter
from tasting_notes.exceptions import ValidationError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.feed_models import FeedPage
from tasting_notes.models.note_models import NoteDocument
from tasting_notes.models.social_models import BookmarkDocument
from tasting_notes.services import access_policy
from tasting_notes.services.feed_merge import (
    FeedSource,
    SortSpec,
    collect_page,
    decode_cursor,
    fail_on_source_error,
)
from tasting_notes.services.note_feed_service import NOTES, NoteFeedService
from tasting_notes.services.user_service import UserService

logger = get_logger(prefix="[Bookmarks]")

BOOKMARKS = "bookmarks"
BOOKMARK_SORT = SortSpec("created_at", descending=True)


def bookmark_id(user_id: str, note_id: str) -> str:
    return f"{user_id}_{note_id}"


class BookmarkService:
    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        users: Optional[UserService] = None,
        feed: Optional[NoteFeedService] = None,
    ):
        self.store = store or get_document_store()
        self.users = users or UserService(self.store)
        self.feed = feed or NoteFeedService(self.store, self.users)

    async def add_bookmark(self, user_id: str, note_id: str) -> BookmarkDocument:
        await self.feed.get_note(user_id, note_id)
        existing = await self.store.get(BOOKMARKS, bookmark_id(user_id, note_id))
        if existing is not None:
            return BookmarkDocument(**existing)
        bookmark = BookmarkDocument(id=bookmark_id(user_id, note_id), user_id=user_id, note_id=note_id)
        await self.store.put(BOOKMARKS, bookmark.id, bookmark.model_dump())
        logger.info("%s bookmarked note %s", user_id, note_id)
        return bookmark

    async def remove_bookmark(self, user_id: str, note_id: str) -> None:
        await self.store.delete(BOOKMARKS, bookmark_id(user_id, note_id))

    async def is_bookmarked(self, user_id: str, note_id: str) -> bool:
        return await self.store.get(BOOKMARKS, bookmark_id(user_id, note_id)) is not None

    async def get_bookmarked_notes(
        self,
        user_id: str,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> FeedPage[NoteDocument]:
        page_size = page_size or settings.FEED_DEFAULT_PAGE_SIZE
        if page_size < 1 or page_size > settings.FEED_MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {settings.FEED_MAX_PAGE_SIZE}")

        async def fetch(position, limit):
            return await self.store.query(
                BOOKMARKS,
                where=[Filter("user_id", "==", user_id)],
                order_by=BOOKMARK_SORT.order_by(),
                limit=limit,
                start_after=position,
            )

        async def accept(docs: List[Dict]) -> List[Optional[NoteDocument]]:
            found = await self.store.get_many(NOTES, [d["note_id"] for d in docs])
            notes = {note_id: NoteDocument(**doc) for note_id, doc in found.items()}
            owners = await self.users.get_users(
                n.owner_id for n in notes.values() if access_policy.needs_owner(user_id, n)
            )
            accepted: List[Optional[NoteDocument]] = []
            for doc in docs:
                note = notes.get(doc["note_id"])
                if note is None or not access_policy.can_view(user_id, note, owners.get(note.owner_id)):
                    accepted.append(None)
                else:
                    accepted.append(note)
            return accepted

        page = await collect_page(
            [FeedSource("bookmarks", fetch, settings.STORE_TIMEOUT_SECONDS)],
            BOOKMARK_SORT,
            page_size,
            cursor=decode_cursor(cursor, BOOKMARK_SORT),
            accept=accept,
            on_source_error=fail_on_source_error,
        )
        return FeedPage[NoteDocument](items=page.items, next_cursor=page.next_cursor)
