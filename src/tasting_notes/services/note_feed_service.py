"""
# Note Feed Service

Every read path that returns notes. Each one is a set of feed sources handed to
`feed_merge.collect_page()`, with an `accept` stage that applies the access predicate and
the filters the store cannot evaluate.

## Shared With Me (`fetch_shared_with_me`)

Concurrent sources, each narrowed by the store-expressible filters and excluding the
viewer's own notes:

| Source      | Store predicate                                                 |
|-------------|-----------------------------------------------------------------|
| `shared`    | `shared_with` contains the viewer                               |
| `public`    | `visibility == "public"`                                        |
| `friends-N` | `visibility == "friends"` and `owner_id in` a batch of followed |

Friends-tier notes only surface in this feed from principals the viewer follows; a
public-profile owner's friends note is still readable directly (`get_note`) by anyone.
The friends tier is queried once per fan-in batch of the viewer's `following` set.

Every note then goes through the access predicate. Owners are fetched once per chunk,
in fan-in sized batches; a note whose owner cannot be loaded is dropped. A source that
fails or times out (`FEED_SOURCE_TIMEOUT_SECONDS`) is skipped and the page is marked
`partial`.

## Other Paths

*   `fetch_my_notes`: the owner's notes. Any store failure or timeout is an error.
*   `fetch_user_notes`: one profile's notes as the viewer may see them.
*   `fetch_friends_notes`: notes by the principals the viewer follows, batched by the
    fan-in limit.
*   `get_note`: single-note read, `NotFoundError` / `PermissionDeniedError`.
*   `get_available_tags`: tags present in the viewer's notes and shared feed.
"""

from typing import Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from tasting_notes.config import settings
from tasting_notes.database import get_document_store
from tasting_notes.database.store import DocumentStore, Filter
from tasting_notes.exceptions import NotFoundError, UnavailableError, ValidationError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.feed_models import FeedPage, NoteFilters, NoteSort, SortDirection
from tasting_notes.models.note_models import NoteDocument, NoteVisibility
from tasting_notes.models.user_models import UserDocument
from tasting_notes.services import access_policy
from tasting_notes.services.feed_merge import (
    FeedSource,
    SortSpec,
    collect_page,
    decode_cursor,
    fail_on_source_error,
    fan_in_size,
    partition,
    skip_failed_source,
)
from tasting_notes.services.user_service import UserService

logger = get_logger(prefix="[NoteFeed]")

NOTES = "notes"
VISIBLE_TIERS = [NoteVisibility.PUBLIC.value, NoteVisibility.FRIENDS.value]


def sort_spec(sort: Optional[NoteSort]) -> SortSpec:
    sort = sort or NoteSort()
    return SortSpec(field=sort.field.value, descending=sort.direction == SortDirection.DESC)


def store_filters(filters: NoteFilters) -> List[Filter]:
    """The subset of `filters` the document store can evaluate."""
    where: List[Filter] = []
    if filters.type is not None:
        where.append(Filter("type", "==", filters.type.value))
    if filters.rating is not None:
        where.append(Filter("rating", "==", filters.rating))
    if filters.would_order_again is not None:
        where.append(Filter("would_order_again", "==", filters.would_order_again))
    if filters.owner_id is not None:
        where.append(Filter("owner_id", "==", filters.owner_id))
    if filters.date_from is not None:
        where.append(Filter("date", ">=", filters.date_from))
    if filters.date_to is not None:
        where.append(Filter("date", "<=", filters.date_to))
    return where


def matches_client_filters(note: NoteDocument, filters: NoteFilters) -> bool:
    """Tag membership (all requested tags) and case-insensitive substring search."""
    if filters.tags and not all(tag in note.tags for tag in filters.tags):
        return False
    if filters.search_term and filters.search_term.strip():
        term = filters.search_term.strip().lower()
        haystack = [note.title, note.notes, *note.tags]
        if note.location is not None:
            haystack.append(note.location.name)
        if not any(term in (text or "").lower() for text in haystack):
            return False
    return True


def validate_filters(filters: NoteFilters) -> None:
    if filters.rating is not None and not 1 <= filters.rating <= 5:
        raise ValidationError("rating filter must be between 1 and 5")
    if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
        raise ValidationError("date_from must not be after date_to")


def _parse_note(doc: Dict) -> Optional[NoteDocument]:
    try:
        return NoteDocument(**doc)
    except PydanticValidationError as e:
        logger.warning("Skipping malformed note %s: %s", doc.get("id"), e)
        return None


class NoteFeedService:
    def __init__(self, store: Optional[DocumentStore] = None, users: Optional[UserService] = None):
        self.store = store or get_document_store()
        self.users = users or UserService(self.store)

    # --- Shared helpers ---

    def _page_size(self, page_size: Optional[int]) -> int:
        page_size = page_size or settings.FEED_DEFAULT_PAGE_SIZE
        if page_size < 1 or page_size > settings.FEED_MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {settings.FEED_MAX_PAGE_SIZE}")
        return page_size

    def _source(self, name: str, where: List[Filter], sort: SortSpec, timeout: Optional[float]) -> FeedSource:
        async def fetch(position, limit):
            return await self.store.query(
                NOTES, where=where, order_by=sort.order_by(), limit=limit, start_after=position
            )

        return FeedSource(name, fetch, timeout)

    def _visible_to(self, viewer_id: str, filters: NoteFilters, known_owners: Optional[Dict[str, UserDocument]] = None):
        """Build the `accept` stage: parse, access predicate, client-side filters."""

        async def accept(docs: List[Dict]) -> List[Optional[NoteDocument]]:
            notes = [_parse_note(doc) for doc in docs]
            owners: Dict[str, UserDocument] = dict(known_owners or {})
            missing = {
                n.owner_id
                for n in notes
                if n is not None and access_policy.needs_owner(viewer_id, n) and n.owner_id not in owners
            }
            if missing:
                owners.update(await self.users.get_users(missing))

            accepted: List[Optional[NoteDocument]] = []
            for note in notes:
                if note is None:
                    accepted.append(None)
                elif not access_policy.can_view(viewer_id, note, owners.get(note.owner_id)):
                    accepted.append(None)
                elif not matches_client_filters(note, filters):
                    accepted.append(None)
                else:
                    accepted.append(note)
            return accepted

        return accept

    async def _collect(
        self,
        sources: List[FeedSource],
        sort: SortSpec,
        page_size: int,
        cursor: Optional[str],
        accept: Callable,
        on_source_error=skip_failed_source,
    ) -> FeedPage[NoteDocument]:
        page = await collect_page(
            sources,
            sort,
            page_size,
            cursor=decode_cursor(cursor, sort),
            accept=accept,
            on_source_error=on_source_error,
        )
        return FeedPage[NoteDocument](items=page.items, next_cursor=page.next_cursor, partial=page.partial)

    # --- Read paths ---

    async def fetch_shared_with_me(
        self,
        viewer_id: str,
        filters: Optional[NoteFilters] = None,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
        sort: Optional[NoteSort] = None,
    ) -> FeedPage[NoteDocument]:
        """
        Notes other principals made visible to `viewer_id`, newest first by default.

        Returns:
            FeedPage[NoteDocument]: `partial` is set when a source was skipped.
        """
        filters = filters or NoteFilters()
        validate_filters(filters)
        page_size = self._page_size(page_size)
        spec = sort_spec(sort)
        if filters.owner_id == viewer_id:
            return FeedPage[NoteDocument]()

        base = store_filters(filters) + [Filter("owner_id", "!=", viewer_id)]
        timeout = settings.FEED_SOURCE_TIMEOUT_SECONDS
        sources = [
            self._source("shared", base + [Filter("shared_with", "array_contains", viewer_id)], spec, timeout),
            self._source("public", base + [Filter("visibility", "==", NoteVisibility.PUBLIC.value)], spec, timeout),
        ]

        skipped_friends = False
        try:
            following = (await self.users.get_user(viewer_id)).following
        except UnavailableError as e:
            logger.warning("Viewer lookup for %s failed, skipping the friends tier: %s", viewer_id, e)
            following, skipped_friends = [], True
        if filters.owner_id is not None:
            following = [u for u in following if u == filters.owner_id]
        friends_tier = base + [Filter("visibility", "==", NoteVisibility.FRIENDS.value)]
        for index, batch in enumerate(partition(following, fan_in_size(self.store.max_in_values))):
            sources.append(
                self._source(f"friends-{index}", friends_tier + [Filter("owner_id", "in", batch)], spec, timeout)
            )

        page = await self._collect(sources, spec, page_size, cursor, self._visible_to(viewer_id, filters))
        if skipped_friends:
            page.partial = True
        logger.debug("Shared feed for %s: %d notes (partial=%s)", viewer_id, len(page.items), page.partial)
        return page

    async def fetch_my_notes(
        self,
        viewer_id: str,
        filters: Optional[NoteFilters] = None,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
        sort: Optional[NoteSort] = None,
    ) -> FeedPage[NoteDocument]:
        filters = (filters or NoteFilters()).model_copy(update={"owner_id": None})
        validate_filters(filters)
        page_size = self._page_size(page_size)
        spec = sort_spec(sort)

        where = store_filters(filters) + [Filter("owner_id", "==", viewer_id)]
        source = self._source("mine", where, spec, settings.STORE_TIMEOUT_SECONDS)
        return await self._collect(
            [source], spec, page_size, cursor, self._visible_to(viewer_id, filters), on_source_error=fail_on_source_error
        )

    async def fetch_user_notes(
        self,
        viewer_id: str,
        owner_id: str,
        filters: Optional[NoteFilters] = None,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
        sort: Optional[NoteSort] = None,
    ) -> FeedPage[NoteDocument]:
        if viewer_id == owner_id:
            return await self.fetch_my_notes(viewer_id, filters, page_size, cursor, sort)

        owner = await self.users.get_user(owner_id)
        filters = (filters or NoteFilters()).model_copy(update={"owner_id": None})
        validate_filters(filters)
        page_size = self._page_size(page_size)
        spec = sort_spec(sort)

        base = store_filters(filters) + [Filter("owner_id", "==", owner_id)]
        timeout = settings.FEED_SOURCE_TIMEOUT_SECONDS
        sources = [
            self._source("profile", base + [Filter("visibility", "in", VISIBLE_TIERS)], spec, timeout),
            self._source("shared", base + [Filter("shared_with", "array_contains", viewer_id)], spec, timeout),
        ]
        accept = self._visible_to(viewer_id, filters, known_owners={owner.id: owner})
        return await self._collect(sources, spec, page_size, cursor, accept)

    async def fetch_friends_notes(
        self,
        viewer_id: str,
        filters: Optional[NoteFilters] = None,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
        sort: Optional[NoteSort] = None,
    ) -> FeedPage[NoteDocument]:
        filters = filters or NoteFilters()
        validate_filters(filters)
        page_size = self._page_size(page_size)
        spec = sort_spec(sort)

        viewer = await self.users.get_user(viewer_id)
        following = viewer.following
        if filters.owner_id is not None:
            following = [u for u in following if u == filters.owner_id]
        batches = partition(following, fan_in_size(self.store.max_in_values))
        if not batches:
            return FeedPage[NoteDocument]()

        base = store_filters(filters.model_copy(update={"owner_id": None}))
        timeout = settings.FEED_SOURCE_TIMEOUT_SECONDS
        sources = [
            self._source(
                f"following-batch-{index}",
                base + [Filter("owner_id", "in", batch), Filter("visibility", "in", VISIBLE_TIERS)],
                spec,
                timeout,
            )
            for index, batch in enumerate(batches)
        ]
        return await self._collect(sources, spec, page_size, cursor, self._visible_to(viewer_id, filters))

    async def get_note(self, viewer_id: str, note_id: str) -> NoteDocument:
        """
        Read one note.

        Raises:
            NotFoundError: the note does not exist.
            PermissionDeniedError: the note exists but is hidden from the viewer.
        """
        doc = await self.store.get(NOTES, note_id)
        note = _parse_note(doc) if doc is not None else None
        if note is None:
            raise NotFoundError(f"Note {note_id} not found")
        owner = None
        if access_policy.needs_owner(viewer_id, note):
            owner = (await self.users.get_users([note.owner_id])).get(note.owner_id)
        access_policy.ensure_can_view(viewer_id, note, owner)
        return note

    async def get_available_tags(self, viewer_id: str) -> List[str]:
        """Sorted tags across the first page of the viewer's own notes and shared feed."""
        mine = await self.fetch_my_notes(viewer_id, page_size=settings.FEED_MAX_PAGE_SIZE)
        shared = await self.fetch_shared_with_me(viewer_id, page_size=settings.FEED_MAX_PAGE_SIZE)
        tags = {tag for note in [*mine.items, *shared.items] for tag in note.tags if tag}
        return sorted(tags, key=str.lower)
