"""
# Activity Service

Writes activity records and reads the activity feed of the principals a viewer follows.

## Fanout Read

1.  The viewer's `following` set is split into batches no larger than the fan-in limit
    (`FEED_MAX_BATCH_SIZE`, capped by the store).
2.  Each batch is one feed source (`actor_id in batch`, newest first, at most
    `ACTIVITIES_PER_BATCH` per round). All batches run concurrently.
3.  Every merged chunk is enriched with bounded concurrency:
    *   the actor's current display name (write-time snapshots are ignored);
    *   for `started_following`, the target principal's current name;
    *   for content activities, the note itself, checked with the access predicate for
        the viewer. Denied, deleted or unresolvable targets drop the activity.
4.  A `PermissionDeniedError` from any batch aborts the read. Other batch failures are
    logged and skipped and the page is marked partial.

## Activity Interactions

Likes and comments on an activity are independent of the note's own. The viewer must be
able to see the activity: it must come from the viewer or someone they follow, and a
content activity's note must pass the access predicate.
"""

import asyncio
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from tasting_notes.config import settings
from tasting_notes.database import get_document_store
from tasting_notes.database.store import ArrayUnion, DocumentStore, Filter, Transaction, new_id
from tasting_notes.exceptions import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.feed_models import FeedPage
from tasting_notes.models.note_models import NoteDocument
from tasting_notes.models.social_models import (
    CONTENT_ACTIVITY_TYPES,
    ActivityComment,
    ActivityDocument,
    ActivityType,
    ActivityView,
)
from tasting_notes.models.user_models import UserDocument, UserSummary
from tasting_notes.services import access_policy
from tasting_notes.services.feed_merge import (
    FeedSource,
    SortSpec,
    collect_page,
    decode_cursor,
    fan_in_size,
    partition,
    skip_failed_source,
)
from tasting_notes.services.user_service import UserService
from tasting_notes.utils.datetime_utils import utc_now

logger = get_logger(prefix="[ActivityFeed]")

ACTIVITIES = "activities"
NOTES = "notes"
ACTIVITY_SORT = SortSpec("timestamp", descending=True)


def _parse_notes(docs: Dict[str, Dict]) -> Dict[str, NoteDocument]:
    notes: Dict[str, NoteDocument] = {}
    for note_id, doc in docs.items():
        try:
            notes[note_id] = NoteDocument(**doc)
        except PydanticValidationError as e:
            logger.warning("Ignoring malformed note %s: %s", note_id, e)
    return notes


class ActivityService:
    def __init__(self, store: Optional[DocumentStore] = None, users: Optional[UserService] = None):
        self.store = store or get_document_store()
        self.users = users or UserService(self.store)

    async def record_activity(
        self,
        actor_id: str,
        type: ActivityType,
        target_id: str,
        title: Optional[str] = None,
    ) -> ActivityDocument:
        actor_name = None
        try:
            actor_name = (await self.users.get_user(actor_id)).username
        except NotFoundError:
            logger.debug("Recording activity for unknown actor %s", actor_id)

        activity = ActivityDocument(
            id=new_id("act"),
            type=type,
            actor_id=actor_id,
            target_id=target_id,
            actor_name=actor_name,
            title=title,
        )
        await self.store.insert(ACTIVITIES, activity.model_dump())
        logger.debug("Recorded %s by %s on %s", activity.type, actor_id, target_id)
        return activity

    # --- Feed ---

    async def fetch_activity_feed(
        self,
        viewer_id: str,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> FeedPage[ActivityView]:
        page_size = page_size or settings.FEED_DEFAULT_PAGE_SIZE
        if page_size < 1 or page_size > settings.FEED_MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {settings.FEED_MAX_PAGE_SIZE}")
        position = decode_cursor(cursor, ACTIVITY_SORT)

        viewer = await self.users.get_user(viewer_id)
        batches = partition(viewer.following, fan_in_size(self.store.max_in_values))
        if not batches:
            return FeedPage[ActivityView]()

        sources = [
            FeedSource(f"following-batch-{index}", self._batch_fetcher(batch), settings.FEED_SOURCE_TIMEOUT_SECONDS)
            for index, batch in enumerate(batches)
        ]

        async def accept(docs: List[Dict]) -> List[Optional[ActivityView]]:
            return await self._enrich(viewer_id, docs)

        page = await collect_page(
            sources,
            ACTIVITY_SORT,
            page_size,
            cursor=position,
            accept=accept,
            fetch_limit=settings.ACTIVITIES_PER_BATCH,
            on_source_error=skip_failed_source,
        )
        logger.debug(
            "Activity page for %s: %d items from %d batches (partial=%s)",
            viewer_id,
            len(page.items),
            len(batches),
            page.partial,
        )
        return FeedPage[ActivityView](items=page.items, next_cursor=page.next_cursor, partial=page.partial)

    def _batch_fetcher(self, batch: List[str]):
        async def fetch(position, limit):
            return await self.store.query(
                ACTIVITIES,
                where=[Filter("actor_id", "in", batch)],
                order_by=ACTIVITY_SORT.order_by(),
                limit=limit,
                start_after=position,
            )

        return fetch

    async def _load_notes(self, note_ids: List[str]) -> Dict[str, NoteDocument]:
        try:
            return _parse_notes(await self.store.get_many(NOTES, note_ids))
        except Exception as e:
            logger.warning("Note lookup for %d activities failed: %s", len(note_ids), e)
            return {}

    async def _enrich(self, viewer_id: str, docs: List[Dict]) -> List[Optional[ActivityView]]:
        activities: List[Optional[ActivityDocument]] = []
        for doc in docs:
            try:
                activities.append(ActivityDocument(**doc))
            except PydanticValidationError as e:
                logger.warning("Skipping malformed activity %s: %s", doc.get("id"), e)
                activities.append(None)

        present = [a for a in activities if a is not None]
        user_ids = {a.actor_id for a in present}
        user_ids.update(a.target_id for a in present if a.type == ActivityType.STARTED_FOLLOWING.value)
        note_ids = [a.target_id for a in present if a.type in CONTENT_ACTIVITY_TYPES]

        users, notes = await asyncio.gather(self.users.get_users(user_ids), self._load_notes(note_ids))
        owners_needed = {
            n.owner_id for n in notes.values() if access_policy.needs_owner(viewer_id, n) and n.owner_id not in users
        }
        if owners_needed:
            users.update(await self.users.get_users(owners_needed))

        views: List[Optional[ActivityView]] = []
        for activity in activities:
            view = self._build_view(viewer_id, activity, users, notes) if activity else None
            views.append(view)
        return views

    def _build_view(
        self,
        viewer_id: str,
        activity: ActivityDocument,
        users: Dict[str, UserDocument],
        notes: Dict[str, NoteDocument],
    ) -> Optional[ActivityView]:
        actor = users.get(activity.actor_id)
        if actor is None:
            logger.debug("Dropping activity %s: actor %s missing", activity.id, activity.actor_id)
            return None

        view = ActivityView(
            id=activity.id,
            type=activity.type,
            actor=UserSummary.from_document(actor),
            target_id=activity.target_id,
            timestamp=activity.timestamp,
            likes=len(activity.liked_by),
            liked_by_viewer=viewer_id in activity.liked_by,
            comments=activity.comments,
        )

        if activity.type == ActivityType.STARTED_FOLLOWING.value:
            target = users.get(activity.target_id)
            if target is None:
                logger.debug("Dropping activity %s: followed user missing", activity.id)
                return None
            view.target_user = UserSummary.from_document(target)
        elif activity.type in CONTENT_ACTIVITY_TYPES:
            note = notes.get(activity.target_id)
            if note is None:
                logger.debug("Dropping activity %s: note deleted", activity.id)
                return None
            if not access_policy.can_view(viewer_id, note, users.get(note.owner_id)):
                logger.debug("Dropping activity %s: note hidden from %s", activity.id, viewer_id)
                return None
            view.note_title = note.title
        return view

    # --- Interactions ---

    async def _get_visible_activity(self, viewer_id: str, activity_id: str) -> ActivityDocument:
        doc = await self.store.get(ACTIVITIES, activity_id)
        if doc is None:
            raise NotFoundError(f"Activity {activity_id} not found")
        activity = ActivityDocument(**doc)

        if activity.actor_id != viewer_id:
            viewer = await self.users.get_user(viewer_id)
            if activity.actor_id not in viewer.following:
                raise PermissionDeniedError("You can only interact with activity from people you follow")

        if activity.type in CONTENT_ACTIVITY_TYPES:
            note_doc = await self.store.get(NOTES, activity.target_id)
            if note_doc is None:
                raise NotFoundError(f"Note {activity.target_id} no longer exists")
            note = NoteDocument(**note_doc)
            owner = None
            if access_policy.needs_owner(viewer_id, note):
                owner = (await self.users.get_users([note.owner_id])).get(note.owner_id)
            access_policy.ensure_can_view(viewer_id, note, owner)
        return activity

    async def like_activity(self, viewer_id: str, activity_id: str) -> ActivityDocument:
        await self._get_visible_activity(viewer_id, activity_id)

        async def apply(txn: Transaction) -> Dict:
            current = await txn.get(ACTIVITIES, activity_id)
            if current is None:
                raise NotFoundError(f"Activity {activity_id} not found")
            if viewer_id in current.get("liked_by", []):
                raise InvalidStateError("You already liked this activity", code="already_liked")
            liked_by = current.get("liked_by", []) + [viewer_id]
            await txn.update(ACTIVITIES, activity_id, {"liked_by": liked_by, "likes": len(liked_by)})
            return {**current, "liked_by": liked_by, "likes": len(liked_by)}

        return ActivityDocument(**await self.store.run_transaction(apply))

    async def unlike_activity(self, viewer_id: str, activity_id: str) -> ActivityDocument:
        await self._get_visible_activity(viewer_id, activity_id)

        async def apply(txn: Transaction) -> Dict:
            current = await txn.get(ACTIVITIES, activity_id)
            if current is None:
                raise NotFoundError(f"Activity {activity_id} not found")
            if viewer_id not in current.get("liked_by", []):
                raise InvalidStateError("You have not liked this activity", code="not_liked")
            liked_by = [u for u in current.get("liked_by", []) if u != viewer_id]
            await txn.update(ACTIVITIES, activity_id, {"liked_by": liked_by, "likes": len(liked_by)})
            return {**current, "liked_by": liked_by, "likes": len(liked_by)}

        return ActivityDocument(**await self.store.run_transaction(apply))

    async def comment_on_activity(self, viewer_id: str, activity_id: str, text: str) -> ActivityComment:
        if not text or not text.strip():
            raise ValidationError("Comment text cannot be empty")
        await self._get_visible_activity(viewer_id, activity_id)

        comment = ActivityComment(id=new_id("cmt"), author_id=viewer_id, text=text.strip(), created_at=utc_now())
        await self.store.update(ACTIVITIES, activity_id, {"comments": ArrayUnion(comment.model_dump())})
        logger.info("%s commented on activity %s", viewer_id, activity_id)
        return comment
