"""
# Note Service

Every mutation of a note: create, update, sharing, delete, likes and comments.

## Rules

*   Only the owner may change content, visibility or sharing, or delete a note.
*   Likes and comments by anyone else are gated by the access predicate; a viewer who
    cannot see the note gets `PermissionDeniedError`, never a silent no-op.
*   `likes` and `comment_count` are rewritten together with the list they count, inside
    one transaction.
*   Sharing diffs the new recipients against the stored ones and notifies only the newly
    added principals, so saving the same list again notifies nobody.
*   Recipients may be given as principal ids or emails; only ids are stored and the
    owner is never a recipient.
*   Catalog references are checked before a note is written. The restaurant of a
    restaurant note is registered in the catalog afterwards, and a referenced menu item
    has its use count bumped; a catalog failure at that point is logged, not raised.
"""

from typing import Dict, List, Optional, Tuple

from tasting_notes.database import get_document_store
from tasting_notes.database.store import DocumentStore, Filter, Transaction, new_id
from tasting_notes.exceptions import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.note_models import (
    NoteComment,
    NoteCreate,
    NoteDocument,
    NoteType,
    NoteUpdate,
)
from tasting_notes.models.social_models import ActivityType, NotificationType
from tasting_notes.services.activity_service import ActivityService
from tasting_notes.services.bookmark_service import BOOKMARKS
from tasting_notes.services.catalog_service import CatalogService, restaurant_id_for
from tasting_notes.services.note_feed_service import NOTES, NoteFeedService
from tasting_notes.services.notification_service import NotificationService
from tasting_notes.services.user_service import UserService
from tasting_notes.utils.datetime_utils import utc_now

logger = get_logger(prefix="[NoteService]")


def validate_note(note: NoteDocument) -> None:
    """Business rules for a note's content."""
    if not note.title or not note.title.strip():
        raise ValidationError("Title is required")
    if not 1 <= note.rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    if not note.notes or not note.notes.strip():
        raise ValidationError("Notes are required")
    if note.type == NoteType.RESTAURANT.value and (note.location is None or not note.location.name.strip()):
        raise ValidationError("Restaurant name is required")


class NoteService:
    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        users: Optional[UserService] = None,
        feed: Optional[NoteFeedService] = None,
        activities: Optional[ActivityService] = None,
        notifications: Optional[NotificationService] = None,
        catalog: Optional[CatalogService] = None,
    ):
        self.store = store or get_document_store()
        self.users = users or UserService(self.store)
        self.feed = feed or NoteFeedService(self.store, self.users)
        self.activities = activities or ActivityService(self.store, self.users)
        self.notifications = notifications or NotificationService(self.store, self.users)
        self.catalog = catalog or CatalogService(self.store)

    async def _get_owned(self, actor_id: str, note_id: str) -> NoteDocument:
        doc = await self.store.get(NOTES, note_id)
        if doc is None:
            raise NotFoundError(f"Note {note_id} not found")
        note = NoteDocument(**doc)
        if note.owner_id != actor_id:
            raise PermissionDeniedError("Only the owner can change this note")
        return note

    async def _record(self, actor_id: str, type: ActivityType, note: NoteDocument) -> None:
        try:
            await self.activities.record_activity(actor_id, type, note.id, title=note.title)
        except Exception as e:
            logger.error("Could not record %s activity for note %s: %s", type.value, note.id, e)

    async def _check_catalog_refs(self, note: NoteDocument) -> None:
        if note.menu_item_id:
            if note.type != NoteType.RESTAURANT.value:
                raise ValidationError("Only restaurant notes can reference a menu item")
            try:
                item = await self.catalog.get_menu_item(note.menu_item_id)
            except NotFoundError as e:
                raise ValidationError(f"Unknown menu item {note.menu_item_id}") from e
            if item.restaurant_id != restaurant_id_for(note.location.name):
                raise ValidationError(f"Menu item {item.id} is not served at {note.location.name}")
        if note.recipe_creator_id:
            if note.type != NoteType.RECIPE.value:
                raise ValidationError("Only recipe notes can reference a recipe creator")
            try:
                await self.catalog.get_recipe_creator(note.recipe_creator_id)
            except NotFoundError as e:
                raise ValidationError(f"Unknown recipe creator {note.recipe_creator_id}") from e

    async def _register_in_catalog(self, note: NoteDocument, count_menu_item: bool) -> None:
        try:
            if note.type == NoteType.RESTAURANT.value and note.location is not None:
                await self.catalog.add_restaurant(note.location.name, note.location.address)
            if count_menu_item and note.menu_item_id:
                await self.catalog.record_menu_item_use(note.menu_item_id)
        except Exception as e:
            logger.error("Could not update the catalog for note %s: %s", note.id, e)

    # --- Content ---

    async def create_note(self, owner_id: str, payload: NoteCreate) -> NoteDocument:
        await self.users.get_user(owner_id)
        data = payload.model_dump(exclude={"shared_with"})
        note = NoteDocument(id=new_id("note"), owner_id=owner_id, **data)
        note.title = note.title.strip()
        validate_note(note)
        await self._check_catalog_refs(note)
        note.shared_with = await self.users.resolve_recipients(payload.shared_with, exclude=owner_id)

        await self.store.put(NOTES, note.id, note.model_dump())
        logger.info("Created note %s for %s (visibility=%s)", note.id, owner_id, note.visibility)
        await self._register_in_catalog(note, count_menu_item=True)

        await self._record(owner_id, ActivityType.CONTENT_CREATED, note)
        await self.notifications.notify_many(
            NotificationType.NOTE_SHARED, owner_id, note.shared_with, target_id=note.id, title=note.title
        )
        return note

    async def update_note(self, actor_id: str, note_id: str, payload: NoteUpdate) -> NoteDocument:
        note = await self._get_owned(actor_id, note_id)
        changes = payload.model_dump(exclude_unset=True, exclude={"shared_with"})
        clearable = ("location", "recipe_url", "menu_item_id", "recipe_creator_id")
        changes = {k: v for k, v in changes.items() if v is not None or k in clearable}

        if changes:
            merged = NoteDocument(**{**note.model_dump(), **changes})
            merged.title = merged.title.strip()
            validate_note(merged)
            if {"location", "menu_item_id", "recipe_creator_id"} & changes.keys():
                await self._check_catalog_refs(merged)
            changes = {k: getattr(merged, k) for k in changes}
            changes = {k: v.model_dump() if hasattr(v, "model_dump") else v for k, v in changes.items()}
            changes["updated_at"] = utc_now()
            await self.store.update(NOTES, note_id, changes)
            logger.info("Updated note %s: %s", note_id, sorted(changes))
            if "location" in changes or "menu_item_id" in changes:
                await self._register_in_catalog(merged, count_menu_item=merged.menu_item_id != note.menu_item_id)

        if payload.shared_with is not None:
            note, _ = await self._apply_sharing(actor_id, note_id, payload.shared_with)
        else:
            note = await self._get_owned(actor_id, note_id)

        if changes or payload.shared_with is not None:
            await self._record(actor_id, ActivityType.CONTENT_UPDATED, note)
        return note

    async def update_sharing(self, actor_id: str, note_id: str, recipients: List[str]) -> NoteDocument:
        note, _ = await self._apply_sharing(actor_id, note_id, recipients)
        return note

    async def _apply_sharing(
        self, actor_id: str, note_id: str, recipients: List[str]
    ) -> Tuple[NoteDocument, List[str]]:
        await self._get_owned(actor_id, note_id)
        resolved = await self.users.resolve_recipients(recipients, exclude=actor_id)

        async def share(txn: Transaction) -> Tuple[Dict, List[str]]:
            current = await txn.get(NOTES, note_id)
            if current is None:
                raise NotFoundError(f"Note {note_id} not found")
            previous = set(current.get("shared_with", []))
            added = [r for r in resolved if r not in previous]
            if set(resolved) != previous:
                await txn.update(NOTES, note_id, {"shared_with": resolved, "updated_at": utc_now()})
            return {**current, "shared_with": resolved}, added

        doc, added = await self.store.run_transaction(share)
        note = NoteDocument(**doc)
        if added:
            logger.info("Note %s shared with %d new recipients", note_id, len(added))
            await self.notifications.notify_many(
                NotificationType.NOTE_SHARED, actor_id, added, target_id=note_id, title=note.title
            )
        return note, added

    async def delete_note(self, actor_id: str, note_id: str) -> None:
        await self._get_owned(actor_id, note_id)
        await self.store.delete(NOTES, note_id)
        bookmarks = await self.store.query(BOOKMARKS, where=[Filter("note_id", "==", note_id)])
        for bookmark in bookmarks:
            await self.store.delete(BOOKMARKS, bookmark["id"])
        logger.info("Deleted note %s and %d bookmarks", note_id, len(bookmarks))

    # --- Likes ---

    async def like_note(self, viewer_id: str, note_id: str) -> NoteDocument:
        note = await self.feed.get_note(viewer_id, note_id)

        async def like(txn: Transaction) -> Dict:
            current = await txn.get(NOTES, note_id)
            if current is None:
                raise NotFoundError(f"Note {note_id} not found")
            liked_by = current.get("liked_by", [])
            if viewer_id in liked_by:
                raise InvalidStateError("You already liked this note", code="already_liked")
            liked_by = liked_by + [viewer_id]
            await txn.update(NOTES, note_id, {"liked_by": liked_by, "likes": len(liked_by)})
            return {**current, "liked_by": liked_by, "likes": len(liked_by)}

        updated = NoteDocument(**await self.store.run_transaction(like))
        await self.notifications.notify_many(
            NotificationType.NOTE_LIKED, viewer_id, [note.owner_id], target_id=note_id, title=note.title
        )
        return updated

    async def unlike_note(self, viewer_id: str, note_id: str) -> NoteDocument:
        await self.feed.get_note(viewer_id, note_id)

        async def unlike(txn: Transaction) -> Dict:
            current = await txn.get(NOTES, note_id)
            if current is None:
                raise NotFoundError(f"Note {note_id} not found")
            liked_by = current.get("liked_by", [])
            if viewer_id not in liked_by:
                raise InvalidStateError("You have not liked this note", code="not_liked")
            liked_by = [u for u in liked_by if u != viewer_id]
            await txn.update(NOTES, note_id, {"liked_by": liked_by, "likes": len(liked_by)})
            return {**current, "liked_by": liked_by, "likes": len(liked_by)}

        return NoteDocument(**await self.store.run_transaction(unlike))

    # --- Comments ---

    async def add_comment(self, viewer_id: str, note_id: str, text: str) -> NoteComment:
        if not text or not text.strip():
            raise ValidationError("Comment text cannot be empty")
        note = await self.feed.get_note(viewer_id, note_id)
        comment = NoteComment(id=new_id("cmt"), author_id=viewer_id, text=text.strip())

        async def append(txn: Transaction) -> None:
            current = await txn.get(NOTES, note_id)
            if current is None:
                raise NotFoundError(f"Note {note_id} not found")
            comments = current.get("comments", []) + [comment.model_dump()]
            await txn.update(NOTES, note_id, {"comments": comments, "comment_count": len(comments)})

        await self.store.run_transaction(append)
        await self.notifications.notify_many(
            NotificationType.NOTE_COMMENTED, viewer_id, [note.owner_id], target_id=note_id, title=note.title
        )
        return comment

    async def delete_comment(self, actor_id: str, note_id: str, comment_id: str) -> None:
        """Remove a comment. Allowed for its author and for the note's owner."""
        doc = await self.store.get(NOTES, note_id)
        if doc is None:
            raise NotFoundError(f"Note {note_id} not found")
        note = NoteDocument(**doc)
        comment = next((c for c in note.comments if c.id == comment_id), None)
        if comment is None:
            raise NotFoundError(f"Comment {comment_id} not found")
        if actor_id not in (comment.author_id, note.owner_id):
            raise PermissionDeniedError("Only the author or the note's owner can delete this comment")

        async def remove(txn: Transaction) -> None:
            current = await txn.get(NOTES, note_id)
            if current is None:
                raise NotFoundError(f"Note {note_id} not found")
            comments = [c for c in current.get("comments", []) if c.get("id") != comment_id]
            await txn.update(NOTES, note_id, {"comments": comments, "comment_count": len(comments)})

        await self.store.run_transaction(remove)
        logger.info("Comment %s removed from note %s by %s", comment_id, note_id, actor_id)
