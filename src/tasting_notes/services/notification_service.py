"""
# Notification Service

Writes notifications on behalf of the mutations that cause them, and serves each
principal's inbox.

## Fanout Rules

*   A principal is never notified about their own action (`sender_id == recipient_id`).
*   One document per qualifying (event, recipient) pair.
*   `notify_many()` delivers to each recipient independently: a failure for one recipient
    is logged and does not block the others. Mutating services always go through it so a
    notification problem never fails a mutation that has already been applied.

## Inbox

Notifications are listed newest first with the shared cursor format. Sender names are
resolved from the current principal record when the inbox is read; the stored
`sender_name` is only used when the sender no longer exists.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from tasting_notes.config import settings
from tasting_notes.database import get_document_store
from tasting_notes.database.store import DocumentStore, Filter, new_id
from tasting_notes.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.feed_models import FeedPage
from tasting_notes.models.social_models import NotificationDocument, NotificationType
from tasting_notes.services.feed_merge import (
    FeedSource,
    SortSpec,
    collect_page,
    decode_cursor,
    fail_on_source_error,
)
from tasting_notes.services.user_service import UserService

logger = get_logger(prefix="[Notifications]")

NOTIFICATIONS = "notifications"
INBOX_SORT = SortSpec("timestamp", descending=True)


class NotificationService:
    def __init__(self, store: Optional[DocumentStore] = None, users: Optional[UserService] = None):
        self.store = store or get_document_store()
        self.users = users or UserService(self.store)

    async def notify(
        self,
        type: NotificationType,
        sender_id: str,
        recipient_id: str,
        target_id: Optional[str] = None,
        title: Optional[str] = None,
        sender_name: Optional[str] = None,
    ) -> Optional[NotificationDocument]:
        """Create one notification. Returns None when the recipient is the sender."""
        if sender_id == recipient_id:
            return None
        notification = NotificationDocument(
            id=new_id("ntf"),
            type=type,
            sender_id=sender_id,
            recipient_id=recipient_id,
            sender_name=sender_name,
            target_id=target_id,
            title=title,
        )
        await self.store.insert(NOTIFICATIONS, notification.model_dump())
        logger.debug("Notified %s of %s from %s", recipient_id, notification.type, sender_id)
        return notification

    async def notify_many(
        self,
        type: NotificationType,
        sender_id: str,
        recipient_ids: Iterable[str],
        target_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> List[NotificationDocument]:
        recipients = [r for r in dict.fromkeys(recipient_ids) if r and r != sender_id]
        if not recipients:
            return []

        sender_name = None
        try:
            sender = await self.users.get_user(sender_id)
            sender_name = sender.username
        except Exception as e:
            logger.debug("No sender snapshot for %s: %s", sender_id, e)

        results = await asyncio.gather(
            *(self.notify(type, sender_id, r, target_id, title, sender_name) for r in recipients),
            return_exceptions=True,
        )
        created: List[NotificationDocument] = []
        for recipient_id, outcome in zip(recipients, results):
            if isinstance(outcome, Exception):
                logger.error("Failed to notify %s of %s: %s", recipient_id, type, outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome is not None:
                created.append(outcome)
        return created

    # --- Inbox ---

    async def get_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> FeedPage[NotificationDocument]:
        page_size = page_size or settings.NOTIFICATIONS_PAGE_SIZE
        if page_size > settings.FEED_MAX_PAGE_SIZE:
            raise ValidationError(f"page_size cannot exceed {settings.FEED_MAX_PAGE_SIZE}")
        where = [Filter("recipient_id", "==", user_id)]
        if unread_only:
            where.append(Filter("read", "==", False))

        async def fetch(position, limit):
            return await self.store.query(
                NOTIFICATIONS, where=where, order_by=INBOX_SORT.order_by(), limit=limit, start_after=position
            )

        async def accept(docs: List[Dict]) -> List[Optional[NotificationDocument]]:
            parsed = []
            for doc in docs:
                try:
                    parsed.append(NotificationDocument(**doc))
                except PydanticValidationError as e:
                    logger.warning("Skipping malformed notification %s: %s", doc.get("id"), e)
                    parsed.append(None)
            senders = await self.users.get_users(n.sender_id for n in parsed if n is not None)
            for notification in parsed:
                if notification is not None and notification.sender_id in senders:
                    notification.sender_name = senders[notification.sender_id].username
            return parsed

        page = await collect_page(
            [FeedSource("inbox", fetch, timeout=settings.STORE_TIMEOUT_SECONDS)],
            INBOX_SORT,
            page_size,
            cursor=decode_cursor(cursor, INBOX_SORT),
            accept=accept,
            on_source_error=fail_on_source_error,
        )
        return FeedPage[NotificationDocument](items=page.items, next_cursor=page.next_cursor)

    async def get_unread_count(self, user_id: str) -> int:
        unread = await self.store.query(
            NOTIFICATIONS, where=[Filter("recipient_id", "==", user_id), Filter("read", "==", False)]
        )
        return len(unread)

    async def _get_own(self, user_id: str, notification_id: str) -> NotificationDocument:
        doc = await self.store.get(NOTIFICATIONS, notification_id)
        if doc is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        notification = NotificationDocument(**doc)
        if notification.recipient_id != user_id:
            raise PermissionDeniedError("This notification belongs to another user")
        return notification

    async def mark_as_read(self, user_id: str, notification_id: str) -> NotificationDocument:
        notification = await self._get_own(user_id, notification_id)
        if not notification.read:
            await self.store.update(NOTIFICATIONS, notification_id, {"read": True})
            notification.read = True
        return notification

    async def mark_all_as_read(self, user_id: str) -> int:
        unread = await self.store.query(
            NOTIFICATIONS, where=[Filter("recipient_id", "==", user_id), Filter("read", "==", False)]
        )
        for doc in unread:
            await self.store.update(NOTIFICATIONS, doc["id"], {"read": True})
        logger.info("Marked %d notifications read for %s", len(unread), user_id)
        return len(unread)

    async def delete_notification(self, user_id: str, notification_id: str) -> None:
        await self._get_own(user_id, notification_id)
        await self.store.delete(NOTIFICATIONS, notification_id)
