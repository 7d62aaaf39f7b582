"""
Notification inbox routes.

- `GET /notifications` - Newest first, `unread_only` to filter
- `GET /notifications/unread-count`
- `POST /notifications/{id}/read`, `POST /notifications/read-all`
- `DELETE /notifications/{id}`
"""

from fastapi import APIRouter, Depends, Query, status

from tasting_notes.models.feed_models import FeedPage
from tasting_notes.models.social_models import NotificationDocument
from tasting_notes.routes.dependencies import PageParams, get_current_user_id, get_notification_service
from tasting_notes.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=FeedPage[NotificationDocument])
async def get_notifications(
    unread_only: bool = Query(False),
    page: PageParams = Depends(),
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await notifications.get_notifications(user_id, unread_only, page.page_size, page.cursor)


@router.get("/unread-count")
async def get_unread_count(
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    return {"count": await notifications.get_unread_count(user_id)}


@router.post("/read-all")
async def mark_all_as_read(
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    return {"updated": await notifications.mark_all_as_read(user_id)}


@router.post("/{notification_id}/read", response_model=NotificationDocument)
async def mark_as_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await notifications.mark_as_read(user_id, notification_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifications: NotificationService = Depends(get_notification_service),
):
    await notifications.delete_notification(user_id, notification_id)
