"""
Activity feed routes.

- `GET /activity` - Activity of the principals the caller follows
- `POST|DELETE /activity/{id}/like` - Like or unlike an activity
- `POST /activity/{id}/comments` - Comment on an activity
"""

from fastapi import APIRouter, Depends, status

from tasting_notes.models.feed_models import FeedPage
from tasting_notes.models.note_models import CommentCreate
from tasting_notes.models.social_models import ActivityComment, ActivityDocument, ActivityView
from tasting_notes.routes.dependencies import PageParams, get_activity_service, get_current_user_id
from tasting_notes.services.activity_service import ActivityService

router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("", response_model=FeedPage[ActivityView])
async def get_activity_feed(
    page: PageParams = Depends(),
    user_id: str = Depends(get_current_user_id),
    activities: ActivityService = Depends(get_activity_service),
):
    """
    Newest activity of followed principals, enriched with current names.

    Activities about notes the caller cannot see are left out. `partial` is true when a
    batch of followed principals could not be read.
    """
    return await activities.fetch_activity_feed(user_id, page.page_size, page.cursor)


@router.post("/{activity_id}/like", response_model=ActivityDocument)
async def like_activity(
    activity_id: str,
    user_id: str = Depends(get_current_user_id),
    activities: ActivityService = Depends(get_activity_service),
):
    return await activities.like_activity(user_id, activity_id)


@router.delete("/{activity_id}/like", response_model=ActivityDocument)
async def unlike_activity(
    activity_id: str,
    user_id: str = Depends(get_current_user_id),
    activities: ActivityService = Depends(get_activity_service),
):
    return await activities.unlike_activity(user_id, activity_id)


@router.post("/{activity_id}/comments", response_model=ActivityComment, status_code=status.HTTP_201_CREATED)
async def comment_on_activity(
    activity_id: str,
    request: CommentCreate,
    user_id: str = Depends(get_current_user_id),
    activities: ActivityService = Depends(get_activity_service),
):
    return await activities.comment_on_activity(user_id, activity_id, request.text)
