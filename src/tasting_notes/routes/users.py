"""
# User & Social Graph Routes

Profiles, follow edges, follow requests and family members.

## API Endpoints

### Profiles
- `POST /users` - Register the caller (id from `X-User-Id`)
- `GET /users` - Directory of public profiles, by username
- `GET /users/me`, `PATCH /users/me`
- `GET /users/{id}` - Public card of a principal
- `GET /users/{id}/notes` - A profile's notes as the caller may see them

### Following
- `POST /users/{id}/follow` - Follow, or request to follow a private profile
- `DELETE /users/{id}/follow` - Unfollow
- `GET /users/{id}/follow-status` - `none`, `pending` or `following`
- `DELETE /users/{id}/follow-request` - Withdraw a pending request
- `GET /users/{id}/followers`, `GET /users/{id}/following`
- `GET /follow-requests` - Pending requests addressed to the caller
- `POST /follow-requests/{id}/respond` - Accept or reject

### Family
- `GET /users/{id}/family`
- `POST /users/{id}/family`, `DELETE /users/{id}/family`
"""

from typing import List

from fastapi import APIRouter, Depends, status

from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.feed_models import FeedPage, NoteFilters, NoteSort
from tasting_notes.models.note_models import NoteDocument
from tasting_notes.models.social_models import FollowRequestDocument, FollowRequestView, FollowResult, RespondToRequest
from tasting_notes.models.user_models import CreateUserRequest, UpdateProfileRequest, UserDocument, UserSummary
from tasting_notes.routes.dependencies import (
    PageParams,
    get_current_user_id,
    get_follow_service,
    get_note_feed_service,
    get_note_filters,
    get_note_sort,
    get_user_service,
)
from tasting_notes.services.follow_service import FollowService
from tasting_notes.services.note_feed_service import NoteFeedService
from tasting_notes.services.user_service import UserService

logger = get_logger(prefix="[User Routes]")

router = APIRouter(prefix="/users", tags=["users"])
requests_router = APIRouter(prefix="/follow-requests", tags=["follow-requests"])


# Profiles


@router.post("", response_model=UserDocument, status_code=status.HTTP_201_CREATED)
async def register_user(
    request: CreateUserRequest,
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
):
    """
    Create the profile of the calling principal.

    Raises:
        HTTPException(409): If the principal or the email is already registered.
    """
    return await users.create_user(user_id, request)


@router.get("", response_model=FeedPage[UserSummary])
async def discover_users(
    page: PageParams = Depends(),
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
):
    """Public profiles other than the caller's, ordered by username."""
    return await users.discover_users(user_id, page.page_size, page.cursor)


@router.get("/me", response_model=UserDocument)
async def get_my_profile(
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
):
    return await users.get_user(user_id)


@router.patch("/me", response_model=UserDocument)
async def update_my_profile(
    request: UpdateProfileRequest,
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
):
    """Update profile fields. Dietary preferences must come from the supported list."""
    return await users.update_profile(user_id, request)


@router.get("/{target_id}", response_model=UserSummary)
async def get_user(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
):
    return UserSummary.from_document(await users.get_user(target_id))


@router.get("/{target_id}/notes", response_model=FeedPage[NoteDocument])
async def get_user_notes(
    target_id: str,
    page: PageParams = Depends(),
    filters: NoteFilters = Depends(get_note_filters),
    sort: NoteSort = Depends(get_note_sort),
    user_id: str = Depends(get_current_user_id),
    feed: NoteFeedService = Depends(get_note_feed_service),
):
    return await feed.fetch_user_notes(user_id, target_id, filters, page.page_size, page.cursor, sort)


# Following


@router.post("/{target_id}/follow", response_model=FollowResult)
async def follow_user(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    """
    Follow a principal.

    Public profiles are followed immediately (`status: "following"`). Private profiles
    receive a follow request instead (`status: "requested"`).

    Raises:
        HTTPException(409): Already following, or a request is already pending.
    """
    result = await follows.follow(user_id, target_id)
    logger.info("Follow %s -> %s: %s", user_id, target_id, result.status)
    return result


@router.delete("/{target_id}/follow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_user(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    await follows.unfollow(user_id, target_id)


@router.get("/{target_id}/follow-status")
async def get_follow_status(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    return {"status": await follows.get_request_status(user_id, target_id)}


@router.delete("/{target_id}/follow-request", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_follow_request(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    await follows.cancel_request(user_id, target_id)


@router.get("/{target_id}/followers", response_model=List[UserSummary])
async def get_followers(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    return await follows.get_followers(target_id)


@router.get("/{target_id}/following", response_model=List[UserSummary])
async def get_following(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    return await follows.get_following(target_id)


# Family


@router.get("/{target_id}/family", response_model=List[UserSummary])
async def get_family_members(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    return await follows.get_family_members(target_id)


@router.post("/{target_id}/family", status_code=status.HTTP_204_NO_CONTENT)
async def add_family_member(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    await follows.add_family_member(user_id, target_id)


@router.delete("/{target_id}/family", status_code=status.HTTP_204_NO_CONTENT)
async def remove_family_member(
    target_id: str,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    await follows.remove_family_member(user_id, target_id)


# Follow requests


@requests_router.get("", response_model=List[FollowRequestView])
async def get_pending_requests(
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    return await follows.get_pending_requests(user_id)


@requests_router.post("/{request_id}/respond", response_model=FollowRequestDocument)
async def respond_to_request(
    request_id: str,
    request: RespondToRequest,
    user_id: str = Depends(get_current_user_id),
    follows: FollowService = Depends(get_follow_service),
):
    """
    Accept or reject a follow request addressed to the caller.

    Raises:
        HTTPException(403): The request is addressed to someone else.
        HTTPException(409): The request was already resolved.
    """
    return await follows.respond_to_request(user_id, request_id, request.decision)
