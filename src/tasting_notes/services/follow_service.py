"""
# Follow Graph Service

Maintains follower/following edges, the follow-request state machine that gates edges to
private principals, and the symmetric family-member relation.

## Edges

An edge is stored on both ends (`A.following` and `B.followers`) and both sides are
always written in one `run_transaction` call, so no reader ever sees half an edge.

## Follow Requests

```
follow(A, B) with B private
    -> FollowRequest(pending) + "follow_request" notification to B

respond_to_request(B, request, accepted)
    -> one transaction: status=accepted, A.following += B, B.followers += A
    -> "follow_request_accepted" notification to A

respond_to_request(B, request, rejected)
    -> status=rejected, no edge
    -> "follow_request_rejected" notification to A
```

Uniqueness of the pending request for a (from, to) pair is enforced by a guard document
in `pending_follow_requests` (id `"{from_id}:{to_id}"`) that is created and removed in the
same transaction as the request's transitions. A rejected or cancelled requester may ask
again.
"""

from typing import Dict, List, Optional

from tasting_notes.database import get_document_store
from tasting_notes.database.store import ArrayRemove, ArrayUnion, DocumentStore, Filter, Transaction, new_id
from tasting_notes.exceptions import (
    AlreadyFollowingError,
    InvalidRequestStateError,
    InvalidStateError,
    NotFollowingError,
    NotFoundError,
    PermissionDeniedError,
    RequestAlreadyPendingError,
    ValidationError,
)
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.social_models import (
    ActivityType,
    FollowDecision,
    FollowRequestDocument,
    FollowRequestStatus,
    FollowRequestView,
    FollowResult,
    NotificationType,
)
from tasting_notes.models.user_models import UserDocument, UserSummary
from tasting_notes.services.activity_service import ActivityService
from tasting_notes.services.feed_merge import SortSpec
from tasting_notes.services.notification_service import NotificationService
from tasting_notes.services.user_service import USERS, UserService
from tasting_notes.utils.datetime_utils import utc_now

logger = get_logger(prefix="[FollowGraph]")

FOLLOW_REQUESTS = "follow_requests"
PENDING_GUARDS = "pending_follow_requests"
REQUEST_SORT = SortSpec("created_at", descending=True)


def pending_guard_id(from_id: str, to_id: str) -> str:
    return f"{from_id}:{to_id}"


class FollowService:
    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        users: Optional[UserService] = None,
        activities: Optional[ActivityService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.store = store or get_document_store()
        self.users = users or UserService(self.store)
        self.activities = activities or ActivityService(self.store, self.users)
        self.notifications = notifications or NotificationService(self.store, self.users)

    async def follow(self, actor_id: str, target_id: str) -> FollowResult:
        """
        Follow `target_id`, or ask to when the target's profile is private.

        Raises:
            ValidationError: `actor_id == target_id`.
            NotFoundError: either principal does not exist.
            AlreadyFollowingError: the edge already exists.
            RequestAlreadyPendingError: a pending request for this pair exists.
        """
        if actor_id == target_id:
            raise ValidationError("You cannot follow yourself")
        actor = await self.users.get_user(actor_id)
        target = await self.users.get_user(target_id)
        if target_id in actor.following:
            raise AlreadyFollowingError(f"Already following {target_id}")

        if target.is_private:
            request = await self._create_request(actor_id, target_id)
            await self.notifications.notify_many(
                NotificationType.FOLLOW_REQUEST, actor_id, [target_id], target_id=request.id
            )
            logger.info("Follow request %s: %s -> %s", request.id, actor_id, target_id)
            return FollowResult(status="requested", request_id=request.id)

        async def add_edge(txn: Transaction) -> None:
            current = await txn.get(USERS, actor_id)
            if current is None:
                raise NotFoundError(f"User {actor_id} not found")
            if target_id in current.get("following", []):
                raise AlreadyFollowingError(f"Already following {target_id}")
            await _link(txn, actor_id, target_id)

        await self.store.run_transaction(add_edge)
        logger.info("%s started following %s", actor_id, target_id)
        await self._after_new_edge(actor_id, target_id, NotificationType.FOLLOW)
        return FollowResult(status="following")

    async def _create_request(self, actor_id: str, target_id: str) -> FollowRequestDocument:
        request = FollowRequestDocument(id=new_id("freq"), from_id=actor_id, to_id=target_id)
        guard_id = pending_guard_id(actor_id, target_id)

        async def create(txn: Transaction) -> None:
            if await txn.get(PENDING_GUARDS, guard_id) is not None:
                raise RequestAlreadyPendingError(f"A follow request to {target_id} is already pending")
            await txn.put(FOLLOW_REQUESTS, request.id, request.model_dump())
            await txn.put(PENDING_GUARDS, guard_id, {"request_id": request.id, "created_at": request.created_at})

        await self.store.run_transaction(create)
        return request

    async def _after_new_edge(self, actor_id: str, target_id: str, notification: NotificationType) -> None:
        try:
            await self.activities.record_activity(actor_id, ActivityType.STARTED_FOLLOWING, target_id)
        except Exception as e:
            logger.error("Could not record follow activity %s -> %s: %s", actor_id, target_id, e)
        await self.notifications.notify_many(notification, actor_id, [target_id])

    async def respond_to_request(
        self, responder_id: str, request_id: str, decision: FollowDecision
    ) -> FollowRequestDocument:
        """
        Accept or reject a pending request addressed to `responder_id`.

        Raises:
            NotFoundError: unknown request.
            PermissionDeniedError: the request is addressed to someone else.
            InvalidRequestStateError: the request was already resolved or cancelled.
        """
        doc = await self.store.get(FOLLOW_REQUESTS, request_id)
        if doc is None:
            raise NotFoundError(f"Follow request {request_id} not found")
        request = FollowRequestDocument(**doc)
        if request.to_id != responder_id:
            raise PermissionDeniedError("Only the recipient can respond to a follow request")
        if request.status != FollowRequestStatus.PENDING.value:
            raise InvalidRequestStateError(f"Follow request {request_id} is already {request.status}")

        decision = FollowDecision(decision)
        responded_at = utc_now()

        async def resolve(txn: Transaction) -> None:
            current = await txn.get(FOLLOW_REQUESTS, request_id)
            if current is None:
                raise NotFoundError(f"Follow request {request_id} not found")
            if current.get("status") != FollowRequestStatus.PENDING.value:
                raise InvalidRequestStateError(f"Follow request {request_id} is already {current.get('status')}")
            await txn.update(
                FOLLOW_REQUESTS, request_id, {"status": decision.value, "responded_at": responded_at}
            )
            await txn.delete(PENDING_GUARDS, pending_guard_id(request.from_id, request.to_id))
            if decision == FollowDecision.ACCEPTED:
                await _link(txn, request.from_id, request.to_id)

        await self.store.run_transaction(resolve)
        logger.info("Follow request %s %s by %s", request_id, decision.value, responder_id)

        if decision == FollowDecision.ACCEPTED:
            try:
                await self.activities.record_activity(
                    request.from_id, ActivityType.STARTED_FOLLOWING, request.to_id
                )
            except Exception as e:
                logger.error("Could not record follow activity for request %s: %s", request_id, e)
            notification = NotificationType.FOLLOW_REQUEST_ACCEPTED
        else:
            notification = NotificationType.FOLLOW_REQUEST_REJECTED
        await self.notifications.notify_many(notification, responder_id, [request.from_id], target_id=request_id)

        request.status = decision.value
        request.responded_at = responded_at
        return request

    async def unfollow(self, actor_id: str, target_id: str) -> None:
        actor = await self.users.get_user(actor_id)
        if target_id not in actor.following:
            raise NotFollowingError(f"You are not following {target_id}")

        async def remove_edge(txn: Transaction) -> None:
            current = await txn.get(USERS, actor_id)
            if current is None or target_id not in current.get("following", []):
                raise NotFollowingError(f"You are not following {target_id}")
            await txn.update(USERS, actor_id, {"following": ArrayRemove(target_id)})
            if await txn.get(USERS, target_id) is not None:
                await txn.update(USERS, target_id, {"followers": ArrayRemove(actor_id)})

        await self.store.run_transaction(remove_edge)
        logger.info("%s unfollowed %s", actor_id, target_id)

    async def cancel_request(self, actor_id: str, target_id: str) -> None:
        """Withdraw the caller's pending request to `target_id`."""
        guard_id = pending_guard_id(actor_id, target_id)

        async def cancel(txn: Transaction) -> str:
            guard = await txn.get(PENDING_GUARDS, guard_id)
            if guard is None:
                raise NotFoundError(f"No pending follow request to {target_id}")
            await txn.delete(FOLLOW_REQUESTS, guard["request_id"])
            await txn.delete(PENDING_GUARDS, guard_id)
            return guard["request_id"]

        request_id = await self.store.run_transaction(cancel)
        logger.info("Follow request %s cancelled by %s", request_id, actor_id)

    async def get_request_status(self, actor_id: str, target_id: str) -> str:
        """One of `"following"`, `"pending"` or `"none"`."""
        actor = await self.users.get_user(actor_id)
        if target_id in actor.following:
            return "following"
        if await self.store.get(PENDING_GUARDS, pending_guard_id(actor_id, target_id)) is not None:
            return "pending"
        return "none"

    async def get_pending_requests(self, user_id: str) -> List[FollowRequestView]:
        docs = await self.store.query(
            FOLLOW_REQUESTS,
            where=[Filter("to_id", "==", user_id), Filter("status", "==", FollowRequestStatus.PENDING.value)],
            order_by=REQUEST_SORT.order_by(),
        )
        requests = [FollowRequestDocument(**doc) for doc in docs]
        requesters = await self.users.get_users(r.from_id for r in requests)
        return [
            FollowRequestView(
                id=r.id,
                requester=UserSummary.from_document(requesters[r.from_id]),
                created_at=r.created_at,
            )
            for r in requests
            if r.from_id in requesters
        ]

    # --- Graph reads ---

    async def _summaries(self, user_ids: List[str]) -> List[UserSummary]:
        found: Dict[str, UserDocument] = await self.users.get_users(user_ids)
        return [UserSummary.from_document(found[i]) for i in user_ids if i in found]

    async def get_followers(self, user_id: str) -> List[UserSummary]:
        user = await self.users.get_user(user_id)
        return await self._summaries(user.followers)

    async def get_following(self, user_id: str) -> List[UserSummary]:
        user = await self.users.get_user(user_id)
        return await self._summaries(user.following)

    async def is_following(self, actor_id: str, target_id: str) -> bool:
        actor = await self.users.get_user(actor_id)
        return target_id in actor.following

    # --- Family members ---

    async def add_family_member(self, actor_id: str, member_id: str) -> None:
        if actor_id == member_id:
            raise ValidationError("You cannot add yourself as a family member")
        actor = await self.users.get_user(actor_id)
        await self.users.get_user(member_id)
        if member_id in actor.family_members:
            raise InvalidStateError(f"{member_id} is already a family member", code="already_family")

        async def link(txn: Transaction) -> None:
            await txn.update(USERS, actor_id, {"family_members": ArrayUnion(member_id)})
            await txn.update(USERS, member_id, {"family_members": ArrayUnion(actor_id)})

        await self.store.run_transaction(link)
        logger.info("%s and %s are now family", actor_id, member_id)

    async def remove_family_member(self, actor_id: str, member_id: str) -> None:
        actor = await self.users.get_user(actor_id)
        if member_id not in actor.family_members:
            raise InvalidStateError(f"{member_id} is not a family member", code="not_family")

        async def unlink(txn: Transaction) -> None:
            await txn.update(USERS, actor_id, {"family_members": ArrayRemove(member_id)})
            if await txn.get(USERS, member_id) is not None:
                await txn.update(USERS, member_id, {"family_members": ArrayRemove(actor_id)})

        await self.store.run_transaction(unlink)
        logger.info("%s removed family member %s", actor_id, member_id)

    async def get_family_members(self, user_id: str) -> List[UserSummary]:
        user = await self.users.get_user(user_id)
        return await self._summaries(user.family_members)


async def _link(txn: Transaction, follower_id: str, followed_id: str) -> None:
    """Write both sides of a follow edge inside `txn`."""
    await txn.update(USERS, follower_id, {"following": ArrayUnion(followed_id)})
    await txn.update(USERS, followed_id, {"followers": ArrayUnion(follower_id)})
