import pytest

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
from tasting_notes.models.social_models import FollowDecision
from tasting_notes.services.follow_service import FOLLOW_REQUESTS, PENDING_GUARDS


@pytest.mark.asyncio
async def test_follow_public_profile_creates_mutual_edge(follows, users, store, make_user, count_notifications):
    """Test that following a public principal writes both sides of the edge."""
    await make_user("u1")
    await make_user("u2")

    result = await follows.follow("u1", "u2")

    assert result.status == "following"
    assert (await users.get_user("u1")).following == ["u2"]
    assert (await users.get_user("u2")).followers == ["u1"]
    assert await count_notifications("u2", "follow") == 1
    activities = await store.query("activities")
    assert [(a["actor_id"], a["type"], a["target_id"]) for a in activities] == [
        ("u1", "started_following", "u2")
    ]
    assert await follows.is_following("u1", "u2")
    assert await follows.get_request_status("u1", "u2") == "following"


@pytest.mark.asyncio
async def test_unfollow_removes_both_sides(follows, users, make_user, count_notifications):
    """Test that unfollowing removes the edge on both principals and notifies nobody."""
    await make_user("u1")
    await make_user("u2")
    await follows.follow("u1", "u2")

    await follows.unfollow("u1", "u2")

    assert (await users.get_user("u1")).following == []
    assert (await users.get_user("u2")).followers == []
    assert await count_notifications("u2") == 1

    with pytest.raises(NotFollowingError):
        await follows.unfollow("u1", "u2")


@pytest.mark.asyncio
async def test_follow_rejects_invalid_targets(follows, make_user):
    await make_user("u1")
    await make_user("u2")

    with pytest.raises(ValidationError):
        await follows.follow("u1", "u1")
    with pytest.raises(NotFoundError):
        await follows.follow("u1", "ghost")

    await follows.follow("u1", "u2")
    with pytest.raises(AlreadyFollowingError):
        await follows.follow("u1", "u2")


@pytest.mark.asyncio
async def test_duplicate_pending_request_then_reject_and_retry(follows, users, make_user, count_notifications):
    """Test the request lifecycle for a private profile, including a second request after rejection."""
    await make_user("u1")
    await make_user("u2", private=True)

    first = await follows.follow("u1", "u2")
    assert first.status == "requested"
    assert (await users.get_user("u1")).following == []
    assert await follows.get_request_status("u1", "u2") == "pending"
    assert await count_notifications("u2", "follow_request") == 1

    with pytest.raises(RequestAlreadyPendingError):
        await follows.follow("u1", "u2")
    assert await count_notifications("u2", "follow_request") == 1

    rejected = await follows.respond_to_request("u2", first.request_id, FollowDecision.REJECTED)
    assert rejected.status == "rejected"
    assert rejected.responded_at is not None
    assert await count_notifications("u1", "follow_request_rejected") == 1
    assert (await users.get_user("u1")).following == []
    assert (await users.get_user("u2")).followers == []
    assert await follows.get_request_status("u1", "u2") == "none"

    second = await follows.follow("u1", "u2")
    assert second.status == "requested"
    assert second.request_id != first.request_id


@pytest.mark.asyncio
async def test_accept_creates_edge_once(follows, users, store, make_user, count_notifications):
    """Test that accepting links both sides and that a second response changes nothing."""
    await make_user("u1")
    await make_user("u2", private=True)
    request_id = (await follows.follow("u1", "u2")).request_id

    accepted = await follows.respond_to_request("u2", request_id, FollowDecision.ACCEPTED)

    assert accepted.status == "accepted"
    assert (await users.get_user("u1")).following == ["u2"]
    assert (await users.get_user("u2")).followers == ["u1"]
    assert await count_notifications("u1", "follow_request_accepted") == 1
    assert await store.get(PENDING_GUARDS, "u1:u2") is None

    for decision in (FollowDecision.ACCEPTED, FollowDecision.REJECTED):
        with pytest.raises(InvalidRequestStateError):
            await follows.respond_to_request("u2", request_id, decision)

    assert (await users.get_user("u1")).following == ["u2"]
    assert (await users.get_user("u2")).followers == ["u1"]
    assert await count_notifications("u1") == 1
    assert (await store.get(FOLLOW_REQUESTS, request_id))["status"] == "accepted"


@pytest.mark.asyncio
async def test_only_the_recipient_can_respond(follows, make_user):
    await make_user("u1")
    await make_user("u2", private=True)
    await make_user("u3")
    request_id = (await follows.follow("u1", "u2")).request_id

    with pytest.raises(PermissionDeniedError):
        await follows.respond_to_request("u3", request_id, FollowDecision.ACCEPTED)
    with pytest.raises(NotFoundError):
        await follows.respond_to_request("u2", "freq_missing", FollowDecision.ACCEPTED)


@pytest.mark.asyncio
async def test_pending_requests_and_cancel(follows, store, make_user):
    """Test listing incoming requests and withdrawing one."""
    await make_user("u1", username="Ada")
    await make_user("u2", private=True)
    request_id = (await follows.follow("u1", "u2")).request_id

    pending = await follows.get_pending_requests("u2")
    assert [(p.id, p.requester.id, p.requester.username) for p in pending] == [(request_id, "u1", "Ada")]

    await follows.cancel_request("u1", "u2")

    assert await follows.get_pending_requests("u2") == []
    assert await store.get(FOLLOW_REQUESTS, request_id) is None
    assert await follows.get_request_status("u1", "u2") == "none"
    with pytest.raises(NotFoundError):
        await follows.cancel_request("u1", "u2")


@pytest.mark.asyncio
async def test_followers_and_following_summaries(follows, make_user):
    await make_user("u1", username="Ada")
    await make_user("u2", username="Bo")
    await make_user("u3", username="Cy")
    await follows.follow("u1", "u3")
    await follows.follow("u2", "u3")

    followers = await follows.get_followers("u3")
    assert [(s.id, s.username) for s in followers] == [("u1", "Ada"), ("u2", "Bo")]
    assert [s.id for s in await follows.get_following("u1")] == ["u3"]


@pytest.mark.asyncio
async def test_family_members_are_symmetric(follows, users, make_user):
    await make_user("u1")
    await make_user("u2")

    await follows.add_family_member("u1", "u2")
    assert (await users.get_user("u1")).family_members == ["u2"]
    assert (await users.get_user("u2")).family_members == ["u1"]
    assert [s.id for s in await follows.get_family_members("u2")] == ["u1"]

    with pytest.raises(InvalidStateError) as exc_info:
        await follows.add_family_member("u1", "u2")
    assert exc_info.value.code == "already_family"
    with pytest.raises(ValidationError):
        await follows.add_family_member("u1", "u1")

    await follows.remove_family_member("u2", "u1")
    assert (await users.get_user("u1")).family_members == []
    assert (await users.get_user("u2")).family_members == []

    with pytest.raises(InvalidStateError) as exc_info:
        await follows.remove_family_member("u1", "u2")
    assert exc_info.value.code == "not_family"
