from datetime import timedelta

import pytest

from conftest import BASE_TIME
from tasting_notes.database.store import Filter
from tasting_notes.exceptions import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    UnavailableError,
    ValidationError,
)
from tasting_notes.models.note_models import NoteCreate
from tasting_notes.models.social_models import ActivityDocument, ActivityType
from tasting_notes.models.user_models import UpdateProfileRequest


def friends_note(title="Mapo tofu"):
    return NoteCreate(type="recipe", title=title, rating=5, date=BASE_TIME, notes="Numbing", visibility="friends")


async def put_activity(store, activity_id, actor_id, target_id, minutes, type=ActivityType.CONTENT_CREATED):
    activity = ActivityDocument(
        id=activity_id,
        type=type,
        actor_id=actor_id,
        target_id=target_id,
        timestamp=BASE_TIME + timedelta(minutes=minutes),
    )
    await store.put("activities", activity.id, activity.model_dump())
    return activity


@pytest.mark.asyncio
async def test_private_owner_activity_dropped_for_non_follower(activities, notes, store, make_user):
    """Test that enrichment removes activity about a note the viewer cannot see."""
    await make_user("u1", private=True, followers=["u2"])
    await make_user("u2", following=["u1"])
    # u3 lists u1 in `following` without the matching follower edge, so the raw batch
    # for u3 still contains u1's activity.
    await make_user("u3", following=["u1"])
    note = await notes.create_note("u1", friends_note())

    raw = await store.query("activities", where=[Filter("actor_id", "in", ["u1"])])
    assert [a["target_id"] for a in raw] == [note.id]

    u2_feed = await activities.fetch_activity_feed("u2")
    assert [(a.type, a.target_id, a.note_title) for a in u2_feed.items] == [
        (ActivityType.CONTENT_CREATED, note.id, "Mapo tofu")
    ]
    assert u2_feed.items[0].actor.id == "u1"

    u3_feed = await activities.fetch_activity_feed("u3")
    assert u3_feed.items == []
    assert not u3_feed.partial


@pytest.mark.asyncio
async def test_names_resolved_at_read_time(activities, notes, users, make_user):
    await make_user("u1", username="Old name", followers=["u2"])
    await make_user("u2", following=["u1"])
    await notes.create_note("u1", friends_note())

    await users.update_profile("u1", UpdateProfileRequest(username="New name"))

    feed = await activities.fetch_activity_feed("u2")
    assert [a.actor.username for a in feed.items] == ["New name"]


@pytest.mark.asyncio
async def test_deleted_notes_and_missing_principals_are_dropped(activities, notes, store, make_user, make_note):
    await make_user("u1", following=["u3"], followers=["u2"])
    await make_user("u2", following=["u1"])
    await make_note("n1", "u1", "public")
    await put_activity(store, "act_note", "u1", "n1", minutes=3)
    await put_activity(store, "act_follow_ghost", "u1", "ghost", minutes=2, type=ActivityType.STARTED_FOLLOWING)
    await make_user("u3", followers=["u1"], username="Cy")
    await put_activity(store, "act_follow", "u1", "u3", minutes=1, type=ActivityType.STARTED_FOLLOWING)

    feed = await activities.fetch_activity_feed("u2")
    assert [a.id for a in feed.items] == ["act_note", "act_follow"]
    assert feed.items[1].target_user.username == "Cy"

    await notes.delete_note("u1", "n1")
    feed = await activities.fetch_activity_feed("u2")
    assert [a.id for a in feed.items] == ["act_follow"]


@pytest.mark.asyncio
async def test_following_set_larger_than_fan_in_limit(activities, store, make_user, make_note):
    """Test that a viewer following more principals than one `in` query allows sees all of them, in order."""
    followed = [f"f{i:02d}" for i in range(12)]
    await make_user("viewer", following=followed)
    for index, user_id in enumerate(followed):
        await make_user(user_id, followers=["viewer"])
        await make_note(f"n{index:02d}", user_id, "public")
        await put_activity(store, f"act{index:02d}", user_id, f"n{index:02d}", minutes=index)

    seen, cursor = [], None
    for _ in range(4):
        page = await activities.fetch_activity_feed("viewer", page_size=5, cursor=cursor)
        seen.extend(a.id for a in page.items)
        cursor = page.next_cursor
        if cursor is None:
            break

    assert cursor is None
    assert seen == [f"act{i:02d}" for i in reversed(range(12))]


@pytest.mark.asyncio
async def test_failed_batch_is_skipped(activities, store, make_user, make_note, monkeypatch):
    followed = [f"f{i:02d}" for i in range(12)]
    await make_user("viewer", following=followed)
    for index, user_id in enumerate(followed):
        await make_user(user_id, followers=["viewer"])
        await make_note(f"n{index:02d}", user_id, "public")
        await put_activity(store, f"act{index:02d}", user_id, f"n{index:02d}", minutes=index)

    original = store.query

    async def flaky_query(collection, where=None, **kwargs):
        if collection == "activities" and any(f.field == "actor_id" and "f00" in f.value for f in where or []):
            raise UnavailableError("shard offline")
        return await original(collection, where=where, **kwargs)

    monkeypatch.setattr(store, "query", flaky_query)
    page = await activities.fetch_activity_feed("viewer", page_size=20)

    assert page.partial
    assert [a.id for a in page.items] == ["act11", "act10"]


@pytest.mark.asyncio
async def test_permission_error_aborts_the_feed(activities, store, make_user, monkeypatch):
    await make_user("viewer", following=["u1"])
    await make_user("u1", followers=["viewer"])

    async def denying_query(collection, where=None, **kwargs):
        raise PermissionDeniedError("store refused the read")

    monkeypatch.setattr(store, "query", denying_query)
    with pytest.raises(PermissionDeniedError):
        await activities.fetch_activity_feed("viewer")


@pytest.mark.asyncio
async def test_empty_following_and_bad_page_size(activities, make_user):
    await make_user("loner")
    page = await activities.fetch_activity_feed("loner")
    assert page.items == []
    assert page.next_cursor is None

    with pytest.raises(ValidationError):
        await activities.fetch_activity_feed("loner", page_size=1000)
    with pytest.raises(NotFoundError):
        await activities.fetch_activity_feed("ghost")


@pytest.mark.asyncio
async def test_activity_likes_and_comments(activities, store, make_user, make_note):
    await make_user("u1", followers=["u2"])
    await make_user("u2", following=["u1"])
    await make_user("u3")
    await make_note("n1", "u1", "public")
    await put_activity(store, "act1", "u1", "n1", minutes=0)

    liked = await activities.like_activity("u2", "act1")
    assert liked.liked_by == ["u2"]
    assert liked.likes == 1

    with pytest.raises(InvalidStateError) as exc_info:
        await activities.like_activity("u2", "act1")
    assert exc_info.value.code == "already_liked"

    feed = await activities.fetch_activity_feed("u2")
    assert feed.items[0].liked_by_viewer
    assert feed.items[0].likes == 1

    unliked = await activities.unlike_activity("u2", "act1")
    assert unliked.likes == 0
    with pytest.raises(InvalidStateError) as exc_info:
        await activities.unlike_activity("u2", "act1")
    assert exc_info.value.code == "not_liked"

    with pytest.raises(PermissionDeniedError):
        await activities.like_activity("u3", "act1")
    with pytest.raises(NotFoundError):
        await activities.like_activity("u2", "act_missing")

    with pytest.raises(ValidationError):
        await activities.comment_on_activity("u2", "act1", "   ")
    comment = await activities.comment_on_activity("u2", "act1", " Looks great ")
    assert comment.text == "Looks great"
    stored = await store.get("activities", "act1")
    assert [c["id"] for c in stored["comments"]] == [comment.id]


@pytest.mark.asyncio
async def test_activity_on_hidden_note_cannot_be_liked(activities, store, make_user, make_note):
    # u2 follows u1 in its own record, but u1 is private and has not accepted.
    await make_user("u1", private=True)
    await make_user("u2", following=["u1"])
    await make_note("n1", "u1", "friends")
    await put_activity(store, "act1", "u1", "n1", minutes=0)

    with pytest.raises(PermissionDeniedError):
        await activities.like_activity("u2", "act1")
    assert (await store.get("activities", "act1"))["liked_by"] == []
