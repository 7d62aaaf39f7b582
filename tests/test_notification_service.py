from datetime import timedelta

import pytest

from conftest import BASE_TIME
from tasting_notes.exceptions import NotFoundError, PermissionDeniedError, UnavailableError, ValidationError
from tasting_notes.models.social_models import NotificationDocument, NotificationType
from tasting_notes.models.user_models import UpdateProfileRequest


async def put_notification(store, notification_id, recipient_id, minutes, sender_id="u1", read=False):
    notification = NotificationDocument(
        id=notification_id,
        type=NotificationType.NOTE_LIKED,
        sender_id=sender_id,
        recipient_id=recipient_id,
        sender_name="Stale name",
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        read=read,
    )
    await store.put("notifications", notification.id, notification.model_dump())


@pytest.mark.asyncio
async def test_never_notify_yourself(notifications, make_user, count_notifications):
    await make_user("u1")

    assert await notifications.notify(NotificationType.NOTE_LIKED, "u1", "u1") is None
    assert await notifications.notify_many(NotificationType.NOTE_LIKED, "u1", ["u1"]) == []
    assert await count_notifications("u1") == 0


@pytest.mark.asyncio
async def test_fanout_is_independent_per_recipient(notifications, store, make_user, monkeypatch):
    """Test that one failed write does not block the other recipients."""
    await make_user("u1", username="Ada")
    original = store.insert

    async def flaky_insert(collection, doc):
        if doc.get("recipient_id") == "u2":
            raise UnavailableError("write failed")
        return await original(collection, doc)

    monkeypatch.setattr(store, "insert", flaky_insert)
    created = await notifications.notify_many(
        NotificationType.NOTE_SHARED, "u1", ["u2", "u3", "u3", "u1", "u4"], target_id="note_1", title="Pho"
    )

    assert [n.recipient_id for n in created] == ["u3", "u4"]
    assert all(n.sender_name == "Ada" and n.title == "Pho" for n in created)


@pytest.mark.asyncio
async def test_inbox_is_paged_newest_first(notifications, store, make_user):
    await make_user("u1")
    await make_user("u2")
    for minute in range(5):
        await put_notification(store, f"ntf{minute}", "u2", minute)
    await put_notification(store, "other", "u1", 10, sender_id="u2")

    first = await notifications.get_notifications("u2", page_size=3)
    second = await notifications.get_notifications("u2", page_size=3, cursor=first.next_cursor)

    assert [n.id for n in first.items] == ["ntf4", "ntf3", "ntf2"]
    assert [n.id for n in second.items] == ["ntf1", "ntf0"]
    assert second.next_cursor is None

    with pytest.raises(ValidationError):
        await notifications.get_notifications("u2", page_size=1000)


@pytest.mark.asyncio
async def test_sender_names_are_current(notifications, users, store, make_user):
    await make_user("u1")
    await make_user("u2")
    await put_notification(store, "ntf1", "u2", 0)
    await put_notification(store, "ntf2", "u2", 1, sender_id="deleted_user")

    await users.update_profile("u1", UpdateProfileRequest(username="Fresh"))
    page = await notifications.get_notifications("u2")

    assert {n.id: n.sender_name for n in page.items} == {"ntf1": "Fresh", "ntf2": "Stale name"}


@pytest.mark.asyncio
async def test_read_state(notifications, store, make_user):
    await make_user("u1")
    await make_user("u2")
    await put_notification(store, "ntf1", "u2", 0)
    await put_notification(store, "ntf2", "u2", 1)
    await put_notification(store, "ntf3", "u2", 2, read=True)

    assert await notifications.get_unread_count("u2") == 2
    unread = await notifications.get_notifications("u2", unread_only=True)
    assert [n.id for n in unread.items] == ["ntf2", "ntf1"]

    marked = await notifications.mark_as_read("u2", "ntf1")
    assert marked.read
    assert await notifications.get_unread_count("u2") == 1

    with pytest.raises(PermissionDeniedError):
        await notifications.mark_as_read("u1", "ntf2")
    with pytest.raises(NotFoundError):
        await notifications.mark_as_read("u2", "ntf_missing")

    assert await notifications.mark_all_as_read("u2") == 1
    assert await notifications.get_unread_count("u2") == 0


@pytest.mark.asyncio
async def test_delete_notification(notifications, store, make_user):
    await make_user("u2")
    await put_notification(store, "ntf1", "u2", 0)

    with pytest.raises(PermissionDeniedError):
        await notifications.delete_notification("u1", "ntf1")

    await notifications.delete_notification("u2", "ntf1")
    assert await store.get("notifications", "ntf1") is None
