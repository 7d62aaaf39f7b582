import os

os.environ.setdefault("STORE_BACKEND", "memory")

from datetime import datetime, timedelta, timezone

import pytest

from tasting_notes.database import set_document_store
from tasting_notes.database.memory_store import InMemoryDocumentStore
from tasting_notes.models.note_models import NoteDocument
from tasting_notes.models.user_models import UserDocument, UserSettings
from tasting_notes.services.activity_service import ActivityService
from tasting_notes.services.bookmark_service import BookmarkService
from tasting_notes.services.catalog_service import CatalogService
from tasting_notes.services.follow_service import FollowService
from tasting_notes.services.note_feed_service import NoteFeedService
from tasting_notes.services.note_service import NoteService
from tasting_notes.services.notification_service import NotificationService
from tasting_notes.services.user_service import UserService

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    store = InMemoryDocumentStore()
    set_document_store(store)
    yield store
    set_document_store(None)


@pytest.fixture
def users(store):
    return UserService(store)


@pytest.fixture
def notifications(store, users):
    return NotificationService(store, users)


@pytest.fixture
def activities(store, users):
    return ActivityService(store, users)


@pytest.fixture
def feed(store, users):
    return NoteFeedService(store, users)


@pytest.fixture
def follows(store, users, activities, notifications):
    return FollowService(store, users, activities, notifications)


@pytest.fixture
def catalog(store):
    return CatalogService(store)


@pytest.fixture
def notes(store, users, feed, activities, notifications, catalog):
    return NoteService(store, users, feed, activities, notifications, catalog)


@pytest.fixture
def bookmarks(store, users, feed):
    return BookmarkService(store, users, feed)


@pytest.fixture
def make_user(store):
    """Insert a principal directly into the store."""

    async def _make_user(user_id, private=False, email=None, following=(), followers=(), username=None):
        user = UserDocument(
            id=user_id,
            username=username or user_id.upper(),
            email=email or f"{user_id}@x.com",
            settings=UserSettings(is_private=private),
            following=list(following),
            followers=list(followers),
        )
        await store.put("users", user.id, user.model_dump())
        return user

    return _make_user


@pytest.fixture
def make_note(store):
    """Insert a note directly into the store; `minutes` offsets its date from BASE_TIME."""

    async def _make_note(note_id, owner_id, visibility="private", minutes=0, shared_with=(), **fields):
        when = BASE_TIME + timedelta(minutes=minutes)
        note = NoteDocument(
            id=note_id,
            owner_id=owner_id,
            type=fields.pop("type", "recipe"),
            title=fields.pop("title", f"Note {note_id}"),
            rating=fields.pop("rating", 4),
            date=when,
            notes=fields.pop("notes", "Tasty"),
            visibility=visibility,
            shared_with=list(shared_with),
            created_at=when,
            updated_at=when,
            **fields,
        )
        await store.put("notes", note.id, note.model_dump())
        return note

    return _make_note


@pytest.fixture
def count_notifications(store):
    async def _count(recipient_id, type=None):
        docs = await store.query("notifications")
        return len([d for d in docs if d["recipient_id"] == recipient_id and (type is None or d["type"] == type)])

    return _count
