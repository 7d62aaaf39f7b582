import pytest

from conftest import BASE_TIME
from tasting_notes.exceptions import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from tasting_notes.models.catalog_models import MenuItemCreate, RecipeCreatorCreate
from tasting_notes.models.note_models import Location, NoteCreate, NoteUpdate


def note_payload(**overrides):
    fields = dict(type="recipe", title="Shakshuka", rating=4, date=BASE_TIME, notes="Eggs in tomato")
    fields.update(overrides)
    return NoteCreate(**fields)


@pytest.mark.asyncio
async def test_sharing_notifies_only_new_recipients(notes, make_user, count_notifications):
    """Test that re-saving the same recipients notifies nobody and adding one notifies only them."""
    await make_user("u1")
    await make_user("u2")
    await make_user("u3")

    note = await notes.create_note("u1", note_payload(shared_with=["u2@x.com"]))
    assert note.shared_with == ["u2"]
    assert await count_notifications("u2", "note_shared") == 1

    await notes.update_sharing("u1", note.id, ["u2@x.com"])
    await notes.update_sharing("u1", note.id, ["U2@X.COM", "u2"])
    assert await count_notifications("u2", "note_shared") == 1

    updated = await notes.update_note("u1", note.id, NoteUpdate(shared_with=["u2@x.com", "u3@x.com"]))
    assert updated.shared_with == ["u2", "u3"]
    assert await count_notifications("u2", "note_shared") == 1
    assert await count_notifications("u3", "note_shared") == 1


@pytest.mark.asyncio
async def test_recipients_are_canonical_principal_ids(notes, make_user):
    await make_user("u1")
    await make_user("u2")

    note = await notes.create_note("u1", note_payload(shared_with=["u2", "u2@x.com", "u1@x.com", "u1"]))
    assert note.shared_with == ["u2"]

    with pytest.raises(ValidationError):
        await notes.create_note("u1", note_payload(shared_with=["nobody@x.com"]))
    with pytest.raises(ValidationError):
        await notes.update_sharing("u1", note.id, ["ghost"])


@pytest.mark.asyncio
async def test_content_validation(notes, make_user):
    await make_user("u1")

    with pytest.raises(ValidationError):
        await notes.create_note("u1", note_payload(rating=6))
    with pytest.raises(ValidationError):
        await notes.create_note("u1", note_payload(title="   "))
    with pytest.raises(ValidationError):
        await notes.create_note("u1", note_payload(notes=""))
    with pytest.raises(ValidationError):
        await notes.create_note("u1", note_payload(type="restaurant"))
    with pytest.raises(NotFoundError):
        await notes.create_note("ghost", note_payload())

    restaurant = await notes.create_note("u1", note_payload(type="restaurant", location=Location(name="Sahara")))
    assert restaurant.location.name == "Sahara"


@pytest.mark.asyncio
async def test_update_is_owner_only_and_validated(notes, store, make_user):
    await make_user("u1")
    await make_user("u2")
    note = await notes.create_note("u1", note_payload(visibility="public"))

    with pytest.raises(PermissionDeniedError):
        await notes.update_note("u2", note.id, NoteUpdate(title="Mine now"))
    with pytest.raises(ValidationError):
        await notes.update_note("u1", note.id, NoteUpdate(rating=0))
    with pytest.raises(NotFoundError):
        await notes.update_note("u1", "note_missing", NoteUpdate(title="x"))

    updated = await notes.update_note("u1", note.id, NoteUpdate(title="  Green shakshuka ", tags=["brunch"]))
    assert updated.title == "Green shakshuka"
    assert (await store.get("notes", note.id))["title"] == "Green shakshuka"
    assert updated.tags == ["brunch"]
    assert updated.rating == 4

    activity_types = sorted(a["type"] for a in await store.query("activities"))
    assert activity_types == ["content_created", "content_updated"]


@pytest.mark.asyncio
async def test_likes_keep_counter_in_sync(notes, make_user, count_notifications):
    await make_user("u1")
    await make_user("u2")
    await make_user("u3")
    note = await notes.create_note("u1", note_payload(visibility="public"))

    liked = await notes.like_note("u2", note.id)
    liked = await notes.like_note("u3", note.id)
    assert liked.likes == len(liked.liked_by) == 2
    assert await count_notifications("u1", "note_liked") == 2

    with pytest.raises(InvalidStateError) as exc_info:
        await notes.like_note("u2", note.id)
    assert exc_info.value.code == "already_liked"

    own = await notes.like_note("u1", note.id)
    assert own.likes == 3
    assert await count_notifications("u1", "note_liked") == 2

    unliked = await notes.unlike_note("u2", note.id)
    assert unliked.likes == len(unliked.liked_by) == 2
    with pytest.raises(InvalidStateError):
        await notes.unlike_note("u2", note.id)


@pytest.mark.asyncio
async def test_interactions_on_hidden_notes_are_denied(notes, store, make_user):
    await make_user("u1")
    await make_user("u2")
    note = await notes.create_note("u1", note_payload())

    with pytest.raises(PermissionDeniedError):
        await notes.like_note("u2", note.id)
    with pytest.raises(PermissionDeniedError):
        await notes.add_comment("u2", note.id, "Let me in")
    stored = await store.get("notes", note.id)
    assert stored["likes"] == 0
    assert stored["comments"] == []


@pytest.mark.asyncio
async def test_comments(notes, store, make_user, count_notifications):
    await make_user("u1")
    await make_user("u2")
    await make_user("u3")
    note = await notes.create_note("u1", note_payload(visibility="public"))

    with pytest.raises(ValidationError):
        await notes.add_comment("u2", note.id, " ")

    first = await notes.add_comment("u2", note.id, "Needs more cumin")
    second = await notes.add_comment("u3", note.id, "Love it")
    stored = await store.get("notes", note.id)
    assert [c["id"] for c in stored["comments"]] == [first.id, second.id]
    assert stored["comment_count"] == 2
    assert await count_notifications("u1", "note_commented") == 2

    with pytest.raises(PermissionDeniedError):
        await notes.delete_comment("u3", note.id, first.id)

    await notes.delete_comment("u2", note.id, first.id)
    await notes.delete_comment("u1", note.id, second.id)
    stored = await store.get("notes", note.id)
    assert stored["comments"] == []
    assert stored["comment_count"] == 0

    with pytest.raises(NotFoundError):
        await notes.delete_comment("u1", note.id, first.id)


@pytest.mark.asyncio
async def test_delete_note_removes_bookmarks(notes, bookmarks, feed, store, make_user):
    await make_user("u1")
    await make_user("u2")
    note = await notes.create_note("u1", note_payload(visibility="public"))
    await bookmarks.add_bookmark("u2", note.id)

    with pytest.raises(PermissionDeniedError):
        await notes.delete_note("u2", note.id)

    await notes.delete_note("u1", note.id)

    with pytest.raises(NotFoundError):
        await feed.get_note("u1", note.id)
    assert await store.query("bookmarks") == []


@pytest.mark.asyncio
async def test_restaurant_notes_feed_the_catalog(notes, catalog, make_user):
    await make_user("u1")
    nopa = await catalog.add_restaurant("Nopa")
    chop = await catalog.add_menu_item(nopa.id, MenuItemCreate(name="Pork Chop"))

    note = await notes.create_note(
        "u1",
        note_payload(type="restaurant", title="Chop", location=Location(name="nopa"), menu_item_id=chop.id),
    )
    assert note.menu_item_id == chop.id
    assert (await catalog.get_menu_item(chop.id)).count == 1
    assert [r.id for r in await catalog.search_restaurants("nop")] == [nopa.id]

    await notes.create_note(
        "u1", note_payload(type="restaurant", location=Location(name="Zuni Cafe", address="1658 Market St"))
    )
    zuni = await catalog.search_restaurants("ZUNI")
    assert [(r.name, r.address) for r in zuni] == [("Zuni Cafe", "1658 Market St")]

    await notes.update_note("u1", note.id, NoteUpdate(rating=5))
    assert (await catalog.get_menu_item(chop.id)).count == 1


@pytest.mark.asyncio
async def test_catalog_references_are_checked(notes, catalog, make_user):
    await make_user("u1")
    nopa = await catalog.add_restaurant("Nopa")
    chop = await catalog.add_menu_item(nopa.id, MenuItemCreate(name="Pork Chop"))
    creator = await catalog.add_recipe_creator(RecipeCreatorCreate(name="Serious Eats"))

    with pytest.raises(ValidationError):
        await notes.create_note(
            "u1", note_payload(type="restaurant", location=Location(name="Zuni Cafe"), menu_item_id=chop.id)
        )
    with pytest.raises(ValidationError):
        await notes.create_note(
            "u1", note_payload(type="restaurant", location=Location(name="Nopa"), menu_item_id="itm_missing")
        )
    with pytest.raises(ValidationError):
        await notes.create_note("u1", note_payload(menu_item_id=chop.id))
    with pytest.raises(ValidationError):
        await notes.create_note("u1", note_payload(recipe_creator_id="crt_missing"))
    assert (await catalog.get_menu_item(chop.id)).count == 0

    recipe = await notes.create_note("u1", note_payload(recipe_creator_id=creator.id))
    assert recipe.recipe_creator_id == creator.id

    visit = await notes.create_note(
        "u1", note_payload(type="restaurant", location=Location(name="Nopa"), menu_item_id=chop.id)
    )
    with pytest.raises(ValidationError):
        await notes.update_note("u1", visit.id, NoteUpdate(location=Location(name="Zuni Cafe")))

    moved = await notes.update_note(
        "u1", visit.id, NoteUpdate(location=Location(name="Zuni Cafe"), menu_item_id=None)
    )
    assert moved.menu_item_id is None
    assert moved.location.name == "Zuni Cafe"
    assert [r.name for r in await catalog.search_restaurants("zuni")] == ["Zuni Cafe"]
