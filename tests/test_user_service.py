import pytest

from tasting_notes.database.store import Filter
from tasting_notes.exceptions import InvalidStateError, NotFoundError, UnavailableError, ValidationError
from tasting_notes.models.user_models import CreateUserRequest, UpdateProfileRequest, UserSettings


@pytest.mark.asyncio
async def test_create_user(users):
    user = await users.create_user("u1", CreateUserRequest(username=" Ada ", email="Ada@Example.com", is_private=True))

    assert user.username == "Ada"
    assert user.email == "ada@example.com"
    assert user.is_private
    assert (await users.find_by_email("ADA@example.com")).id == "u1"

    with pytest.raises(InvalidStateError) as exc_info:
        await users.create_user("u1", CreateUserRequest(username="Ada"))
    assert exc_info.value.code == "user_exists"
    with pytest.raises(InvalidStateError) as exc_info:
        await users.create_user("u2", CreateUserRequest(username="Bo", email="ada@example.com"))
    assert exc_info.value.code == "email_taken"
    with pytest.raises(ValidationError):
        await users.create_user("u3", CreateUserRequest(username="Cy", email="not-an-email"))


@pytest.mark.asyncio
async def test_update_profile(users, make_user):
    await make_user("u1")

    updated = await users.update_profile(
        "u1",
        UpdateProfileRequest(
            dietary_preferences=["Vegan", "Gluten-Free"],
            allergies=[" peanuts ", ""],
            settings=UserSettings(is_private=True),
        ),
    )
    assert updated.dietary_preferences == ["Vegan", "Gluten-Free"]
    assert updated.allergies == ["peanuts"]
    assert updated.is_private

    with pytest.raises(ValidationError):
        await users.update_profile("u1", UpdateProfileRequest(dietary_preferences=["Carnivore"]))
    with pytest.raises(ValidationError):
        await users.update_profile("u1", UpdateProfileRequest())
    with pytest.raises(NotFoundError):
        await users.update_profile("ghost", UpdateProfileRequest(bio="hi"))


@pytest.mark.asyncio
async def test_get_users_batches_and_drops_failed_batches(users, store, make_user, monkeypatch):
    """Test that enrichment lookups span the fan-in limit and degrade instead of failing."""
    ids = [f"u{i:02d}" for i in range(15)]
    for user_id in ids:
        await make_user(user_id)

    found = await users.get_users(ids + ["ghost"])
    assert sorted(found) == ids

    original = store.query

    async def flaky_query(collection, where=None, **kwargs):
        if any(f == Filter("id", "in", ids[:10]) for f in where or []):
            raise UnavailableError("batch failed")
        return await original(collection, where=where, **kwargs)

    monkeypatch.setattr(store, "query", flaky_query)
    assert sorted(await users.get_users(ids)) == ids[10:]


@pytest.mark.asyncio
async def test_discover_users_lists_public_profiles_by_username(users, make_user):
    await make_user("u1", username="mira")
    await make_user("u2", username="ade")
    await make_user("u3", username="zoe", private=True)
    await make_user("u4", username="bo")
    await make_user("u5", username="cal")
    await make_user("me", username="ben")

    first = await users.discover_users("me", page_size=2)
    assert [u.username for u in first.items] == ["ade", "bo"]
    assert first.next_cursor is not None

    second = await users.discover_users("me", page_size=2, cursor=first.next_cursor)
    assert [u.username for u in second.items] == ["cal", "mira"]

    rest = await users.discover_users("me", page_size=2, cursor=second.next_cursor)
    assert rest.items == []
    assert rest.next_cursor is None


@pytest.mark.asyncio
async def test_discover_users_rejects_bad_paging(users, make_user):
    await make_user("u1")
    with pytest.raises(ValidationError):
        await users.discover_users("u1", page_size=500)
    with pytest.raises(ValidationError):
        await users.discover_users("u1", cursor="not-a-cursor")
