import pytest
from fastapi.testclient import TestClient

from tasting_notes.main import app


@pytest.fixture
def client(store):
    with TestClient(app) as test_client:
        yield test_client


def as_user(user_id):
    return {"X-User-Id": user_id}


def register(client, user_id, **fields):
    body = {"username": user_id.upper(), "email": f"{user_id}@x.com", **fields}
    response = client.post("/users", json=body, headers=as_user(user_id))
    assert response.status_code == 201, response.text
    return response.json()


NOTE_BODY = {
    "type": "recipe",
    "title": "Khao soi",
    "rating": 5,
    "date": "2024-05-01T12:00:00Z",
    "notes": "Coconut curry noodles",
}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "backend": "memory"}


def test_missing_identity_is_unauthorized(client):
    assert client.get("/notes/mine").status_code == 401


def test_register_and_profile(client):
    """Test registration, duplicate detection and profile updates."""
    created = register(client, "u1")
    assert created["id"] == "u1"
    assert created["settings"]["is_private"] is False

    duplicate = client.post("/users", json={"username": "Again"}, headers=as_user("u1"))
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "user_exists"

    taken = client.post("/users", json={"username": "Copy", "email": "U1@x.com"}, headers=as_user("u9"))
    assert taken.status_code == 409
    assert taken.json()["code"] == "email_taken"

    updated = client.patch("/users/me", json={"dietary_preferences": ["Vegan"]}, headers=as_user("u1"))
    assert updated.status_code == 200
    assert updated.json()["dietary_preferences"] == ["Vegan"]

    invalid = client.patch("/users/me", json={"dietary_preferences": ["Carnivore"]}, headers=as_user("u1"))
    assert invalid.status_code == 422
    assert invalid.json()["code"] == "validation_error"

    assert client.get("/users/u1", headers=as_user("u2")).json()["username"] == "U1"
    assert client.get("/users/ghost", headers=as_user("u1")).json()["code"] == "not_found"


def test_note_access_errors_are_distinguishable(client):
    register(client, "u1")
    register(client, "u2")
    note = client.post("/notes", json=NOTE_BODY, headers=as_user("u1")).json()

    hidden = client.get(f"/notes/{note['id']}", headers=as_user("u2"))
    assert hidden.status_code == 403
    assert hidden.json()["code"] == "permission_denied"

    missing = client.get("/notes/note_missing", headers=as_user("u2"))
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"

    liked = client.post(f"/notes/{note['id']}/like", headers=as_user("u2"))
    assert liked.status_code == 403


def test_share_follow_and_feeds(client):
    """Test sharing by email, the shared feed and follow-gated friends notes over HTTP."""
    register(client, "u1")
    register(client, "u2")

    shared = client.post("/notes", json={**NOTE_BODY, "shared_with": ["u2@x.com"]}, headers=as_user("u1"))
    assert shared.status_code == 201
    friends = client.post("/notes", json={**NOTE_BODY, "visibility": "friends"}, headers=as_user("u1"))

    feed = client.get("/notes/shared", headers=as_user("u2")).json()
    assert [n["id"] for n in feed["items"]] == [shared.json()["id"]]
    assert feed["partial"] is False

    assert client.get("/notifications/unread-count", headers=as_user("u2")).json() == {"count": 1}

    follow = client.post("/users/u1/follow", headers=as_user("u2"))
    assert follow.json() == {"status": "following", "request_id": None}
    assert client.get("/users/u1/follow-status", headers=as_user("u2")).json() == {"status": "following"}

    feed = client.get("/notes/shared", headers=as_user("u2")).json()
    assert {n["id"] for n in feed["items"]} == {shared.json()["id"], friends.json()["id"]}

    again = client.post("/users/u1/follow", headers=as_user("u2"))
    assert again.status_code == 409
    assert again.json()["code"] == "already_following"

    activity = client.get("/activity", headers=as_user("u2")).json()
    assert len(activity["items"]) == 2


def test_follow_request_flow(client):
    register(client, "u1")
    register(client, "u2", is_private=True)

    requested = client.post("/users/u2/follow", headers=as_user("u1")).json()
    assert requested["status"] == "requested"

    duplicate = client.post("/users/u2/follow", headers=as_user("u1"))
    assert duplicate.json()["code"] == "request_already_pending"

    pending = client.get("/follow-requests", headers=as_user("u2")).json()
    assert [p["requester"]["id"] for p in pending] == ["u1"]

    response = client.post(
        f"/follow-requests/{requested['request_id']}/respond", json={"decision": "accepted"}, headers=as_user("u2")
    )
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    repeat = client.post(
        f"/follow-requests/{requested['request_id']}/respond", json={"decision": "rejected"}, headers=as_user("u2")
    )
    assert repeat.status_code == 409
    assert repeat.json()["code"] == "invalid_request_state"

    followers = client.get("/users/u2/followers", headers=as_user("u1")).json()
    assert [f["id"] for f in followers] == ["u1"]


def test_invalid_cursor_and_filters(client):
    register(client, "u1")

    bad_cursor = client.get("/notes/shared", params={"cursor": "not-a-cursor"}, headers=as_user("u1"))
    assert bad_cursor.status_code == 422
    assert bad_cursor.json()["code"] == "validation_error"

    bad_rating = client.get("/notes/mine", params={"rating": 9}, headers=as_user("u1"))
    assert bad_rating.status_code == 422


def test_user_directory_lists_public_profiles(client):
    register(client, "u1", username="mira")
    register(client, "u2", username="ade")
    register(client, "u3", username="zoe", is_private=True)
    register(client, "u4", username="bo")

    first = client.get("/users", params={"page_size": 2}, headers=as_user("u1"))
    assert first.status_code == 200
    body = first.json()
    assert [u["username"] for u in body["items"]] == ["ade", "bo"]

    rest = client.get("/users", params={"page_size": 2, "cursor": body["next_cursor"]}, headers=as_user("u1")).json()
    assert rest["items"] == []
    assert rest["next_cursor"] is None

    bad = client.get("/users", params={"cursor": "garbage"}, headers=as_user("u1"))
    assert bad.status_code == 422


def test_catalog_autocomplete(client):
    register(client, "u1")
    headers = as_user("u1")

    created = client.post("/catalog/restaurants", json={"name": "Chez Panisse", "address": "Berkeley"}, headers=headers)
    assert created.status_code == 201
    restaurant = created.json()
    again = client.post("/catalog/restaurants", json={"name": "chez panisse"}, headers=headers).json()
    assert again["id"] == restaurant["id"]

    found = client.get("/catalog/restaurants", params={"q": "CHEZ"}, headers=headers).json()
    assert [r["name"] for r in found] == ["Chez Panisse"]
    assert client.get(f"/catalog/restaurants/{restaurant['id']}", headers=headers).json()["address"] == "Berkeley"
    assert client.get("/catalog/restaurants/rst_missing", headers=headers).status_code == 404

    item = client.post(
        f"/catalog/restaurants/{restaurant['id']}/menu-items", json={"name": "Galette", "price": 14.5}, headers=headers
    )
    assert item.status_code == 201
    by_name = client.get("/catalog/menu-items", params={"q": "gal", "restaurant": "Chez Panisse"}, headers=headers)
    assert [i["id"] for i in by_name.json()] == [item.json()["id"]]
    missing = client.post("/catalog/restaurants/rst_missing/menu-items", json={"name": "Soup"}, headers=headers)
    assert missing.status_code == 404

    creator = client.post("/catalog/recipe-creators", json={"name": "Serious Eats"}, headers=headers).json()
    assert creator["type"] == "website"
    found = client.get("/catalog/recipe-creators", params={"q": "serious"}, headers=headers).json()
    assert [c["id"] for c in found] == [creator["id"]]

    blank = client.post("/catalog/recipe-creators", json={"name": "  "}, headers=headers)
    assert blank.status_code == 422
    assert client.get("/catalog/restaurants", headers=headers).json() == []
