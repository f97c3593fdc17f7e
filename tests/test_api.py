import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from chatapp.auth import create_access_token
from chatapp.database import get_db
from chatapp.dependencies import get_connection_manager
from chatapp.main import app
from chatapp.storage import get_storage
from tests.conftest import FakeWebSocket


@pytest_asyncio.fixture
async def client(session_maker, storage, manager):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_connection_manager] = lambda: manager
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_for(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


# auth

@pytest.mark.asyncio
async def test_signup_login_check_and_refresh(client):
    response = await client.post("/api/v1/auth/signup", data={
        "full_name": "Erin", "email": "erin@example.com", "password": "secret123",
    })
    assert response.status_code == 201
    assert response.json()["email"] == "erin@example.com"

    duplicate = await client.post("/api/v1/auth/signup", data={
        "full_name": "Erin", "email": "other@example.com", "password": "secret123",
    })
    assert duplicate.status_code == 409
    assert duplicate.json()["kind"] == "ConflictError"

    bad_login = await client.post("/api/v1/auth/login", json={"email": "erin@example.com", "password": "nope"})
    assert bad_login.status_code == 401
    assert bad_login.json()["kind"] == "AuthError"

    login = await client.post("/api/v1/auth/login", json={"email": "erin@example.com", "password": "secret123"})
    assert login.status_code == 200
    tokens = login.json()
    assert tokens["user"]["full_name"] == "Erin"
    assert "accessToken" in login.cookies

    client.cookies.clear()
    check = await client.get("/api/v1/auth/check", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert check.status_code == 200
    assert check.json()["email"] == "erin@example.com"

    refreshed = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    client.cookies.clear()
    tokens = refreshed.json()

    logout = await client.post("/api/v1/auth/logout", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert logout.status_code == 200
    client.cookies.clear()

    # logout revokes the stored refresh token
    reused = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert reused.status_code == 401


@pytest.mark.asyncio
async def test_signup_requires_all_fields(client):
    response = await client.post("/api/v1/auth/signup", data={"full_name": "X", "email": "", "password": "p"})
    assert response.status_code == 400
    assert response.json()["kind"] == "ValidationError"


@pytest.mark.asyncio
async def test_requests_without_credentials_are_rejected(client):
    response = await client.get("/api/v1/groups/sidebar")
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "kind": "AuthError",
        "message": "Unauthorized request",
        "statusCode": 401,
    }


@pytest.mark.asyncio
async def test_users_sidebar_excludes_caller(client, users):
    response = await client.get("/api/v1/users/sidebar", headers=auth_for(users[0]))
    assert response.status_code == 200
    assert sorted(u["full_name"] for u in response.json()) == ["bob", "carol", "dave"]


# groups

@pytest.mark.asyncio
async def test_group_lifecycle(client, users):
    alice, bob, carol = users[0], users[1], users[2]

    created = await client.post("/api/v1/groups/", data={"name": " Hikers "}, headers=auth_for(alice))
    assert created.status_code == 201
    group = created.json()
    assert group["name"] == "Hikers"
    assert group["total_members"] == 1
    group_id = group["id"]

    added = await client.post(
        f"/api/v1/groups/{group_id}/members", json={"user_ids": [bob.id, carol.id]}, headers=auth_for(alice)
    )
    assert added.status_code == 200
    assert added.json()["total_members"] == 3
    assert added.json()["members"][1]["user"]["full_name"] == "bob"

    forbidden = await client.post(
        f"/api/v1/groups/{group_id}/members", json={"user_ids": [users[3].id]}, headers=auth_for(bob)
    )
    assert forbidden.status_code == 403
    assert forbidden.json()["kind"] == "PermissionError"

    bad_role = await client.patch(
        f"/api/v1/groups/{group_id}/members/{bob.id}/role", json={"new_role": "owner"}, headers=auth_for(alice)
    )
    assert bad_role.status_code == 400

    kicked = await client.delete(f"/api/v1/groups/{group_id}/members/{carol.id}", headers=auth_for(alice))
    assert kicked.status_code == 200
    assert kicked.json()["total_members"] == 2

    creator = await client.delete(f"/api/v1/groups/{group_id}/members/{alice.id}", headers=auth_for(alice))
    assert creator.status_code == 400

    left = await client.post(f"/api/v1/groups/{group_id}/leave", headers=auth_for(alice))
    assert left.status_code == 200
    body = left.json()
    assert body["group_deleted"] is False
    assert [(m["user_id"], m["role"]) for m in body["group"]["members"]] == [(bob.id, "admin")]

    last = await client.post(f"/api/v1/groups/{group_id}/leave", headers=auth_for(bob))
    assert last.json() == {"group_deleted": True, "group": None}

    gone = await client.get(f"/api/v1/groups/{group_id}", headers=auth_for(bob))
    assert gone.status_code == 404
    assert gone.json()["kind"] == "NotFoundError"


@pytest.mark.asyncio
async def test_update_group_details_and_avatar(client, storage, users):
    alice = users[0]
    group_id = (await client.post("/api/v1/groups/", data={"name": "Team"}, headers=auth_for(alice))).json()["id"]

    renamed = await client.patch(
        f"/api/v1/groups/{group_id}", json={"name": "Crew", "description": "weekend"}, headers=auth_for(alice)
    )
    assert renamed.status_code == 200
    assert renamed.json()["description"] == "weekend"

    blank = await client.patch(f"/api/v1/groups/{group_id}", json={"name": "Crew", "description": "  "},
                               headers=auth_for(alice))
    assert blank.status_code == 400

    avatar = await client.patch(
        f"/api/v1/groups/{group_id}/avatar",
        files={"group_image": ("cover.png", b"png-bytes", "image/png")},
        headers=auth_for(alice),
    )
    assert avatar.status_code == 200
    assert avatar.json()["image_url"].endswith("cover.png")


@pytest.mark.asyncio
async def test_delete_group_owner_only(client, users):
    alice, bob = users[0], users[1]
    group_id = (await client.post("/api/v1/groups/", data={"name": "Team"}, headers=auth_for(alice))).json()["id"]
    await client.post(f"/api/v1/groups/{group_id}/members", json={"user_ids": [bob.id]}, headers=auth_for(alice))
    await client.patch(f"/api/v1/groups/{group_id}/members/{bob.id}/role", json={"new_role": "admin"},
                       headers=auth_for(alice))

    denied = await client.delete(f"/api/v1/groups/{group_id}", headers=auth_for(bob))
    assert denied.status_code == 403

    deleted = await client.delete(f"/api/v1/groups/{group_id}", headers=auth_for(alice))
    assert deleted.status_code == 200
    assert deleted.json() == {"group_id": group_id}


# messages

@pytest.mark.asyncio
async def test_send_direct_message_with_image(client, manager, users):
    alice, bob = users[0], users[1]
    bob_ws = FakeWebSocket()
    await manager.connect(bob_ws, bob.id)

    response = await client.post(
        f"/api/v1/messages/send/{bob.id}",
        data={"text": "look"},
        files=[("image", ("a.png", b"aaa", "image/png")), ("image", ("b.png", b"bbb", "image/png"))],
        headers=auth_for(alice),
    )
    assert response.status_code == 201
    message = response.json()
    assert message["text"] == "look"
    assert len(message["images"]) == 2
    assert bob_ws.events("newMessage")[0]["data"] == message

    history = await client.get(f"/api/v1/messages/{alice.id}", headers=auth_for(bob))
    assert [m["id"] for m in history.json()] == [message["id"]]


@pytest.mark.asyncio
async def test_send_empty_direct_message(client, users):
    response = await client.post(f"/api/v1/messages/send/{users[1].id}", data={"text": " "},
                                 headers=auth_for(users[0]))
    assert response.status_code == 400
    assert response.json()["message"] == "Message must have either text or image"


@pytest.mark.asyncio
async def test_group_messages_roundtrip(client, manager, users):
    alice, bob = users[0], users[1]
    group_id = (await client.post("/api/v1/groups/", data={"name": "Team"}, headers=auth_for(alice))).json()["id"]
    await client.post(f"/api/v1/groups/{group_id}/members", json={"user_ids": [bob.id]}, headers=auth_for(alice))

    bob_ws = FakeWebSocket()
    conn = await manager.connect(bob_ws, bob.id)
    manager.join_room(conn, group_id)

    sent = await client.post(f"/api/v1/group-messages/{group_id}/messages", data={"text": "hello"},
                             headers=auth_for(alice))
    assert sent.status_code == 201
    assert bob_ws.events("newGroupMessage")[0]["data"]["id"] == sent.json()["id"]

    history = await client.get(f"/api/v1/group-messages/{group_id}/messages", headers=auth_for(bob))
    assert [m["text"] for m in history.json()] == ["hello"]

    outsider = await client.get(f"/api/v1/group-messages/{group_id}/messages", headers=auth_for(users[2]))
    assert outsider.status_code == 403


@pytest.mark.asyncio
async def test_online_users_endpoint(client, manager, users):
    await manager.connect(FakeWebSocket(), users[0].id)
    response = await client.get("/api/v1/ws/online-users")
    assert response.json() == {"online_users": [users[0].id], "count": 1}
