from app.auth.models import RoleEnum, UserStatus
from app.moderation.services import IncidentService


async def test_admin_routes_require_admin(client, make_user, auth_headers):
    member = await make_user(RoleEnum.MEMBRE)
    assert (await client.get("/users", headers=auth_headers(member))).status_code == 403
    assert (await client.get("/users")).status_code == 401


async def test_list_users_with_search_and_filters(client, admin, make_user, auth_headers):
    await make_user(RoleEnum.MEMBRE, first_name="Karim", email="karim@uniclubs.tn")
    await make_user(RoleEnum.NON_MEMBRE, first_name="Leila", email="leila@uniclubs.tn")
    headers = auth_headers(admin)

    everyone = (await client.get("/users", headers=headers)).json()
    assert everyone["total"] == 3

    search = (await client.get("/users", headers=headers, params={"search": "karim"})).json()
    assert [u["email"] for u in search["items"]] == ["karim@uniclubs.tn"]

    members = (await client.get("/users", headers=headers, params={"role": "NON_MEMBRE"})).json()
    assert [u["first_name"] for u in members["items"]] == ["Leila"]

    paged = (await client.get("/users", headers=headers, params={"per_page": 2, "page": 2})).json()
    assert paged["pages"] == 2
    assert len(paged["items"]) == 1


async def test_admin_update_and_stats(client, admin, make_user, auth_headers, mongo_db):
    user = await make_user(RoleEnum.NON_MEMBRE)
    headers = auth_headers(admin)

    response = await client.put(f"/users/{user.id}", headers=headers, json={"role": "MEMBRE", "status": "inactive"})
    assert response.status_code == 200
    assert response.json()["role"] == "MEMBRE"
    assert response.json()["status"] == "inactive"

    stats = (await client.get("/users/stats", headers=headers)).json()
    assert stats["total"] == 2
    assert stats["by_role"]["MEMBRE"] == 1
    assert stats["by_role"]["PRESIDENT_CLUB"] == 0
    assert stats["by_status"]["inactive"] == 1

    logs = await mongo_db["activity_logs"].find({"action": "user_updated"}).to_list(length=None)
    assert logs[0]["target_id"] == user.id


async def test_admin_cannot_delete_self_or_a_president(client, admin, make_user, make_club, auth_headers):
    president = await make_user(RoleEnum.PRESIDENT_CLUB)
    await make_club(president)
    headers = auth_headers(admin)

    assert (await client.delete(f"/users/{admin.id}", headers=headers)).status_code == 400
    assert (await client.delete(f"/users/{president.id}", headers=headers)).status_code == 409

    other = await make_user(RoleEnum.MEMBRE)
    assert (await client.delete(f"/users/{other.id}", headers=headers)).status_code == 200
    assert (await client.get(f"/users/{other.id}", headers=headers)).status_code == 404


async def test_each_warning_is_emailed_and_third_deactivates(client, admin, make_user, auth_headers, outbox):
    user = await make_user(RoleEnum.MEMBRE)
    headers = auth_headers(admin)

    for expected in (1, 2):
        body = (await client.post(f"/users/{user.id}/warnings", headers=headers)).json()
        assert body["warning_count"] == expected
        assert body["status"] == UserStatus.ACTIVE.value
        assert outbox[-1]["to"] == user.email
        assert outbox[-1]["subject"].endswith(f"{expected}/3")
        assert "désactivé" not in outbox[-1]["body"]

    third = (await client.post(f"/users/{user.id}/warnings", headers=headers)).json()
    assert third["status"] == UserStatus.INACTIVE.value
    assert [m["subject"][-3:] for m in outbox] == ["1/3", "2/3", "3/3"]
    assert "désactivé" in outbox[-1]["body"]

    reset = (await client.delete(f"/users/{user.id}/warnings", headers=headers)).json()
    assert reset["warning_count"] == 0
    assert reset["status"] == UserStatus.ACTIVE.value


async def test_profile_update(client, make_user, auth_headers):
    user = await make_user(RoleEnum.MEMBRE)
    response = await client.put(
        "/users/me/profile",
        headers=auth_headers(user),
        json={"first_name": "Nour", "phone": "+21698123456"},
    )
    assert response.status_code == 200
    assert response.json()["first_name"] == "Nour"
    assert response.json()["phone"] == "+21698123456"

    invalid = await client.put("/users/me/profile", headers=auth_headers(user), json={"phone": "123"})
    assert invalid.status_code == 422


async def test_profane_name_is_rejected_and_logged(client, make_user, auth_headers):
    user = await make_user(RoleEnum.MEMBRE)
    response = await client.put("/users/me/profile", headers=auth_headers(user), json={"last_name": "Merde"})
    assert response.status_code == 422

    incidents = await IncidentService.list_for_user(user.id)
    assert len(incidents) == 1
    assert incidents[0]["field"] == "Last name"
    assert incidents[0]["severity"] == "High"
    assert incidents[0]["action"] == "Profile update rejected"
    assert "Merde" not in incidents[0]["censored_text"]

    me = (await client.get("/auth/me", headers=auth_headers(user))).json()
    assert me["warning_count"] == 1
    assert me["last_name"] != "Merde"


async def test_avatar_upload(client, make_user, auth_headers):
    user = await make_user(RoleEnum.MEMBRE)
    response = await client.post(
        "/users/me/avatar",
        headers=auth_headers(user),
        files={"file": ("avatar.png", b"\x89PNG fake", "image/png")},
    )
    assert response.status_code == 200
    assert response.json()["profile_picture"].startswith("/static/upload/profileImage/avatar_")

    refused = await client.post(
        "/users/me/avatar",
        headers=auth_headers(user),
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert refused.status_code == 400


async def test_updates_reject_null_for_required_fields(client, admin, make_user, auth_headers):
    user = await make_user(RoleEnum.MEMBRE)
    headers = auth_headers(admin)

    for field in ("role", "status", "first_name"):
        response = await client.put(f"/users/{user.id}", headers=headers, json={field: None})
        assert response.status_code == 422, field

    own = await client.put("/users/me/profile", headers=auth_headers(user), json={"last_name": None})
    assert own.status_code == 422

    me = (await client.get("/auth/me", headers=auth_headers(user))).json()
    assert me["role"] == RoleEnum.MEMBRE.value
    assert me["last_name"] == user.last_name
