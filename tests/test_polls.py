from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from app.auth.models import RoleEnum
from app.polls.models import Sondage, Reponse, FLAGGED_PREFIX
from app.polls.services import result_color


@pytest.fixture
async def poll_setup(client, make_user, make_club, add_member, auth_headers):
    president = await make_user(RoleEnum.PRESIDENT_CLUB)
    club = await make_club(president)
    member = await make_user(RoleEnum.MEMBRE)
    await add_member(member, club)
    response = await client.post("/polls", headers=auth_headers(president), json={
        "question": "Quel jour pour la sortie ?",
        "club_id": club.id,
        "options": ["Samedi", "Dimanche", "Vendredi"],
    })
    assert response.status_code == 201
    return president, club, member, response.json()


def test_result_colors():
    assert result_color(0) == "#e74c3c"
    assert result_color(20) == "#e74c3c"
    assert result_color(20.01) == "#f39c12"
    assert result_color(60) == "#f1c40f"
    assert result_color(80) == "#2ecc71"
    assert result_color(100) == "#3498db"


async def test_poll_validation(client, make_user, make_club, auth_headers):
    president = await make_user(RoleEnum.PRESIDENT_CLUB)
    club = await make_club(president)
    headers = auth_headers(president)

    cases = [
        {"question": "Oui?", "options": ["Oui", "Non"]},
        {"question": "Question valide", "options": ["Seule"]},
        {"question": "Question valide", "options": ["Oui", "x"]},
        {"question": "Question valide", "options": ["Oui", "oui "]},
    ]
    for case in cases:
        response = await client.post("/polls", headers=headers, json={"club_id": club.id, **case})
        assert response.status_code == 422, case


async def test_only_president_or_admin_creates_polls(client, admin, poll_setup, auth_headers):
    _, club, member, _ = poll_setup
    payload = {"question": "Nouvelle question", "club_id": club.id, "options": ["A1", "B2"]}

    assert (await client.post("/polls", headers=auth_headers(member), json=payload)).status_code == 403
    assert (await client.post("/polls", headers=auth_headers(admin), json=payload)).status_code == 201


async def test_vote_protocol(client, poll_setup, auth_headers):
    _, _, member, poll = poll_setup
    headers = auth_headers(member)
    samedi, dimanche, _ = (o["id"] for o in poll["options"])
    url = f"/polls/{poll['id']}/vote"

    assert (await client.put(url, headers=headers, json={"choix_id": dimanche, "confirm": True})).status_code == 404
    assert (await client.delete(url, headers=headers)).status_code == 404

    first = await client.post(url, headers=headers, json={"choix_id": samedi})
    assert first.status_code == 201
    assert first.json()["choix_id"] == samedi

    assert (await client.post(url, headers=headers, json={"choix_id": dimanche})).status_code == 409

    unconfirmed = await client.put(url, headers=headers, json={"choix_id": dimanche})
    assert unconfirmed.status_code == 400

    same = await client.put(url, headers=headers, json={"choix_id": samedi, "confirm": True})
    assert same.status_code == 409

    changed = await client.put(url, headers=headers, json={"choix_id": dimanche, "confirm": True})
    assert changed.status_code == 200
    assert changed.json()["choix_id"] == dimanche

    current = (await client.get(url, headers=headers)).json()
    assert current["choix_id"] == dimanche

    assert (await client.delete(url, headers=headers)).status_code == 204
    assert (await client.get(url, headers=headers)).json() is None


async def test_vote_requires_membership_and_matching_option(client, db, make_user, poll_setup, auth_headers):
    president, club, member, poll = poll_setup
    outsider = await make_user(RoleEnum.NON_MEMBRE)
    option = poll["options"][0]["id"]
    url = f"/polls/{poll['id']}/vote"

    assert (await client.post(url, headers=auth_headers(outsider), json={"choix_id": option})).status_code == 403
    assert (await client.post(url, headers=auth_headers(member), json={"choix_id": 9999})).status_code == 422
    assert (await client.post(url, headers=auth_headers(president), json={"choix_id": option})).status_code == 201

    votes = (await db.execute(select(Reponse).where(Reponse.sondage_id == poll["id"]))).scalars().all()
    assert [v.user_id for v in votes] == [president.id]


async def test_results_and_detail(client, make_user, poll_setup, add_member, auth_headers):
    president, club, member, poll = poll_setup
    samedi, dimanche, vendredi = (o["id"] for o in poll["options"])
    third = await make_user(RoleEnum.MEMBRE)
    await add_member(third, club)

    url = f"/polls/{poll['id']}/vote"
    await client.post(url, headers=auth_headers(member), json={"choix_id": samedi})
    await client.post(url, headers=auth_headers(third), json={"choix_id": samedi})
    await client.post(url, headers=auth_headers(president), json={"choix_id": dimanche})

    results = (await client.get(f"/polls/{poll['id']}/results")).json()
    assert results["total_votes"] == 3
    by_id = {o["id"]: o for o in results["options"]}
    assert by_id[samedi]["percentage"] == 66.67
    assert by_id[samedi]["color"] == "#2ecc71"
    assert by_id[dimanche]["percentage"] == 33.33
    assert by_id[vendredi]["votes"] == 0
    assert by_id[vendredi]["color"] == "#e74c3c"

    anonymous = (await client.get(f"/polls/{poll['id']}")).json()
    assert anonymous["user_vote"] is None
    detail = (await client.get(f"/polls/{poll['id']}", headers=auth_headers(member))).json()
    assert detail["user_vote"] == samedi
    assert detail["results"]["total_votes"] == 3


async def test_update_poll_keeps_voted_options(client, poll_setup, auth_headers):
    president, _, member, poll = poll_setup
    samedi, dimanche, vendredi = (o["id"] for o in poll["options"])
    await client.post(f"/polls/{poll['id']}/vote", headers=auth_headers(member), json={"choix_id": samedi})
    url = f"/polls/{poll['id']}"

    blocked = await client.put(url, headers=auth_headers(president), json={
        "options": [{"id": dimanche, "content": "Dimanche"}, {"id": vendredi, "content": "Vendredi"}],
    })
    assert blocked.status_code == 409

    denied = await client.put(url, headers=auth_headers(member), json={"question": "Une autre question"})
    assert denied.status_code == 403

    updated = await client.put(url, headers=auth_headers(president), json={
        "question": "Quel jour finalement ?",
        "options": [
            {"id": samedi, "content": "Samedi matin"},
            {"id": dimanche, "content": "Dimanche"},
            {"content": "Lundi"},
        ],
    })
    assert updated.status_code == 200
    body = updated.json()
    assert body["question"] == "Quel jour finalement ?"
    assert [o["content"] for o in body["options"]] == ["Samedi matin", "Dimanche", "Lundi"]


async def test_delete_poll_removes_votes_and_comments(client, db, poll_setup, auth_headers):
    president, _, member, poll = poll_setup
    await client.post(f"/polls/{poll['id']}/vote", headers=auth_headers(member), json={"choix_id": poll["options"][0]["id"]})
    await client.post(f"/polls/{poll['id']}/comments", headers=auth_headers(member), json={"content": "Samedi c'est parfait"})

    assert (await client.delete(f"/polls/{poll['id']}", headers=auth_headers(member))).status_code == 403
    assert (await client.delete(f"/polls/{poll['id']}", headers=auth_headers(president))).status_code == 204
    assert (await client.get(f"/polls/{poll['id']}")).status_code == 404
    assert (await db.execute(select(Reponse))).scalars().all() == []


async def test_list_polls_pagination_and_filters(client, db, make_user, make_club, auth_headers):
    president = await make_user(RoleEnum.PRESIDENT_CLUB)
    sport = await make_club(president, name="Club Sport")
    music = await make_club(president, name="Club Musique")
    headers = auth_headers(president)

    for i in range(4):
        await client.post("/polls", headers=headers, json={
            "question": f"Entraînement numéro {i}", "club_id": sport.id, "options": ["Oui", "Non"],
        })
    await client.post("/polls", headers=headers, json={
        "question": "Prochain concert ?", "club_id": music.id, "options": ["Jazz", "Rock"],
    })

    first_page = (await client.get("/polls")).json()
    assert first_page["per_page"] == 3
    assert first_page["total"] == 5
    assert first_page["pages"] == 2
    assert first_page["items"][0]["question"] == "Prochain concert ?"

    by_club_name = (await client.get("/polls", params={"search": "Musique"})).json()
    assert [p["question"] for p in by_club_name["items"]] == ["Prochain concert ?"]

    by_club = (await client.get("/polls", params={"club_id": sport.id, "per_page": 10})).json()
    assert by_club["total"] == 4

    old = (await db.execute(select(Sondage).where(Sondage.club_id == music.id))).scalars().one()
    old.created_at = datetime.utcnow() - timedelta(days=30)
    await db.commit()
    recent = (await client.get("/polls", params={"days": 7, "per_page": 10})).json()
    assert recent["total"] == 4


async def test_poll_statistics(client, admin, make_user, poll_setup, add_member, auth_headers):
    president, club, member, poll = poll_setup
    other = await make_user(RoleEnum.MEMBRE, first_name="Rania")
    await add_member(other, club)
    option = poll["options"][0]["id"]
    await client.post(f"/polls/{poll['id']}/vote", headers=auth_headers(member), json={"choix_id": option})
    await client.post(f"/polls/{poll['id']}/vote", headers=auth_headers(other), json={"choix_id": option})
    await client.post(f"/polls/{poll['id']}/comments", headers=auth_headers(other), json={"content": "Bonne idée"})

    stats = (await client.get("/polls/stats", headers=auth_headers(admin))).json()
    assert stats == {"total_polls": 1, "total_votes": 2, "total_comments": 1, "polls_last_7_days": 1}

    participation = (await client.get(f"/polls/clubs/{club.id}/participation", headers=auth_headers(member))).json()
    assert participation["total_votes"] == 2
    assert participation["unique_participants"] == 2
    assert participation["most_popular_poll"]["id"] == poll["id"]

    top = (await client.get(f"/polls/clubs/{club.id}/top-respondents", headers=auth_headers(member))).json()
    assert {t["user_id"] for t in top} == {member.id, other.id}


async def test_comments_crud(client, admin, make_user, poll_setup, auth_headers):
    _, _, member, poll = poll_setup
    other = await make_user(RoleEnum.MEMBRE)
    url = f"/polls/{poll['id']}/comments"

    created = []
    for text in ("Premier", "Deuxième", "Troisième", "Quatrième"):
        response = await client.post(url, headers=auth_headers(member), json={"content": text})
        assert response.status_code == 201
        created.append(response.json())
    assert created[0]["flagged"] is False

    page = (await client.get(url)).json()
    assert page["per_page"] == 3
    assert page["total"] == 4

    assert (await client.post(url, headers=auth_headers(member), json={"content": "   "})).status_code == 422

    comment_id = created[0]["id"]
    denied = await client.put(f"/polls/comments/{comment_id}", headers=auth_headers(other), json={"content": "Hack"})
    assert denied.status_code == 403
    edited = await client.put(f"/polls/comments/{comment_id}", headers=auth_headers(member), json={"content": "Modifié"})
    assert edited.json()["content"] == "Modifié"
    assert edited.json()["updated_at"] is not None

    assert (await client.delete(f"/polls/comments/{comment_id}", headers=auth_headers(other))).status_code == 403
    assert (await client.delete(f"/polls/comments/{comment_id}", headers=auth_headers(admin))).status_code == 204

    listing = (await client.get("/polls/comments", headers=auth_headers(admin), params={"search": "Deux"})).json()
    assert [c["content"] for c in listing["items"]] == ["Deuxième"]


async def test_update_cannot_collapse_options(client, make_user, make_club, auth_headers):
    president = await make_user(RoleEnum.PRESIDENT_CLUB)
    club = await make_club(president)
    headers = auth_headers(president)
    poll = (await client.post("/polls", headers=headers, json={
        "question": "Quel jour de réunion ?", "club_id": club.id, "options": ["Lundi", "Mardi"],
    })).json()
    lundi = poll["options"][0]["id"]

    repeated = await client.put(f"/polls/{poll['id']}", headers=headers, json={
        "options": [{"id": lundi, "content": "Jeudi"}, {"id": lundi, "content": "Vendredi"}],
    })
    assert repeated.status_code == 422

    detail = (await client.get(f"/polls/{poll['id']}")).json()
    assert [o["content"] for o in detail["options"]] == ["Lundi", "Mardi"]


async def test_comment_cannot_impersonate_moderation_notice(client, poll_setup, auth_headers):
    _, _, member, poll = poll_setup
    url = f"/polls/{poll['id']}/comments"

    forged = await client.post(url, headers=auth_headers(member), json={"content": f"{FLAGGED_PREFIX} (pour rire)"})
    assert forged.status_code == 422

    comment = (await client.post(url, headers=auth_headers(member), json={"content": "Samedi me va"})).json()
    assert comment["flagged"] is False
    edited = await client.put(
        f"/polls/comments/{comment['id']}", headers=auth_headers(member), json={"content": FLAGGED_PREFIX}
    )
    assert edited.status_code == 422
