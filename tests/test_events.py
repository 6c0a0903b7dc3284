import json
from datetime import datetime, timedelta

import pytest

from app.auth.models import RoleEnum
from app.clubs.models import ClubStatus
from app.competitions.models import Competition, GoalType, CompetitionStatus
from app.events.models import Evenement


def event_payload(club_id: int, **overrides) -> dict:
    start = datetime.utcnow() + timedelta(days=2)
    payload = {
        "name": "Soirée jeux",
        "type": "open",
        "description": "Jeux de société",
        "location": "Salle B12",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=3)).isoformat(),
        "club_id": club_id,
    }
    payload.update(overrides)
    return {"event_data": json.dumps(payload)}


@pytest.fixture
async def club_setup(make_user, make_club):
    president = await make_user(RoleEnum.PRESIDENT_CLUB)
    club = await make_club(president)
    return president, club


async def test_create_event_requires_manager_and_accepted_club(client, make_user, make_club, club_setup, auth_headers):
    president, club = club_setup
    outsider = await make_user(RoleEnum.MEMBRE)

    denied = await client.post("/events", headers=auth_headers(outsider), data=event_payload(club.id))
    assert denied.status_code == 403

    pending = await make_club(president, ClubStatus.EN_ATTENTE)
    refused = await client.post("/events", headers=auth_headers(president), data=event_payload(pending.id))
    assert refused.status_code == 409

    created = await client.post(
        "/events",
        headers=auth_headers(president),
        data=event_payload(club.id),
        files={"image": ("affiche.png", b"png-bytes", "image/png")},
    )
    assert created.status_code == 201
    body = created.json()
    assert body["club"]["id"] == club.id
    assert body["image"].startswith("/static/upload/events/")


async def test_create_event_validation(client, club_setup, auth_headers):
    president, club = club_setup
    start = datetime.utcnow() + timedelta(days=1)

    reversed_dates = await client.post("/events", headers=auth_headers(president), data=event_payload(
        club.id, start_date=start.isoformat(), end_date=(start - timedelta(hours=1)).isoformat()
    ))
    assert reversed_dates.status_code == 422

    broken = await client.post("/events", headers=auth_headers(president), data={"event_data": "{oops"})
    assert broken.status_code == 422

    no_category = await client.post("/events", headers=auth_headers(president), data=event_payload(club.id, categorie_id=77))
    assert no_category.status_code == 404


async def test_event_creation_counts_for_competitions(client, db, club_setup, auth_headers):
    president, club = club_setup
    now = datetime.utcnow()
    db.add(Competition(
        name="Un événement", goal_type=GoalType.EVENT_COUNT.value, goal=1, points=25,
        start_date=now - timedelta(days=1), end_date=now + timedelta(days=1),
        status=CompetitionStatus.ACTIVATED.value,
    ))
    await db.commit()

    await client.post("/events", headers=auth_headers(president), data=event_payload(club.id))

    progress = (await client.get(f"/competitions/clubs/{club.id}/progress")).json()
    assert progress[0]["is_completed"] is True
    assert (await client.get(f"/clubs/{club.id}")).json()["points"] == 25


async def test_categories(client, admin, club_setup, auth_headers):
    president, club = club_setup
    headers = auth_headers(admin)

    sport = (await client.post("/categories", headers=headers, json={"name": "Sport"})).json()
    assert (await client.post("/categories", headers=headers, json={"name": "sport"})).status_code == 409
    await client.post("/categories", headers=headers, json={"name": "Culture"})

    await client.post("/events", headers=auth_headers(president), data=event_payload(club.id, categorie_id=sport["id"]))

    stats = (await client.get("/categories/stats")).json()
    assert stats[0] == {"id": sport["id"], "name": "Sport", "events_count": 1}
    assert stats[1]["events_count"] == 0

    in_use = await client.delete(f"/categories/{sport['id']}", headers=headers)
    assert in_use.status_code == 409

    names = [c["name"] for c in (await client.get("/categories")).json()]
    assert names == ["Culture", "Sport"]


async def test_list_events_with_filters(client, club_setup, auth_headers):
    president, club = club_setup
    headers = auth_headers(president)
    await client.post("/events", headers=headers, data=event_payload(club.id, name="Tournoi d'échecs"))
    await client.post("/events", headers=headers, data=event_payload(club.id, name="Réunion privée", type="closed"))

    everything = (await client.get("/events")).json()
    assert everything["total"] == 2

    closed = (await client.get("/events", params={"type": "closed"})).json()
    assert [e["name"] for e in closed["items"]] == ["Réunion privée"]

    search = (await client.get("/events", params={"search": "échecs"})).json()
    assert search["total"] == 1

    upcoming = (await client.get("/events", params={"upcoming": True, "club_id": club.id})).json()
    assert upcoming["total"] == 2


async def test_calendar_spans_every_day_of_the_event(client, db, club_setup):
    _, club = club_setup
    db.add(Evenement(
        name="Festival", type="open", club_id=club.id,
        start_date=datetime(2025, 4, 29, 18, 0), end_date=datetime(2025, 5, 2, 12, 0),
    ))
    db.add(Evenement(
        name="Atelier", type="open", club_id=club.id,
        start_date=datetime(2025, 5, 10, 9, 0), end_date=datetime(2025, 5, 10, 11, 0),
    ))
    await db.commit()

    calendar = (await client.get("/events/calendar", params={"year": 2025, "month": 5})).json()
    assert list(calendar) == ["2025-05-01", "2025-05-02", "2025-05-10"]
    assert calendar["2025-05-01"][0]["name"] == "Festival"
    assert calendar["2025-05-10"][0]["name"] == "Atelier"


async def test_join_and_cancel_participation(client, make_user, club_setup, auth_headers):
    president, club = club_setup
    student = await make_user(RoleEnum.NON_MEMBRE)
    event = (await client.post("/events", headers=auth_headers(president), data=event_payload(club.id))).json()

    joined = await client.post(f"/events/{event['id']}/join", headers=auth_headers(student))
    assert joined.status_code == 200
    assert joined.json()["participant_count"] == 1

    twice = await client.post(f"/events/{event['id']}/join", headers=auth_headers(student))
    assert twice.status_code == 409

    participants = (await client.get(f"/events/{event['id']}/participants")).json()
    assert [p["user_id"] for p in participants] == [student.id]

    mine = (await client.get("/events/me", headers=auth_headers(student))).json()
    assert [e["id"] for e in mine] == [event["id"]]

    left = await client.delete(f"/events/{event['id']}/join", headers=auth_headers(student))
    assert left.json()["participant_count"] == 0
    again = await client.delete(f"/events/{event['id']}/join", headers=auth_headers(student))
    assert again.status_code == 404


async def test_closed_and_finished_events(client, db, make_user, club_setup, add_member, auth_headers):
    president, club = club_setup
    outsider = await make_user(RoleEnum.NON_MEMBRE)
    member = await make_user(RoleEnum.MEMBRE)
    await add_member(member, club)

    closed = (await client.post(
        "/events", headers=auth_headers(president), data=event_payload(club.id, type="closed")
    )).json()
    assert (await client.post(f"/events/{closed['id']}/join", headers=auth_headers(outsider))).status_code == 403
    assert (await client.post(f"/events/{closed['id']}/join", headers=auth_headers(member))).status_code == 200

    past = Evenement(
        name="Passé", type="open", club_id=club.id,
        start_date=datetime.utcnow() - timedelta(days=3), end_date=datetime.utcnow() - timedelta(days=2),
    )
    db.add(past)
    await db.commit()
    assert (await client.post(f"/events/{past.id}/join", headers=auth_headers(outsider))).status_code == 409


async def test_update_and_delete_event(client, make_user, club_setup, auth_headers):
    president, club = club_setup
    outsider = await make_user(RoleEnum.MEMBRE)
    event = (await client.post("/events", headers=auth_headers(president), data=event_payload(club.id))).json()

    denied = await client.put(
        f"/events/{event['id']}", headers=auth_headers(outsider), data={"event_data": json.dumps({"name": "Piraté"})}
    )
    assert denied.status_code == 403

    updated = await client.put(
        f"/events/{event['id']}", headers=auth_headers(president), data={"event_data": json.dumps({"location": "Amphi A"})}
    )
    assert updated.json()["location"] == "Amphi A"

    bad_dates = await client.put(f"/events/{event['id']}", headers=auth_headers(president), data={
        "event_data": json.dumps({"end_date": "2000-01-01T00:00:00"})
    })
    assert bad_dates.status_code == 422

    assert (await client.delete(f"/events/{event['id']}", headers=auth_headers(president))).status_code == 204
    assert (await client.get(f"/events/{event['id']}")).status_code == 404


async def test_update_rejects_null_for_required_fields(client, club_setup, auth_headers):
    president, club = club_setup
    headers = auth_headers(president)
    event = (await client.post("/events", headers=headers, data=event_payload(club.id))).json()

    for field in ("start_date", "end_date", "name", "type"):
        response = await client.put(
            f"/events/{event['id']}", headers=headers, data={"event_data": json.dumps({field: None})}
        )
        assert response.status_code == 422, field

    cleared = await client.put(
        f"/events/{event['id']}", headers=headers, data={"event_data": json.dumps({"location": None})}
    )
    assert cleared.status_code == 200
    assert cleared.json()["location"] is None
    assert cleared.json()["start_date"] == event["start_date"]
