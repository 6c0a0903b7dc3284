from datetime import datetime
from types import SimpleNamespace

import pytest
import requests

from app.auth.models import RoleEnum
from app.config import settings
from app.moderation import ai, profanity
from app.moderation.services import (
    FLAGGED_NOTICE, NO_COMMENTS_SUMMARY, classify_sentiment, manual_summary
)
from app.polls.models import FLAGGED_PREFIX


@pytest.fixture
async def poll(client, make_user, make_club, auth_headers):
    president = await make_user(RoleEnum.PRESIDENT_CLUB)
    club = await make_club(president)
    response = await client.post("/polls", headers=auth_headers(president), json={
        "question": "Que pensez-vous du club ?", "club_id": club.id, "options": ["Bien", "Moyen"],
    })
    return response.json()


# ----- Filtre de grossièretés -----

@pytest.mark.parametrize("text", [
    "What the fuck is this",
    "c'est de la MERDE",
    "you are a b1tch",
    "sh!t happens",
    "انت كلب",
])
def test_profanity_is_detected(text):
    assert profanity.contains_profanity(text)


@pytest.mark.parametrize("text", [
    "Great class today",
    "Une conférence passionnante",
    "Assessment of the project",
    "",
    None,
])
def test_clean_text_is_not_flagged(text):
    assert not profanity.contains_profanity(text)


def test_clean_text_masks_words():
    assert profanity.clean_text("quelle merde ce projet") == "quelle ***** ce projet"
    assert profanity.clean_text("no issue here") == "no issue here"


def test_censor_for_log_and_severity():
    assert profanity.censor_for_log("salope") == "s**o*e"
    assert profanity.censor_for_log("ok") == "ok"
    assert profanity.determine_severity("First name") == "High"
    assert profanity.determine_severity("comment") == "Medium"
    assert profanity.determine_severity("phone") == "Low"


# ----- Toxicité -----

async def test_local_toxicity_without_api_key():
    result = await ai.check_toxicity("this is bullshit")
    assert result["toxic"] is True
    assert result["score"] == 1.0
    assert "bullshit" in result["toxic_words"]

    clean = await ai.check_toxicity("Merci pour l'organisation")
    assert clean == {"toxic": False, "score": 0.0, "toxic_words": [], "reason": None}


async def test_remote_classifier_is_used_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "TOXICITY_API_KEY", "hf_test")
    monkeypatch.setattr(ai, "_query_classifier", lambda text: [[
        {"label": "toxic", "score": 0.91},
        {"label": "insult", "score": 0.40},
    ]])
    result = await ai.check_toxicity("you are so annoying")
    assert result["toxic"] is True
    assert result["score"] == 0.91


async def test_remote_classifier_failure_falls_back(monkeypatch):
    def boom(text):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(settings, "TOXICITY_API_KEY", "hf_test")
    monkeypatch.setattr(ai, "_query_classifier", boom)
    result = await ai.check_toxicity("rien de grave")
    assert result["toxic"] is False


# ----- Résumés et sentiment -----

def test_classify_sentiment():
    assert classify_sentiment("Great idea") == "positive"
    assert classify_sentiment("Worst event ever") == "negative"
    assert classify_sentiment("Rendez-vous samedi") == "neutral"


def test_manual_summary_format():
    user_a = SimpleNamespace(full_name="Ali Ben Salah")
    user_b = SimpleNamespace(full_name="Meriem Trabelsi")
    comments = [
        SimpleNamespace(user=user_a, user_id=1, content="Super", date_comment=datetime(2025, 1, 5, 10)),
        SimpleNamespace(user=user_b, user_id=2, content="Pas mal", date_comment=datetime(2025, 1, 6, 11)),
        SimpleNamespace(user=user_a, user_id=1, content="Encore !", date_comment=datetime(2025, 1, 7, 12)),
    ]
    assert manual_summary(comments) == (
        "Summary of comments:\n"
        "\n"
        "1. Ali Ben Salah: Super (2025-01-05)\n"
        "2. Meriem Trabelsi: Pas mal (2025-01-06)\n"
        "3. Ali Ben Salah: Encore ! (2025-01-07)\n"
        "\n"
        "--- Statistics ---\n"
        "Total Comments: 3\n"
        "Unique Commenters: 2\n"
    )
    assert manual_summary([]) == NO_COMMENTS_SUMMARY


async def test_poll_summary_falls_back_to_manual(client, make_user, poll, auth_headers):
    user = await make_user(RoleEnum.MEMBRE, first_name="Ines")
    url = f"/moderation/polls/{poll['id']}/summary"

    empty = (await client.get(url, headers=auth_headers(user))).json()
    assert empty == {"summary": NO_COMMENTS_SUMMARY, "source": "manual"}

    await client.post(f"/polls/{poll['id']}/comments", headers=auth_headers(user), json={"content": "Très bien"})
    summary = (await client.get(url, headers=auth_headers(user))).json()
    assert summary["source"] == "manual"
    assert ": Très bien (" in summary["summary"]
    assert "Total Comments: 1" in summary["summary"]


async def test_poll_summary_uses_ai_when_available(client, make_user, poll, auth_headers, monkeypatch):
    prompts = []

    def fake_completion(prompt):
        prompts.append(prompt)
        return "Les membres sont enthousiastes."

    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(ai, "_query_completion", fake_completion)
    user = await make_user(RoleEnum.MEMBRE)
    await client.post(f"/polls/{poll['id']}/comments", headers=auth_headers(user), json={"content": "Génial"})

    summary = (await client.get(f"/moderation/polls/{poll['id']}/summary", headers=auth_headers(user))).json()
    assert summary == {"summary": "Les membres sont enthousiastes.", "source": "ai"}
    assert "Génial" in prompts[0]


# ----- Pipeline de modération des commentaires -----

async def test_toxic_comment_is_hidden_and_reported(client, admin, make_user, poll, auth_headers, outbox):
    user = await make_user(RoleEnum.MEMBRE)
    response = await client.post(
        f"/polls/{poll['id']}/comments", headers=auth_headers(user), json={"content": "this club is shit"}
    )
    assert response.status_code == 201
    body = response.json()
    assert body["content"] == FLAGGED_NOTICE
    assert body["content"].startswith(FLAGGED_PREFIX)
    assert body["flagged"] is True

    assert outbox[-1]["to"] == user.email
    assert outbox[-1]["subject"].endswith("1/3")

    incidents = (await client.get(f"/moderation/incidents/{user.id}", headers=auth_headers(admin))).json()
    assert len(incidents) == 1
    assert incidents[0]["field"] == "comment"
    assert incidents[0]["severity"] == "Medium"
    assert "shit" not in incidents[0]["censored_text"]

    cleared = (await client.delete(f"/moderation/incidents/{user.id}", headers=auth_headers(admin))).json()
    assert cleared["deleted"] == 1
    assert (await client.get(f"/moderation/incidents/{user.id}", headers=auth_headers(admin))).json() == []


async def test_user_is_banned_after_three_flagged_comments(client, make_user, poll, auth_headers, outbox):
    user = await make_user(RoleEnum.MEMBRE)
    url = f"/polls/{poll['id']}/comments"

    for level in (1, 2, 3):
        response = await client.post(url, headers=auth_headers(user), json={"content": f"fuck {level}"})
        assert response.json()["flagged"] is True
        assert outbox[-1]["subject"].endswith(f"{level}/3")
    assert "désactivé" not in outbox[-1]["body"]

    banned = await client.post(url, headers=auth_headers(user), json={"content": "Je m'excuse"})
    assert banned.status_code == 403
    assert "banned from commenting" in banned.json()["detail"]

    me = (await client.get("/auth/me", headers=auth_headers(user))).json()
    assert me["status"] == "active"


async def test_flagged_comment_cannot_be_edited(client, make_user, poll, auth_headers):
    user = await make_user(RoleEnum.MEMBRE)
    comment = (await client.post(
        f"/polls/{poll['id']}/comments", headers=auth_headers(user), json={"content": "putain de sondage"}
    )).json()
    response = await client.put(f"/polls/comments/{comment['id']}", headers=auth_headers(user), json={"content": "Pardon"})
    assert response.status_code == 409


async def test_comment_statistics(client, admin, make_user, poll, auth_headers):
    user = await make_user(RoleEnum.MEMBRE)
    url = f"/polls/{poll['id']}/comments"
    for text in ("Great poll", "Awful timing", "Samedi", "shit"):
        await client.post(url, headers=auth_headers(user), json={"content": text})
    headers = auth_headers(admin)

    stats = (await client.get("/moderation/comments/stats", headers=headers)).json()
    assert stats == {"total": 4, "today": 4, "flagged": 1}

    sentiment = (await client.get(
        "/moderation/comments/sentiment", headers=headers, params={"club_id": poll["club_id"]}
    )).json()
    assert sentiment["total_comments"] == 4
    assert sentiment["positive"] == 0.25
    assert sentiment["negative"] == 0.25
    assert sentiment["neutral"] == 0.5

    months = (await client.get("/moderation/comments/by-month", headers=headers)).json()
    assert months == [{"month": datetime.utcnow().strftime("%Y-%m"), "count": 4}]

    assert (await client.get("/moderation/comments/stats", headers=auth_headers(user))).status_code == 403


async def test_activity_log_and_text_check(client, admin, make_user, make_club, auth_headers):
    president = await make_user(RoleEnum.MEMBRE)
    club = await make_club(president, name="Club Ciné")
    await client.post(f"/clubs/{club.id}/reject", headers=auth_headers(admin))

    log = (await client.get("/moderation/activity", headers=auth_headers(admin), params={"target_type": "club"})).json()
    assert log[0]["action"] == "club_rejected"
    assert log[0]["actor_id"] == admin.id

    check = (await client.post(
        "/moderation/check", headers=auth_headers(president), json={"text": "quelle merde"}
    )).json()
    assert check["toxic"] is True
    assert check["cleaned"] == "quelle *****"
