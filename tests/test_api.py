from datetime import date, timedelta

from sqlalchemy.orm import Session

from models import Friendship, CompetitionLog
from auth import create_access_token


def register(client, username, password="secreto123"):
    response = client.post("/api/register", json={
        "email": f"{username.lower()}@mail.com",
        "username": username,
        "password": password,
    })
    assert response.status_code == 200, response.text
    return response.json()


def create_competition(client, user_id, title, description=""):
    response = client.post("/api/competition", json={
        "userId": user_id, "title": title, "description": description
    })
    assert response.status_code == 200, response.text
    return response.json()["competitionId"]


def log(client, user_id, competition_id, minutes, **extra):
    return client.post("/api/competition/log", json={
        "userId": user_id, "competitionId": competition_id, "durationMinutes": minutes, **extra
    })


# ─────────────────────────────────────────────────────────────────────────────
# Health / Users
# ─────────────────────────────────────────────────────────────────────────────

def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_register_and_login(client):
    data = register(client, "Alice")
    assert data["success"] is True
    assert data["token"]

    by_username = client.post("/api/login", json={"username": "Alice", "password": "secreto123"})
    by_email = client.post("/api/login", json={"username": "alice@mail.com", "password": "secreto123"})
    assert by_username.json()["userId"] == data["userId"]
    assert by_email.json()["userId"] == data["userId"]

    wrong = client.post("/api/login", json={"username": "Alice", "password": "otra-cosa"})
    assert wrong.status_code == 401
    assert wrong.json()["success"] is False


def test_register_validation(client):
    register(client, "Alice")

    duplicate = client.post("/api/register", json={
        "email": "alice@mail.com", "username": "Otra", "password": "secreto123"
    })
    assert duplicate.status_code == 400

    taken = client.post("/api/register", json={
        "email": "otra@mail.com", "username": "ALICE", "password": "secreto123"
    })
    assert taken.status_code == 400

    short = client.post("/api/register", json={
        "email": "bob@mail.com", "username": "Bob", "password": "123"
    })
    assert short.status_code == 400
    assert short.json()["success"] is False
    assert "password" in short.json()["error"]


# ─────────────────────────────────────────────────────────────────────────────
# Competiciones
# ─────────────────────────────────────────────────────────────────────────────

def test_same_total_on_every_view(client):
    alice = register(client, "Alice")["userId"]
    bob = register(client, "Bob")["userId"]
    competition_id = create_competition(client, alice, "Push-ups")

    assert log(client, alice, competition_id, 30).json()["logId"]
    goal = client.post("/api/goals", json={
        "userId": alice, "title": " push-ups", "type": "daily", "startDate": date.today().isoformat()
    }).json()
    client.post(f"/api/goals/{goal['goalId']}/complete", json={
        "userId": alice, "date": date.today().isoformat(), "durationMinutes": 10
    })
    removed = client.post("/api/competition/remove", json={
        "userId": alice, "competitionId": competition_id, "durationMinutes": 15
    })
    assert removed.json()["totalMinutes"] == 25
    assert log(client, bob, competition_id, 0).json() == {"success": True, "joined": True}

    cards = client.get("/api/competitions", params={"userId": alice}).json()["competitions"]
    detail = client.get(f"/api/competition/{competition_id}", params={"userId": alice}).json()
    participant = client.get(f"/api/competition/{competition_id}/participant/{alice}").json()
    entry = next(e for e in detail["leaderboard"] if e["id"] == alice)

    assert cards[0]["userMinutes"] == 25
    assert cards[0]["totalTime"] == 25
    assert cards[0]["participantCount"] == 2
    assert cards[0]["userRank"] == "1"
    assert detail["userStats"]["totalMinutes"] == 25
    assert detail["userStats"]["goalCompletionMinutes"] == 10
    assert detail["userStats"]["rank"] == "1"
    assert detail["isCreator"] is True
    assert entry["total_minutes"] == 25
    assert participant["totalMinutes"] == 25


def test_join_flow(client):
    alice = register(client, "Alice")["userId"]
    bob = register(client, "Bob")["userId"]
    competition_id = create_competition(client, alice, "Lectura")

    denied = log(client, bob, competition_id, 5)
    assert denied.status_code == 403
    assert denied.json() == {"success": False, "error": "Tienes que unirte a esta competición primero."}
    assert client.get("/api/competitions", params={"userId": bob}).json()["competitions"] == []

    assert log(client, bob, competition_id, 0).json()["joined"] is True
    assert log(client, bob, competition_id, 5).json()["logId"]

    cards = client.get("/api/competitions", params={"userId": bob}).json()["competitions"]
    assert cards[0]["isCreator"] is False
    assert cards[0]["userMinutes"] == 5


def test_remove_more_than_total(client):
    alice = register(client, "Alice")["userId"]
    competition_id = create_competition(client, alice, "Lectura")
    log(client, alice, competition_id, 25)

    response = client.post("/api/competition/remove", json={
        "userId": alice, "competitionId": competition_id, "durationMinutes": 100
    })
    assert response.status_code == 400
    assert response.json()["error"] == "No puedes quitar 100 minutos. Solo tienes 25 minutos."


def test_competition_errors(client):
    alice = register(client, "Alice")["userId"]
    bob = register(client, "Bob")["userId"]
    competition_id = create_competition(client, alice, "Lectura")

    missing = client.get("/api/competition/999", params={"userId": alice})
    assert missing.status_code == 404
    assert missing.json()["success"] is False

    assert client.get(f"/api/competition/{competition_id}", params={"userId": bob}).status_code == 403
    assert client.get(f"/api/competition/{competition_id}").status_code == 400
    assert log(client, alice, competition_id, -3).status_code == 400
    assert log(client, alice, 999, 0).status_code == 404


def test_update_leave_and_delete(client):
    alice = register(client, "Alice")["userId"]
    bob = register(client, "Bob")["userId"]
    competition_id = create_competition(client, alice, "Lectura")
    log(client, bob, competition_id, 0)

    nothing = client.post(f"/api/competition/{competition_id}/update", json={"userId": alice})
    assert nothing.status_code == 400
    not_creator = client.post(f"/api/competition/{competition_id}/update", json={"userId": bob, "title": "X"})
    assert not_creator.status_code == 403
    updated = client.post(f"/api/competition/{competition_id}/update", json={"userId": alice, "title": "Libros"})
    assert updated.json()["success"] is True

    membership = {"userId": alice, "competitionId": competition_id}
    assert client.post("/api/competition/leave", json=membership).status_code == 400
    assert client.post("/api/competition/leave", json={**membership, "userId": bob}).json()["success"] is True
    assert client.get(f"/api/competition/{competition_id}", params={"userId": bob}).status_code == 403

    assert client.request("DELETE", f"/api/competition/{competition_id}", json={"userId": bob}).status_code == 403
    assert client.request("DELETE", f"/api/competition/{competition_id}", json={"userId": alice}).status_code == 200
    assert client.get(f"/api/competition/{competition_id}", params={"userId": alice}).status_code == 404


def test_delete_log_syncs_goal_completion(client):
    alice = register(client, "Alice")["userId"]
    competition_id = create_competition(client, alice, "Dibujo")
    today = date.today().isoformat()
    log_id = log(client, alice, competition_id, 20, loggedDate=today).json()["logId"]
    goal_id = client.post("/api/goals", json={
        "userId": alice, "title": "dibujo", "startDate": today
    }).json()["goalId"]
    client.post(f"/api/goals/{goal_id}/complete", json={"userId": alice, "date": today, "durationMinutes": 20})

    response = client.request("DELETE", f"/api/competition/log/{log_id}", json={"userId": alice})

    assert response.json()["deletedLogId"] == log_id
    assert response.json()["syncedCompletionId"] is not None
    assert client.get(f"/api/goals/{goal_id}/completions").json()["completions"] == []


def test_delete_goal_completion_endpoint(client, db: Session):
    alice = register(client, "Alice")["userId"]
    competition_id = create_competition(client, alice, "Dibujo")
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    log(client, alice, competition_id, 15, loggedDate=yesterday)
    goal_id = client.post("/api/goals", json={
        "userId": alice, "title": "Dibujo", "startDate": yesterday
    }).json()["goalId"]
    client.post(f"/api/goals/{goal_id}/complete", json={"userId": alice, "date": yesterday, "durationMinutes": 15})

    response = client.request(
        "DELETE", f"/api/competition/goal-completion/{goal_id}/{yesterday}", json={"userId": alice}
    )

    assert response.json()["syncedLogId"] is not None
    assert db.query(CompetitionLog).filter(CompetitionLog.duration_minutes == 15).count() == 0


# ─────────────────────────────────────────────────────────────────────────────
# Tokens
# ─────────────────────────────────────────────────────────────────────────────

def test_token_must_match_acting_user(client):
    alice = register(client, "Alice")
    bob = register(client, "Bob")
    competition_id = create_competition(client, alice["userId"], "Lectura")

    headers = {"Authorization": f"Bearer {bob['token']}"}
    response = client.post("/api/competition/log", headers=headers, json={
        "userId": alice["userId"], "competitionId": competition_id, "durationMinutes": 10
    })
    assert response.status_code == 403

    headers = {"Authorization": f"Bearer {alice['token']}"}
    response = client.post("/api/competition/log", headers=headers, json={
        "userId": alice["userId"], "competitionId": competition_id, "durationMinutes": 10
    })
    assert response.status_code == 200

    headers = {"Authorization": "Bearer no-es-un-token"}
    response = client.post("/api/competition/log", headers=headers, json={
        "userId": alice["userId"], "competitionId": competition_id, "durationMinutes": 10
    })
    assert response.status_code == 401


# ─────────────────────────────────────────────────────────────────────────────
# Invitaciones
# ─────────────────────────────────────────────────────────────────────────────

def test_invitation_flow(client):
    alice = register(client, "Alice")["userId"]
    bob = register(client, "Bob")["userId"]
    carol = register(client, "Carol")["userId"]
    competition_id = create_competition(client, alice, "Lectura", "Páginas al día")

    outsider = client.post("/api/competition/invite", json={
        "competitionId": competition_id, "inviterId": carol, "inviteeUsername": "Bob"
    })
    assert outsider.status_code == 403

    sent = client.post("/api/competition/invite", json={
        "competitionId": competition_id, "inviterId": alice, "inviteeUsername": " BOB "
    })
    assert sent.json()["success"] is True
    again = client.post("/api/competition/invite", json={
        "competitionId": competition_id, "inviterId": alice, "inviteeUsername": "bob"
    })
    assert again.status_code == 400

    invitations = client.get("/api/competition/invitations", params={"userId": bob}).json()["invitations"]
    assert len(invitations) == 1
    assert invitations[0]["competition_title"] == "Lectura"
    assert invitations[0]["inviter_username"] == "Alice"

    invite_id = invitations[0]["id"]
    accepted = client.post(f"/api/competition/invitations/{invite_id}/accept", json={"userId": bob})
    assert accepted.json()["competitionId"] == competition_id
    assert client.post(f"/api/competition/invitations/{invite_id}/accept", json={"userId": bob}).status_code == 400
    assert client.get(f"/api/competition/{competition_id}", params={"userId": bob}).status_code == 200

    member = client.post("/api/competition/invite", json={
        "competitionId": competition_id, "inviterId": alice, "inviteeUsername": "Bob"
    })
    assert member.status_code == 400


def test_decline_invitation(client):
    alice = register(client, "Alice")["userId"]
    bob = register(client, "Bob")["userId"]
    competition_id = create_competition(client, alice, "Lectura")
    client.post("/api/competition/invite", json={
        "competitionId": competition_id, "inviterId": alice, "inviteeUsername": "Bob"
    })
    invite_id = client.get(
        "/api/competition/invitations", params={"username": "bob"}
    ).json()["invitations"][0]["id"]

    assert client.post(f"/api/competition/invitations/{invite_id}/decline", json={"userId": alice}).status_code == 404
    assert client.post(f"/api/competition/invitations/{invite_id}/decline", json={"userId": bob}).json()["success"]
    assert client.get("/api/competition/invitations", params={"userId": bob}).json()["invitations"] == []
    assert client.get(f"/api/competition/{competition_id}", params={"userId": bob}).status_code == 403


# ─────────────────────────────────────────────────────────────────────────────
# Objetivos
# ─────────────────────────────────────────────────────────────────────────────

def test_goal_endpoints(client):
    alice = register(client, "Alice")["userId"]

    weekly = client.post("/api/goals", json={
        "userId": alice, "title": "Correr", "type": "weekly", "startDate": "2024-03-13"
    }).json()
    assert weekly["goal"]["start_date"] == "2024-03-11"
    assert weekly["goal"]["end_date"] == "2024-03-17"

    bad_type = client.post("/api/goals", json={
        "userId": alice, "title": "Correr", "type": "yearly", "startDate": "2024-03-13"
    })
    assert bad_type.status_code == 400

    goal_id = weekly["goalId"]
    client.post(f"/api/goals/{goal_id}/complete", json={"userId": alice, "date": "2024-03-12", "durationMinutes": 20})
    client.post(f"/api/goals/{goal_id}/complete", json={"userId": alice, "date": "2024-03-12", "durationMinutes": 30})
    completions = client.get(f"/api/goals/{goal_id}/completions").json()["completions"]
    assert [c["duration_minutes"] for c in completions] == [30]

    listed = client.get(f"/api/goals/{alice}", params={"date": "2024-03-15", "type": "weekly"}).json()["goals"]
    assert [g["id"] for g in listed] == [goal_id]
    other_week = client.get(f"/api/goals/{alice}", params={"date": "2024-03-25", "type": "weekly"}).json()["goals"]
    assert other_week == []

    assert client.request("DELETE", f"/api/goals/{goal_id}", json={"userId": alice + 1}).status_code == 403
    assert client.request("DELETE", f"/api/goals/{goal_id}", json={"userId": alice}).json()["success"] is True
    assert client.get(f"/api/goals/{alice}").json()["goals"] == []


# ─────────────────────────────────────────────────────────────────────────────
# Amigos
# ─────────────────────────────────────────────────────────────────────────────

def test_profile_summary_is_friends_only(client, db: Session):
    alice = register(client, "Alice")["userId"]
    bob = register(client, "Bob")["userId"]
    goal_id = client.post("/api/goals", json={
        "userId": bob, "title": "Piano", "startDate": date.today().isoformat()
    }).json()["goalId"]
    client.post(f"/api/goals/{goal_id}/complete", json={
        "userId": bob, "date": date.today().isoformat(), "durationMinutes": 40
    })

    url = f"/api/users/{bob}/summary"
    assert client.get(url, params={"viewerId": alice}).status_code == 403
    assert client.get(url, params={"viewerId": bob}).status_code == 200

    db.add_all([Friendship(user_id=alice, friend_id=bob), Friendship(user_id=bob, friend_id=alice)])
    db.commit()

    summary = client.get(url, params={"viewerId": alice}).json()
    assert summary["stats"]["totalGoals"] == 1
    assert summary["stats"]["totalMinutes"] == 40
    assert summary["stats"]["last7DaysMinutes"] == 40
    assert summary["activity"] == [{"activity": "Piano", "minutes": 40}]

    friends = client.get("/api/friends", params={"userId": alice}).json()["friends"]
    assert friends == [{"id": bob, "username": "Bob"}]


def test_token_helper_round_trip_is_accepted(client):
    alice = register(client, "Alice")["userId"]
    token = create_access_token(alice, "Alice")
    response = client.post("/api/competition", headers={"Authorization": f"Bearer {token}"}, json={
        "userId": alice, "title": "Lectura"
    })
    assert response.status_code == 200


def test_login_with_email_in_other_case(client):
    alice = register(client, "Alice")["userId"]

    response = client.post("/api/login", json={"username": " alice@MAIL.com ", "password": "secreto123"})

    assert response.status_code == 200
    assert response.json()["userId"] == alice


def test_update_rejects_null_or_blank_title(client):
    alice = register(client, "Alice")["userId"]
    competition_id = create_competition(client, alice, "Lectura")
    url = f"/api/competition/{competition_id}/update"

    assert client.post(url, json={"userId": alice, "title": None}).status_code == 400
    assert client.post(url, json={"userId": alice, "title": "   "}).status_code == 400

    detail = client.get(f"/api/competition/{competition_id}", params={"userId": alice}).json()
    assert detail["competition"]["title"] == "Lectura"

    cleared = client.post(url, json={"userId": alice, "description": None})
    assert cleared.json()["success"] is True
