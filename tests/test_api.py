from datetime import timedelta

from conftest import PASSWORD, auth_headers
from models import EventStatus
from notifications import REGISTRATION_CONFIRMED, TEAM_FINALIZED


def _error(response):
    return response.json()["detail"]


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy"}
    assert "running" in client.get("/api/").json()["message"]


def test_participant_signup_login_and_me(client):
    signup = client.post("/api/auth/register/participant", json={
        "email": "Riya@Example.com",
        "password": PASSWORD,
        "first_name": "Riya",
        "last_name": "Shah",
        "participant_type": "IIIT",
        "interests": ["Coding"],
    })
    assert signup.status_code == 200
    assert signup.json()["user"]["email"] == "riya@example.com"

    duplicate = client.post("/api/auth/register/participant", json={
        "email": "riya@example.com",
        "password": PASSWORD,
        "first_name": "Riya",
        "last_name": "Shah",
        "participant_type": "IIIT",
    })
    assert duplicate.status_code == 409
    assert _error(duplicate)["code"] == "EmailTaken"

    bad_login = client.post("/api/auth/login", json={"email": "riya@example.com", "password": "wrong-password"})
    assert bad_login.status_code == 401
    assert _error(bad_login) == {
        "kind": "AuthorizationError",
        "code": "InvalidCredentials",
        "message": "Invalid email or password",
    }

    login = client.post("/api/auth/login", json={"email": "riya@example.com", "password": PASSWORD})
    assert login.status_code == 200
    token = login.json()["access_token"]
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["name"] == "Riya Shah"
    assert me.json()["role"] == "participant"


def test_unapproved_organizer_cannot_create_events(client, make_organizer, now):
    pending = make_organizer(is_approved=False)
    response = client.post("/api/events", headers=auth_headers(pending), json={
        "name": "Pending Fest",
        "description": "Waiting on approval",
        "registration_deadline": (now + timedelta(days=1)).isoformat(),
        "start_date": (now + timedelta(days=2)).isoformat(),
        "end_date": (now + timedelta(days=3)).isoformat(),
    })
    assert response.status_code == 403
    assert _error(response)["code"] == "AccountPendingApproval"


def test_event_lifecycle_over_http(client, make_organizer, now):
    organizer = make_organizer()
    headers = auth_headers(organizer)
    created = client.post("/api/events", headers=headers, json={
        "name": "Code Sprint",
        "description": "Four hour sprint",
        "registration_deadline": (now + timedelta(days=1)).isoformat(),
        "start_date": (now + timedelta(days=2)).isoformat(),
        "end_date": (now + timedelta(days=2, hours=4)).isoformat(),
        "registration_limit": 20,
        "tags": ["coding", " Coding ", ""],
    })
    assert created.status_code == 200
    event = created.json()
    assert event["status"] == "Draft"

    # Drafts are invisible to the public listing.
    assert client.get("/api/events").json() == []

    published = client.put(f"/api/events/{event['id']}", headers=headers, json={"status": "Published"})
    assert published.json()["status"] == "Published"

    renamed = client.put(
        f"/api/events/{event['id']}",
        headers=headers,
        json={"name": "Renamed Sprint", "description": "Five hour sprint"},
    )
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Code Sprint"
    assert renamed.json()["description"] == "Five hour sprint"

    cleared = client.put(f"/api/events/{event['id']}", headers=headers, json={"registration_deadline": None})
    assert cleared.status_code == 400
    assert _error(cleared)["code"] == "InvalidField"
    assert _error(cleared)["field"] == "registration_deadline"

    refused = client.delete(f"/api/events/{event['id']}", headers=headers)
    assert refused.status_code == 400
    assert _error(refused)["code"] == "CannotDeletePublished"

    listing = client.get("/api/events").json()
    assert [row["id"] for row in listing] == [event["id"]]


def test_registration_and_ticket_flow(client, sender, make_organizer, make_participant, make_event):
    organizer = make_organizer()
    event = make_event(organizer, registration_limit=1)
    participant = make_participant()

    response = client.post(f"/api/registrations/{event.id}", headers=auth_headers(participant))
    assert response.status_code == 200
    ticket_id = response.json()["ticket_id"]
    assert ticket_id.startswith("FEL-")
    assert [note.kind for note in sender.sent] == [REGISTRATION_CONFIRMED]
    assert sender.sent[0].recipient_email == participant.email

    again = client.post(f"/api/registrations/{event.id}", headers=auth_headers(participant))
    assert again.status_code == 409
    assert _error(again)["kind"] == "ConflictError"
    assert _error(again)["code"] == "LimitReached"

    full = client.post(f"/api/registrations/{event.id}", headers=auth_headers(make_participant()))
    assert full.status_code == 409
    assert _error(full)["code"] == "LimitReached"

    ticket = client.get(f"/api/registrations/ticket/{ticket_id}", headers=auth_headers(participant))
    assert ticket.json()["event"]["id"] == event.id
    hidden = client.get(f"/api/registrations/ticket/{ticket_id}", headers=auth_headers(make_participant()))
    assert hidden.status_code == 403

    mine = client.get("/api/registrations/mine", headers=auth_headers(participant)).json()
    assert [row["ticket_id"] for row in mine] == [ticket_id]


def test_notification_failure_does_not_fail_registration(client, sender, make_organizer, make_participant, make_event):
    sender.fail_kinds.add(REGISTRATION_CONFIRMED)
    event = make_event(make_organizer())

    response = client.post(f"/api/registrations/{event.id}", headers=auth_headers(make_participant()))
    assert response.status_code == 200
    assert response.json()["status"] == "Registered"
    assert sender.sent == []


def test_only_managers_scan_tickets(client, make_organizer, make_participant, make_event):
    organizer = make_organizer()
    event = make_event(organizer)
    participant = make_participant()
    ticket_id = client.post(f"/api/registrations/{event.id}", headers=auth_headers(participant)).json()["ticket_id"]

    denied = client.post(
        "/api/tickets/validate",
        headers=auth_headers(participant),
        json={"ticket_id": ticket_id, "event_id": event.id},
    )
    assert denied.status_code == 403
    assert _error(denied)["code"] == "RoleRequired"

    first = client.post(
        "/api/tickets/validate",
        headers=auth_headers(organizer),
        json={"ticket_id": ticket_id, "event_id": event.id},
    )
    assert first.status_code == 200
    assert first.json()["valid"] is True
    assert first.json()["participant_email"] == participant.email

    second = client.post(
        "/api/tickets/validate",
        headers=auth_headers(organizer),
        json={"ticket_id": ticket_id, "event_id": event.id},
    )
    assert second.status_code == 400
    assert _error(second)["code"] == "AlreadyScanned"
    assert _error(second)["validation_status"] == "already_scanned"

    report = client.get(f"/api/tickets/event/{event.id}/attendance", headers=auth_headers(organizer)).json()
    assert report["statistics"]["attended"] == 1
    assert report["registrations"][0]["scan_count"] == 2


def test_team_flow_over_http(client, sender, make_organizer, make_participant, make_event):
    event = make_event(make_organizer(), is_team_event=True, min_team_size=2, max_team_size=3)
    leader, member = make_participant(), make_participant()

    solo = client.post(f"/api/registrations/{event.id}", headers=auth_headers(leader))
    assert solo.status_code == 400
    assert _error(solo)["code"] == "UseTeamRegistration"

    created = client.post("/api/teams", headers=auth_headers(leader), json={"event_id": event.id, "name": "Null Pointers"})
    assert created.status_code == 200
    team = created.json()
    assert team["current_size"] == 1
    assert team["status"] == "Forming"

    early = client.post(f"/api/teams/{team['id']}/finalize", headers=auth_headers(leader))
    assert early.status_code == 400
    assert _error(early)["code"] == "BelowMinimumSize"

    joined = client.post("/api/teams/join", headers=auth_headers(member), json={"invite_code": team["invite_code"].lower()})
    assert joined.status_code == 200
    assert joined.json()["current_size"] == 2
    assert {row["user_id"] for row in joined.json()["members"]} == {leader.id, member.id}

    not_leader = client.post(f"/api/teams/{team['id']}/finalize", headers=auth_headers(member))
    assert not_leader.status_code == 403
    assert _error(not_leader)["code"] == "NotLeader"

    finalized = client.post(f"/api/teams/{team['id']}/finalize", headers=auth_headers(leader))
    assert finalized.status_code == 200
    body = finalized.json()
    assert body["registration_count"] == 2
    assert len(set(body["ticket_ids"])) == 2
    assert body["team"]["is_finalized"] is True
    assert body["team"]["status"] == "Registered"
    assert [note.kind for note in sender.sent] == [TEAM_FINALIZED, TEAM_FINALIZED]

    event_view = client.get(f"/api/events/{event.id}").json()
    assert event_view["registration_count"] == 2

    mine = client.get("/api/registrations/mine", headers=auth_headers(member)).json()
    assert mine[0]["team_id"] == team["id"]


def test_publish_webhook_dispatched(client, sender, make_organizer, make_event):
    organizer = make_organizer(webhook_url="https://discord.example.com/api/webhooks/1/abc")
    event = make_event(organizer, status=EventStatus.DRAFT)

    response = client.put(f"/api/events/{event.id}", headers=auth_headers(organizer), json={"status": "Published"})
    assert response.status_code == 200
    [announcement] = sender.sent
    assert announcement.payload["webhook_url"] == organizer.webhook_url
