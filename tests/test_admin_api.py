from conftest import PASSWORD, auth_headers
from models import ActionLog, User
from notifications import PASSWORD_RESET_REVIEWED


def test_admin_approves_organizer(client, db, make_admin):
    signup = client.post("/api/auth/register/organizer", json={
        "email": "robotics@example.com",
        "password": PASSWORD,
        "organization_name": "Robotics Club",
        "category": "Technical",
    })
    assert signup.status_code == 200
    organizer_id = signup.json()["id"]
    assert signup.json()["is_approved"] is False

    admin = make_admin()
    pending = client.get("/api/admin/organizers?pending_only=true", headers=auth_headers(admin)).json()
    assert [row["id"] for row in pending] == [organizer_id]

    approved = client.put(f"/api/admin/organizers/{organizer_id}/approve", headers=auth_headers(admin))
    assert approved.json()["is_approved"] is True
    assert db.query(ActionLog).filter(ActionLog.action == "approve_organizer").count() == 1

    stats = client.get("/api/admin/stats", headers=auth_headers(admin)).json()
    assert stats["total_organizers"] == 1
    assert stats["pending_organizers"] == 0


def test_admin_routes_need_admin(client, make_organizer):
    response = client.get("/api/admin/stats", headers=auth_headers(make_organizer()))
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "RoleRequired"


def test_password_reset_round_trip(client, sender, make_organizer, make_admin):
    organizer = make_organizer()
    headers = auth_headers(organizer)
    created = client.post("/api/organizer/password-reset", headers=headers, json={"reason": "Lost the club laptop"})
    assert created.status_code == 200
    request_id = created.json()["id"]

    again = client.post("/api/organizer/password-reset", headers=headers, json={"reason": "Still locked out"})
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "ResetAlreadyPending"

    admin = make_admin()
    reviewed = client.put(
        f"/api/admin/password-resets/{request_id}/approve",
        headers=auth_headers(admin),
        json={"comments": "Verified over phone"},
    )
    assert reviewed.status_code == 200
    assert reviewed.json()["status"] == "Approved"
    assert reviewed.json()["password_changed"] is True

    [notification] = sender.sent
    assert notification.kind == PASSWORD_RESET_REVIEWED
    new_password = notification.payload["new_password"]
    assert len(new_password) == 12

    old_login = client.post("/api/auth/login", json={"email": organizer.email, "password": PASSWORD})
    assert old_login.status_code == 401
    new_login = client.post("/api/auth/login", json={"email": organizer.email, "password": new_password})
    assert new_login.status_code == 200

    twice = client.put(f"/api/admin/password-resets/{request_id}/reject", headers=auth_headers(admin))
    assert twice.status_code == 409


def test_follow_and_preferences(client, db, make_organizer, make_participant):
    organizer = make_organizer()
    participant = make_participant()
    headers = auth_headers(participant)

    followed = client.post(f"/api/users/organizers/{organizer.id}/follow", headers=headers)
    assert followed.status_code == 200
    db.expire_all()
    assert [row.id for row in db.get(User, participant.id).followed] == [organizer.id]

    updated = client.put("/api/users/preferences", headers=headers, json={
        "interests": ["Music", "music", "Dance"],
        "followed_organizer_ids": [],
    })
    assert updated.json()["interests"] == ["Music", "music", "Dance"]
    db.expire_all()
    assert db.get(User, participant.id).followed == []

    missing = client.put("/api/users/preferences", headers=headers, json={"followed_organizer_ids": [987654]})
    assert missing.status_code == 404


def test_forum_requires_registration(client, make_organizer, make_participant, make_event):
    organizer = make_organizer()
    event = make_event(organizer)
    member, outsider = make_participant(), make_participant()
    client.post(f"/api/registrations/{event.id}", headers=auth_headers(member))

    blocked = client.post(f"/api/messages/event/{event.id}", headers=auth_headers(outsider), json={"body": "hi"})
    assert blocked.status_code == 403
    assert blocked.json()["detail"]["code"] == "NotRegistered"

    posted = client.post(f"/api/messages/event/{event.id}", headers=auth_headers(member), json={"body": "  Where is H105?  "})
    assert posted.status_code == 200
    message_id = posted.json()["id"]
    assert posted.json()["body"] == "Where is H105?"

    client.post(f"/api/messages/event/{event.id}", headers=auth_headers(organizer), json={"body": "Welcome all"})
    pinned = client.put(f"/api/messages/{message_id}/pin", headers=auth_headers(organizer))
    assert pinned.json()["is_pinned"] is True

    thread = client.get(f"/api/messages/event/{event.id}", headers=auth_headers(member)).json()
    assert thread[0]["id"] == message_id
    assert len(thread) == 2

    assert client.delete(f"/api/messages/{message_id}", headers=auth_headers(organizer)).status_code == 200
    assert len(client.get(f"/api/messages/event/{event.id}", headers=auth_headers(member)).json()) == 1
