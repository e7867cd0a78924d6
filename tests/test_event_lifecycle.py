from datetime import timedelta

import pytest

from errors import AuthorizationError, NotFoundError, StateError, ValidationError
from event_lifecycle import (
    DRAFT_FIELDS,
    EDITABLE_FIELDS,
    apply_event_update,
    create_event,
    delete_event,
    get_event,
    list_public_events,
    split_patch,
)
from models import Event, EventStatus, EventType, Message
from notifications import EVENT_PUBLISHED
from registration_service import register


def _draft_payload(now, **overrides):
    values = {
        "name": "Robotics 101",
        "description": "Intro workshop",
        "registration_deadline": now + timedelta(days=3),
        "start_date": now + timedelta(days=4),
        "end_date": now + timedelta(days=4, hours=3),
        "registration_limit": 40,
        "tags": ["Robotics"],
    }
    values.update(overrides)
    return values


def test_every_status_has_a_whitelist():
    assert set(EDITABLE_FIELDS) == set(EventStatus)
    assert EDITABLE_FIELDS[EventStatus.PUBLISHED] == {"description", "registration_deadline", "registration_limit", "status"}
    for event_status in (EventStatus.ONGOING, EventStatus.COMPLETED, EventStatus.CLOSED, EventStatus.CANCELLED):
        assert EDITABLE_FIELDS[event_status] == {"status"}
    assert {"name", "custom_form", "venue"} <= DRAFT_FIELDS


def test_split_patch_drops_fields_silently():
    applied, ignored = split_patch(
        EventStatus.PUBLISHED,
        {"name": "X", "description": "New", "venue": "H105", "registration_limit": 80},
    )
    assert applied == {"description": "New", "registration_limit": 80}
    assert ignored == ["name", "venue"]

    applied, ignored = split_patch(EventStatus.COMPLETED, {"description": "late", "status": EventStatus.CLOSED})
    assert applied == {"status": EventStatus.CLOSED}
    assert ignored == ["description"]


def test_create_event_always_starts_as_draft(db, make_organizer, now):
    organizer = make_organizer()
    event = create_event(db, organizer, _draft_payload(now, status=EventStatus.PUBLISHED))
    assert event.status == EventStatus.DRAFT
    assert event.registration_count == 0
    assert event.organizer_id == organizer.id


def test_create_event_validates_dates_and_team_sizes(db, make_organizer, now):
    organizer = make_organizer()
    with pytest.raises(ValidationError) as excinfo:
        create_event(db, organizer, _draft_payload(now, registration_deadline=now + timedelta(days=5)))
    assert excinfo.value.code == "InvalidDates"

    with pytest.raises(ValidationError) as excinfo:
        create_event(db, organizer, _draft_payload(now, end_date=now + timedelta(days=2)))
    assert excinfo.value.code == "InvalidDates"

    with pytest.raises(ValidationError) as excinfo:
        create_event(db, organizer, _draft_payload(now, is_team_event=True, min_team_size=4, max_team_size=2))
    assert excinfo.value.code == "InvalidTeamConfig"


def test_published_event_ignores_locked_fields(db, make_organizer, make_event):
    organizer = make_organizer()
    event = make_event(organizer, name="Hack Night", registration_limit=50)

    outcome = apply_event_update(
        db,
        event.id,
        {"name": "X", "description": "Bring laptops", "registration_limit": 100},
        organizer,
    )

    assert outcome.ignored_fields == ["name"]
    assert outcome.event.name == "Hack Night"
    assert outcome.event.description == "Bring laptops"
    assert outcome.event.registration_limit == 100
    assert outcome.notifications == []


def test_finished_event_only_changes_status(db, make_organizer, make_event):
    organizer = make_organizer()
    event = make_event(organizer, status=EventStatus.COMPLETED)

    outcome = apply_event_update(db, event.id, {"description": "Thanks!", "status": EventStatus.CLOSED}, organizer)
    assert outcome.event.status == EventStatus.CLOSED
    assert outcome.event.description == "Overnight hackathon"
    assert outcome.ignored_fields == ["description"]


def test_limit_cannot_drop_below_registrations(db, make_organizer, make_event):
    organizer = make_organizer()
    event = make_event(organizer, registration_limit=10, registration_count=6)
    with pytest.raises(ValidationError) as excinfo:
        apply_event_update(db, event.id, {"registration_limit": 5}, organizer)
    assert excinfo.value.code == "LimitBelowCount"

    assert apply_event_update(db, event.id, {"registration_limit": None}, organizer).event.registration_limit is None


def test_required_fields_cannot_be_cleared(db, make_organizer, make_event):
    organizer = make_organizer()
    published = make_event(organizer)
    with pytest.raises(ValidationError) as excinfo:
        apply_event_update(db, published.id, {"registration_deadline": None}, organizer)
    assert excinfo.value.code == "InvalidField"
    assert excinfo.value.detail["field"] == "registration_deadline"

    draft = make_event(organizer, status=EventStatus.DRAFT)
    with pytest.raises(ValidationError) as excinfo:
        apply_event_update(db, draft.id, {"status": None, "venue": None}, organizer)
    assert excinfo.value.detail["field"] == "status"

    db.expire_all()
    assert db.get(Event, draft.id).status == EventStatus.DRAFT
    assert db.get(Event, published.id).registration_deadline is not None

    # Optional fields may still be cleared.
    assert apply_event_update(db, draft.id, {"venue": None}, organizer).event.venue is None


def test_form_locked_after_first_registration(db, make_organizer, make_participant, make_event, now):
    organizer = make_organizer()
    form = [{"field_type": "text", "label": "Team role", "field_name": "role", "required": False, "options": []}]
    event = make_event(organizer, status=EventStatus.DRAFT, custom_form=form)

    # Drafts may rework the form freely.
    reworked = form + [{"field_type": "text", "label": "GitHub", "field_name": "github", "required": False, "options": []}]
    event = apply_event_update(db, event.id, {"custom_form": reworked, "status": EventStatus.PUBLISHED}, organizer).event
    assert len(event.custom_form) == 2

    register(db, event.id, make_participant(), form_responses={}, now=now)

    with pytest.raises(StateError) as excinfo:
        apply_event_update(db, event.id, {"custom_form": form, "description": "changed"}, organizer)
    assert excinfo.value.code == "FormLocked"
    db.expire_all()
    unchanged = db.get(Event, event.id)
    assert len(unchanged.custom_form) == 2
    assert unchanged.description == "Overnight hackathon"


def test_only_owner_or_admin_may_update(db, make_organizer, make_admin, make_participant, make_event):
    organizer = make_organizer()
    event = make_event(organizer)

    for outsider in (make_organizer(), make_participant()):
        with pytest.raises(AuthorizationError) as excinfo:
            apply_event_update(db, event.id, {"description": "hijacked"}, outsider)
        assert excinfo.value.code == "NotOwner"

    admin = make_admin()
    assert apply_event_update(db, event.id, {"description": "by admin"}, admin).event.description == "by admin"

    with pytest.raises(NotFoundError):
        apply_event_update(db, 424242, {"description": "nothing"}, admin)


def test_publishing_announces_to_webhook(db, make_organizer, make_event):
    organizer = make_organizer(webhook_url="https://discord.example.com/api/webhooks/1/abc")
    event = make_event(organizer, status=EventStatus.DRAFT, registration_fee=99)

    outcome = apply_event_update(db, event.id, {"status": EventStatus.PUBLISHED}, organizer)

    [announcement] = outcome.notifications
    assert announcement.kind == EVENT_PUBLISHED
    assert announcement.payload["webhook_url"] == organizer.webhook_url
    assert announcement.payload["event_name"] == "Hack Night"
    assert announcement.payload["registration_fee"] == 99

    quiet = make_event(make_organizer(), status=EventStatus.DRAFT)
    assert apply_event_update(db, quiet.id, {"status": EventStatus.PUBLISHED}, quiet.organizer).notifications == []


def test_only_drafts_can_be_deleted(db, make_organizer, make_event):
    organizer = make_organizer()
    published = make_event(organizer)
    with pytest.raises(StateError) as excinfo:
        delete_event(db, published.id, organizer)
    assert excinfo.value.code == "CannotDeletePublished"

    draft = make_event(organizer, status=EventStatus.DRAFT)
    db.add(Message(event_id=draft.id, sender_id=organizer.id, sender_role="organizer", body="hello"))
    db.commit()
    delete_event(db, draft.id, organizer)
    assert db.query(Event).filter(Event.id == draft.id).first() is None
    assert db.query(Message).count() == 0


def test_drafts_hidden_from_public(db, make_organizer, make_participant, make_event):
    organizer = make_organizer()
    draft = make_event(organizer, status=EventStatus.DRAFT, name="Secret")
    live = make_event(organizer, name="Open House")

    names = [event.name for event in list_public_events(db)]
    assert names == ["Open House"]

    with pytest.raises(NotFoundError):
        get_event(db, draft.id, make_participant())
    assert get_event(db, draft.id, organizer).name == "Secret"

    assert get_event(db, live.id).views == 1
    assert get_event(db, live.id).views == 2


def test_public_listing_filters(db, make_organizer, make_event):
    robotics = make_organizer(organization_name="Robotics Club")
    music = make_organizer(organization_name="Music Society")
    make_event(robotics, name="Line Follower", tags=["Robotics"])
    make_event(music, name="Open Mic", tags=["Music"], event_type=EventType.MERCHANDISE)

    assert [e.name for e in list_public_events(db, search="robotics club")] == ["Line Follower"]
    assert [e.name for e in list_public_events(db, search="open")] == ["Open Mic"]
    assert [e.name for e in list_public_events(db, tags=["music"])] == ["Open Mic"]
    assert [e.name for e in list_public_events(db, event_type=EventType.MERCHANDISE)] == ["Open Mic"]
    assert [e.name for e in list_public_events(db, organizer_id=robotics.id)] == ["Line Follower"]


def test_participant_ranking_prefers_followed_then_interests(db, make_organizer, make_participant, make_event):
    followed, other = make_organizer(), make_organizer()
    followed_event = make_event(followed, name="Followed", tags=["coding"])
    interest_event = make_event(other, name="Interesting", tags=["music"])
    plain_event = make_event(other, name="Plain", tags=["coding"])

    viewer = make_participant(interests=["Music"])
    viewer.followed.append(followed)
    db.commit()

    ranked = list_public_events(db, viewer=viewer)
    assert [event.id for event in ranked] == [followed_event.id, interest_event.id, plain_event.id]

    # Anonymous visitors see plain newest-first order.
    assert [event.id for event in list_public_events(db)] == [plain_event.id, interest_event.id, followed_event.id]

    only_followed = list_public_events(db, viewer=viewer, followed_only=True)
    assert [event.id for event in only_followed] == [followed_event.id]


def test_trending_orders_by_views(db, make_organizer, make_event, now):
    organizer = make_organizer()
    quiet = make_event(organizer, name="Quiet", views=1)
    busy = make_event(organizer, name="Busy", views=30)
    assert [event.id for event in list_public_events(db, trending=True, now=now)] == [busy.id, quiet.id]
