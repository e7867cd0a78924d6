"""Event creation, status-dependent editing, deletion and public browsing.

Which fields an update may touch is decided by :data:`EDITABLE_FIELDS`, a
table from the event's current status to the whitelist of writable fields.
Fields outside the whitelist are dropped from the patch, not rejected; the
one exception is ``custom_form`` on an event whose form is already locked,
which rejects the whole update.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from errors import AuthorizationError, NotFoundError, StateError, ValidationError
from models import Event, EventStatus, Message, User, UserRole
from notifications import EVENT_PUBLISHED, Notification
from time_utils import ensure_timezone, now_tz

logger = logging.getLogger(__name__)

DRAFT_FIELDS = frozenset({
    "name",
    "description",
    "event_type",
    "eligibility",
    "registration_deadline",
    "start_date",
    "end_date",
    "registration_limit",
    "registration_fee",
    "tags",
    "custom_form",
    "is_team_event",
    "min_team_size",
    "max_team_size",
    "merchandise",
    "stock_quantity",
    "purchase_limit",
    "venue",
    "banner_image",
    "status",
})
PUBLISHED_FIELDS = frozenset({"description", "registration_deadline", "registration_limit", "status"})
STATUS_ONLY = frozenset({"status"})
NULLABLE_FIELDS = frozenset({"registration_limit", "custom_form", "merchandise", "venue", "banner_image"})

EDITABLE_FIELDS: Dict[EventStatus, FrozenSet[str]] = {
    EventStatus.DRAFT: DRAFT_FIELDS,
    EventStatus.PUBLISHED: PUBLISHED_FIELDS,
    EventStatus.ONGOING: STATUS_ONLY,
    EventStatus.COMPLETED: STATUS_ONLY,
    EventStatus.CLOSED: STATUS_ONLY,
    EventStatus.CANCELLED: STATUS_ONLY,
}

PUBLIC_STATUSES = (EventStatus.PUBLISHED, EventStatus.ONGOING)
TRENDING_LIMIT = 5
TRENDING_WINDOW = timedelta(hours=24)


@dataclass
class EventUpdateOutcome:
    event: Event
    ignored_fields: List[str] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)


def editable_fields(event_status: EventStatus) -> FrozenSet[str]:
    return EDITABLE_FIELDS[event_status]


def split_patch(event_status: EventStatus, patch: dict) -> Tuple[dict, List[str]]:
    """Partition ``patch`` into the fields writable in ``event_status`` and the ignored rest."""
    allowed = editable_fields(event_status)
    applied = {key: value for key, value in patch.items() if key in allowed}
    ignored = sorted(key for key in patch if key not in allowed)
    return applied, ignored


def load_event(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise NotFoundError("EventNotFound", "Event not found")
    return event


def can_manage(event: Event, actor: User) -> bool:
    if actor.role == UserRole.ADMIN:
        return True
    return actor.role == UserRole.ORGANIZER and int(event.organizer_id) == int(actor.id)


def ensure_can_manage(event: Event, actor: User) -> None:
    if not can_manage(event, actor):
        raise AuthorizationError("NotOwner", "You are not authorized to manage this event")


def _validate_dates(deadline: datetime, start: datetime, end: datetime) -> None:
    deadline, start, end = ensure_timezone(deadline), ensure_timezone(start), ensure_timezone(end)
    if deadline > start:
        raise ValidationError("InvalidDates", "Registration deadline must be on or before the start date")
    if start > end:
        raise ValidationError("InvalidDates", "End date must be on or after the start date")


def _validate_team_config(is_team_event: bool, min_size: int, max_size: int) -> None:
    if not is_team_event:
        return
    if min_size < 1 or max_size < min_size:
        raise ValidationError("InvalidTeamConfig", "Team sizes must satisfy 1 <= min team size <= max team size")


def _merged(event: Event, changes: dict, name: str):
    return changes[name] if name in changes else getattr(event, name)


def create_event(db: Session, organizer: User, payload: dict) -> Event:
    """Create a new event owned by ``organizer``; every event starts as a draft."""
    values = dict(payload)
    values.pop("status", None)
    _validate_dates(values["registration_deadline"], values["start_date"], values["end_date"])
    _validate_team_config(
        bool(values.get("is_team_event")),
        int(values.get("min_team_size") or 1),
        int(values.get("max_team_size") or 1),
    )

    event = Event(organizer_id=organizer.id, status=EventStatus.DRAFT, registration_count=0, **values)
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Event %s created as draft by organizer %s", event.id, organizer.id)
    return event


def apply_event_update(
    db: Session,
    event_id: int,
    patch: dict,
    actor: User,
    now: Optional[datetime] = None,
) -> EventUpdateOutcome:
    event = load_event(db, event_id)
    ensure_can_manage(event, actor)

    if "custom_form" in patch and event.custom_form_locked:
        raise StateError("FormLocked", "Custom form is locked after the first registration")

    changes, ignored = split_patch(event.status, patch)
    if ignored:
        logger.debug("Event %s (%s): ignoring non-editable fields %s", event.id, event.status.value, ignored)

    cleared = sorted(key for key, value in changes.items() if value is None and key not in NULLABLE_FIELDS)
    if cleared:
        raise ValidationError("InvalidField", f"{cleared[0]} cannot be empty", {"field": cleared[0]})

    _validate_dates(
        _merged(event, changes, "registration_deadline"),
        _merged(event, changes, "start_date"),
        _merged(event, changes, "end_date"),
    )
    _validate_team_config(
        bool(_merged(event, changes, "is_team_event")),
        int(_merged(event, changes, "min_team_size") or 1),
        int(_merged(event, changes, "max_team_size") or 1),
    )
    if "registration_limit" in changes and changes["registration_limit"] is not None:
        if int(changes["registration_limit"]) < int(event.registration_count or 0):
            raise ValidationError(
                "LimitBelowCount",
                f"Registration limit cannot be lower than the current count ({event.registration_count})",
            )

    previous_status = event.status
    for key, value in changes.items():
        setattr(event, key, value)
    db.commit()
    db.refresh(event)

    notifications = []
    if event.status != previous_status:
        logger.info("Event %s moved %s -> %s", event.id, previous_status.value, event.status.value)
        if previous_status == EventStatus.DRAFT and event.status == EventStatus.PUBLISHED:
            announcement = _publish_announcement(event)
            if announcement:
                notifications.append(announcement)
    return EventUpdateOutcome(event=event, ignored_fields=ignored, notifications=notifications)


def _publish_announcement(event: Event) -> Optional[Notification]:
    organizer = event.organizer
    if not organizer or not organizer.webhook_url:
        return None
    deadline = ensure_timezone(event.registration_deadline)
    return Notification(
        kind=EVENT_PUBLISHED,
        recipient_email=None,
        payload={
            "webhook_url": organizer.webhook_url,
            "event_name": event.name,
            "description": event.description,
            "event_type": event.event_type.value,
            "registration_fee": event.registration_fee,
            "registration_deadline": deadline.strftime("%d %b %Y") if deadline else None,
            "organizer_name": organizer.organization_name or organizer.name,
        },
    )


def delete_event(db: Session, event_id: int, actor: User) -> None:
    event = load_event(db, event_id)
    ensure_can_manage(event, actor)
    if event.status != EventStatus.DRAFT:
        raise StateError("CannotDeletePublished", "Only draft events can be deleted")
    db.query(Message).filter(Message.event_id == event.id).delete(synchronize_session=False)
    db.delete(event)
    db.commit()
    logger.info("Draft event %s deleted by %s", event_id, actor.id)


def _tags_match(tags: Optional[Iterable[str]], wanted: Iterable[str]) -> bool:
    lowered = {str(tag).strip().lower() for tag in wanted if str(tag).strip()}
    return any(str(tag).strip().lower() in lowered for tag in (tags or []))


def _relevance(event: Event, followed_ids: set, interests: List[str]) -> int:
    score = 0
    if event.organizer_id in followed_ids:
        score += 2
    if interests and _tags_match(event.tags, interests):
        score += 1
    return score


def list_public_events(
    db: Session,
    viewer: Optional[User] = None,
    search: Optional[str] = None,
    event_type=None,
    eligibility=None,
    organizer_id: Optional[int] = None,
    tags: Optional[List[str]] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    followed_only: bool = False,
    trending: bool = False,
    now: Optional[datetime] = None,
) -> List[Event]:
    query = db.query(Event).filter(Event.status.in_(PUBLIC_STATUSES))
    if search:
        pattern = f"%{search.strip().lower()}%"
        organizer_ids = db.query(User.id).filter(func.lower(User.organization_name).like(pattern))
        query = query.filter(
            or_(
                func.lower(Event.name).like(pattern),
                func.lower(Event.description).like(pattern),
                Event.organizer_id.in_(organizer_ids),
            )
        )
    if event_type:
        query = query.filter(Event.event_type == event_type)
    if eligibility:
        query = query.filter(Event.eligibility == eligibility)
    if organizer_id:
        query = query.filter(Event.organizer_id == organizer_id)
    if date_from:
        query = query.filter(Event.start_date >= date_from)
    if date_to:
        query = query.filter(Event.start_date <= date_to)

    is_participant = viewer is not None and viewer.role == UserRole.PARTICIPANT
    followed_ids = {organizer.id for organizer in viewer.followed} if is_participant else set()
    if followed_only and followed_ids:
        query = query.filter(Event.organizer_id.in_(followed_ids))

    if trending:
        since = (now or now_tz()) - TRENDING_WINDOW
        query = query.filter(or_(Event.updated_at >= since, Event.created_at >= since))
        return query.order_by(Event.views.desc(), Event.id.desc()).limit(TRENDING_LIMIT).all()

    events = query.order_by(Event.created_at.desc(), Event.id.desc()).all()
    # JSON tag columns are filtered in Python so SQLite and PostgreSQL behave alike.
    if tags:
        events = [event for event in events if _tags_match(event.tags, tags)]
    if is_participant:
        interests = list(viewer.interests or [])
        # sorted() is stable, so equal scores keep newest-first order
        events = sorted(events, key=lambda event: -_relevance(event, followed_ids, interests))
    return events


def get_event(db: Session, event_id: int, viewer: Optional[User] = None) -> Event:
    """Fetch an event for display; non-public events are visible only to their managers."""
    event = load_event(db, event_id)
    if event.status == EventStatus.DRAFT and not (viewer and can_manage(event, viewer)):
        raise NotFoundError("EventNotFound", "Event not found")
    if event.status in PUBLIC_STATUSES:
        db.query(Event).filter(Event.id == event.id).update(
            {Event.views: Event.views + 1},
            synchronize_session=False,
        )
        db.commit()
        db.refresh(event)
    return event


def list_organizer_events(db: Session, organizer: User, status_filter: Optional[EventStatus] = None) -> List[Event]:
    query = db.query(Event).filter(Event.organizer_id == organizer.id)
    if status_filter:
        query = query.filter(Event.status == status_filter)
    return query.order_by(Event.created_at.desc(), Event.id.desc()).all()
