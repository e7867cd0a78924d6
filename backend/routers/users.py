from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database import get_db
from errors import NotFoundError
from event_lifecycle import PUBLIC_STATUSES
from models import Event, User, UserRole
from schemas import EventResponse, OrganizerPublicResponse, PreferencesUpdate, UserResponse
from security import require_participant

router = APIRouter()


def _visible_organizers(db: Session):
    return db.query(User).filter(
        User.role == UserRole.ORGANIZER,
        User.is_active.is_(True),
        User.is_approved.is_(True),
    )


def _get_organizer_or_404(db: Session, organizer_id: int) -> User:
    organizer = _visible_organizers(db).filter(User.id == organizer_id).first()
    if not organizer:
        raise NotFoundError("UserNotFound", "Organizer not found")
    return organizer


@router.get("/users/organizers", response_model=List[OrganizerPublicResponse])
def list_organizers(db: Session = Depends(get_db)):
    return _visible_organizers(db).order_by(User.organization_name.asc()).all()


@router.get("/users/organizers/{organizer_id}", response_model=OrganizerPublicResponse)
def get_organizer(organizer_id: int, db: Session = Depends(get_db)):
    return _get_organizer_or_404(db, organizer_id)


@router.get("/users/organizers/{organizer_id}/events", response_model=List[EventResponse])
def list_organizer_events(organizer_id: int, db: Session = Depends(get_db)):
    organizer = _get_organizer_or_404(db, organizer_id)
    return (
        db.query(Event)
        .filter(Event.organizer_id == organizer.id, Event.status.in_(PUBLIC_STATUSES))
        .order_by(Event.start_date.asc())
        .all()
    )


@router.put("/users/preferences", response_model=UserResponse)
def update_preferences(
    payload: PreferencesUpdate,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    updates = payload.model_dump(exclude_unset=True)
    followed_ids = updates.pop("followed_organizer_ids", None)
    for key, value in updates.items():
        setattr(user, key, value)
    if "first_name" in updates or "last_name" in updates:
        user.name = f"{user.first_name or ''} {user.last_name or ''}".strip()
    if followed_ids is not None:
        wanted = set(followed_ids)
        organizers = _visible_organizers(db).filter(User.id.in_(wanted)).all() if wanted else []
        if len(organizers) != len(wanted):
            raise NotFoundError("UserNotFound", "One or more organizers do not exist")
        user.followed = organizers
    db.commit()
    db.refresh(user)
    return user


@router.post("/users/organizers/{organizer_id}/follow", response_model=UserResponse)
def follow_organizer(
    organizer_id: int,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    organizer = _get_organizer_or_404(db, organizer_id)
    if organizer not in user.followed:
        user.followed.append(organizer)
        db.commit()
        db.refresh(user)
    return user


@router.delete("/users/organizers/{organizer_id}/follow", response_model=UserResponse)
def unfollow_organizer(
    organizer_id: int,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    user.followed = [organizer for organizer in user.followed if organizer.id != organizer_id]
    db.commit()
    db.refresh(user)
    return user
