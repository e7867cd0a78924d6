from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from auth import get_optional_user
from database import get_db
from models import Eligibility, EventStatus, EventType, RegistrationStatus, User
from notifications import NotificationSender, dispatch_notifications, get_notification_sender
from routers.teams import build_team_response
from schemas import (
    EventCreate,
    EventDetailResponse,
    EventResponse,
    EventUpdate,
    RegistrationWithUserResponse,
    TeamResponse,
)
from security import require_event_manager, require_organizer
from utils import log_request_action
import event_lifecycle
import registration_service
import team_service

router = APIRouter()


@router.get("/events", response_model=List[EventResponse])
def list_events(
    search: Optional[str] = None,
    event_type: Optional[EventType] = None,
    eligibility: Optional[Eligibility] = None,
    organizer_id: Optional[int] = None,
    tags: Optional[List[str]] = Query(None),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    followed_only: bool = False,
    trending: bool = False,
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return event_lifecycle.list_public_events(
        db,
        viewer=viewer,
        search=search,
        event_type=event_type,
        eligibility=eligibility,
        organizer_id=organizer_id,
        tags=tags,
        date_from=date_from,
        date_to=date_to,
        followed_only=followed_only,
        trending=trending,
    )


@router.get("/events/organizer/mine", response_model=List[EventResponse])
def list_my_events(
    status_filter: Optional[EventStatus] = None,
    user: User = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    return event_lifecycle.list_organizer_events(db, user, status_filter=status_filter)


@router.get("/events/{event_id}", response_model=EventDetailResponse)
def get_event(
    event_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    return event_lifecycle.get_event(db, event_id, viewer=viewer)


@router.post("/events", response_model=EventResponse)
def create_event(
    payload: EventCreate,
    request: Request,
    user: User = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    event = event_lifecycle.create_event(db, user, payload.model_dump())
    log_request_action(db, user, "create_event", request, meta={"event_id": event.id})
    return event


@router.put("/events/{event_id}", response_model=EventResponse)
def update_event(
    event_id: int,
    payload: EventUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_event_manager),
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    outcome = event_lifecycle.apply_event_update(db, event_id, payload.model_dump(exclude_unset=True), user)
    log_request_action(
        db,
        user,
        "update_event",
        request,
        meta={"event_id": event_id, "ignored_fields": outcome.ignored_fields},
    )
    background_tasks.add_task(dispatch_notifications, outcome.notifications, sender)
    return outcome.event


@router.delete("/events/{event_id}")
def delete_event(
    event_id: int,
    request: Request,
    user: User = Depends(require_event_manager),
    db: Session = Depends(get_db),
):
    event_lifecycle.delete_event(db, event_id, user)
    log_request_action(db, user, "delete_event", request, meta={"event_id": event_id})
    return {"message": "Event deleted"}


@router.get("/events/{event_id}/registrations", response_model=List[RegistrationWithUserResponse])
def list_event_registrations(
    event_id: int,
    search: Optional[str] = None,
    status_filter: Optional[RegistrationStatus] = None,
    attended: Optional[bool] = None,
    user: User = Depends(require_event_manager),
    db: Session = Depends(get_db),
):
    return registration_service.list_event_registrations(
        db,
        event_id,
        user,
        search=search,
        status_filter=status_filter,
        attended=attended,
    )


@router.get("/events/{event_id}/teams", response_model=List[TeamResponse])
def list_event_teams(
    event_id: int,
    user: User = Depends(require_event_manager),
    db: Session = Depends(get_db),
):
    return [build_team_response(team) for team in team_service.list_event_teams(db, event_id, user)]
