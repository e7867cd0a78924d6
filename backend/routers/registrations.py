from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from models import RegistrationStatus, User
from notifications import NotificationSender, dispatch_notifications, get_notification_sender
from schemas import (
    RegistrationCancel,
    RegistrationCreate,
    RegistrationResponse,
    RegistrationWithEventResponse,
)
from security import require_participant
import registration_service

router = APIRouter()


@router.post("/registrations/{event_id}", response_model=RegistrationResponse)
def register_for_event(
    event_id: int,
    background_tasks: BackgroundTasks,
    payload: Optional[RegistrationCreate] = None,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    payload = payload or RegistrationCreate()
    selection = payload.merchandise_selection.model_dump() if payload.merchandise_selection else None
    outcome = registration_service.register(
        db,
        event_id,
        user,
        form_responses=payload.form_responses,
        merchandise_selection=selection,
    )
    background_tasks.add_task(dispatch_notifications, outcome.notifications, sender)
    return outcome.registration


@router.get("/registrations/mine", response_model=List[RegistrationWithEventResponse])
def list_my_registrations(
    status_filter: Optional[RegistrationStatus] = None,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    return registration_service.list_user_registrations(db, user, status_filter=status_filter)


@router.get("/registrations/ticket/{ticket_id}", response_model=RegistrationWithEventResponse)
def get_ticket(
    ticket_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return registration_service.get_ticket_for_viewer(db, ticket_id, user)


@router.post("/registrations/{registration_id}/cancel", response_model=RegistrationResponse)
def cancel_registration(
    registration_id: int,
    payload: Optional[RegistrationCancel] = None,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    reason = payload.reason if payload else None
    return registration_service.cancel_registration(db, registration_id, user, reason=reason)
