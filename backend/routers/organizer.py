from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from errors import AuthorizationError, ConflictError
from models import (
    Event,
    PasswordResetRequest,
    PaymentStatus,
    Registration,
    RegistrationStatus,
    ResetRequestStatus,
    User,
    UserRole,
)
from schemas import (
    OrganizerDashboardResponse,
    OrganizerProfileResponse,
    OrganizerProfileUpdate,
    PasswordResetRequestCreate,
    PasswordResetResponse,
)
from security import require_organizer
from utils import log_request_action

router = APIRouter()


@router.get("/organizer/profile", response_model=OrganizerProfileResponse)
def get_profile(user: User = Depends(require_organizer)):
    return user


@router.put("/organizer/profile", response_model=OrganizerProfileResponse)
def update_profile(
    payload: OrganizerProfileUpdate,
    request: Request,
    user: User = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    updates = payload.model_dump(exclude_unset=True)
    for key, value in updates.items():
        setattr(user, key, value)
    if updates.get("organization_name"):
        user.name = updates["organization_name"]
    db.commit()
    db.refresh(user)
    log_request_action(db, user, "update_organizer_profile", request, meta={"fields": sorted(updates)})
    return user


@router.get("/organizer/dashboard", response_model=OrganizerDashboardResponse)
def get_dashboard(
    user: User = Depends(require_organizer),
    db: Session = Depends(get_db),
):
    status_rows = (
        db.query(Event.status, func.count(Event.id))
        .filter(Event.organizer_id == user.id)
        .group_by(Event.status)
        .all()
    )
    events_by_status = {event_status.value: count for event_status, count in status_rows}

    active = (
        db.query(Registration)
        .join(Event, Registration.event_id == Event.id)
        .filter(Event.organizer_id == user.id, Registration.status != RegistrationStatus.CANCELLED)
    )
    total_registrations = active.count()
    total_attended = active.filter(Registration.attendance_marked.is_(True)).count()
    revenue = (
        db.query(func.coalesce(func.sum(Registration.payment_amount), 0))
        .join(Event, Registration.event_id == Event.id)
        .filter(
            Event.organizer_id == user.id,
            Registration.status != RegistrationStatus.CANCELLED,
            Registration.payment_status == PaymentStatus.COMPLETED,
        )
        .scalar()
    )
    return OrganizerDashboardResponse(
        total_events=sum(events_by_status.values()),
        events_by_status=events_by_status,
        total_registrations=total_registrations,
        total_attended=total_attended,
        total_revenue=float(revenue or 0),
    )


@router.post("/organizer/password-reset", response_model=PasswordResetResponse)
def request_password_reset(
    payload: PasswordResetRequestCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Open to unapproved organizers as well.
    if user.role != UserRole.ORGANIZER:
        raise AuthorizationError("RoleRequired", "Access restricted to organizer accounts")
    pending = db.query(PasswordResetRequest).filter(
        PasswordResetRequest.organizer_id == user.id,
        PasswordResetRequest.status == ResetRequestStatus.PENDING,
    ).first()
    if pending:
        raise ConflictError("ResetAlreadyPending", "You already have a pending password reset request")
    row = PasswordResetRequest(
        organizer_id=user.id,
        reason=payload.reason.strip(),
        status=ResetRequestStatus.PENDING,
        contact_email=user.contact_email or user.email,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.get("/organizer/password-reset", response_model=List[PasswordResetResponse])
def list_my_password_resets(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if user.role != UserRole.ORGANIZER:
        raise AuthorizationError("RoleRequired", "Access restricted to organizer accounts")
    return (
        db.query(PasswordResetRequest)
        .filter(PasswordResetRequest.organizer_id == user.id)
        .order_by(PasswordResetRequest.created_at.desc(), PasswordResetRequest.id.desc())
        .all()
    )
