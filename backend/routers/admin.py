from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from auth import generate_password, get_password_hash
from database import get_db
from errors import ConflictError, NotFoundError
from models import (
    Event,
    EventStatus,
    PasswordResetRequest,
    Registration,
    RegistrationStatus,
    ResetRequestStatus,
    User,
    UserRole,
)
from notifications import (
    PASSWORD_RESET_REVIEWED,
    Notification,
    NotificationSender,
    dispatch_notifications,
    get_notification_sender,
)
from schemas import AdminStatsResponse, PasswordResetResponse, PasswordResetReview, UserResponse
from security import require_admin
from time_utils import now_tz
from utils import log_request_action

router = APIRouter()


def _get_organizer_or_404(db: Session, organizer_id: int) -> User:
    organizer = db.query(User).filter(User.id == organizer_id, User.role == UserRole.ORGANIZER).first()
    if not organizer:
        raise NotFoundError("UserNotFound", "Organizer not found")
    return organizer


def _get_pending_reset_or_error(db: Session, request_id: int) -> PasswordResetRequest:
    row = db.query(PasswordResetRequest).filter(PasswordResetRequest.id == request_id).first()
    if not row:
        raise NotFoundError("ResetRequestNotFound", "Password reset request not found")
    if row.status != ResetRequestStatus.PENDING:
        raise ConflictError("ResetAlreadyReviewed", f"Request already {row.status.value.lower()}")
    return row


@router.get("/admin/organizers", response_model=List[UserResponse])
def list_organizers(
    pending_only: bool = False,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(User).filter(User.role == UserRole.ORGANIZER)
    if pending_only:
        query = query.filter(User.is_approved.is_(False))
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


@router.put("/admin/organizers/{organizer_id}/approve", response_model=UserResponse)
def approve_organizer(
    organizer_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    organizer = _get_organizer_or_404(db, organizer_id)
    organizer.is_approved = True
    organizer.is_active = True
    db.commit()
    db.refresh(organizer)
    log_request_action(db, admin, "approve_organizer", request, meta={"organizer_id": organizer.id})
    return organizer


@router.put("/admin/organizers/{organizer_id}/deactivate", response_model=UserResponse)
def deactivate_organizer(
    organizer_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    organizer = _get_organizer_or_404(db, organizer_id)
    organizer.is_active = False
    db.commit()
    db.refresh(organizer)
    log_request_action(db, admin, "deactivate_organizer", request, meta={"organizer_id": organizer.id})
    return organizer


@router.get("/admin/password-resets", response_model=List[PasswordResetResponse])
def list_password_resets(
    status_filter: Optional[ResetRequestStatus] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(PasswordResetRequest)
    if status_filter:
        query = query.filter(PasswordResetRequest.status == status_filter)
    return query.order_by(PasswordResetRequest.created_at.desc(), PasswordResetRequest.id.desc()).all()


@router.put("/admin/password-resets/{request_id}/approve", response_model=PasswordResetResponse)
def approve_password_reset(
    request_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    payload: Optional[PasswordResetReview] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    row = _get_pending_reset_or_error(db, request_id)
    organizer = row.organizer
    new_password = generate_password()
    now = now_tz()
    organizer.hashed_password = get_password_hash(new_password)
    row.status = ResetRequestStatus.APPROVED
    row.reviewed_by_id = admin.id
    row.reviewed_at = now
    row.admin_comments = payload.comments if payload else None
    row.password_changed = True
    row.password_changed_at = now
    db.commit()
    db.refresh(row)
    log_request_action(db, admin, "approve_password_reset", request, meta={"request_id": row.id})

    notification = Notification(
        kind=PASSWORD_RESET_REVIEWED,
        recipient_email=row.contact_email or organizer.email,
        payload={"name": organizer.name, "approved": True, "new_password": new_password},
    )
    background_tasks.add_task(dispatch_notifications, [notification], sender)
    return row


@router.put("/admin/password-resets/{request_id}/reject", response_model=PasswordResetResponse)
def reject_password_reset(
    request_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    payload: Optional[PasswordResetReview] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    row = _get_pending_reset_or_error(db, request_id)
    organizer = row.organizer
    row.status = ResetRequestStatus.REJECTED
    row.reviewed_by_id = admin.id
    row.reviewed_at = now_tz()
    row.admin_comments = payload.comments if payload else None
    row.rejection_reason = payload.reason if payload else None
    db.commit()
    db.refresh(row)
    log_request_action(db, admin, "reject_password_reset", request, meta={"request_id": row.id})

    notification = Notification(
        kind=PASSWORD_RESET_REVIEWED,
        recipient_email=row.contact_email or organizer.email,
        payload={"name": organizer.name, "approved": False, "reason": row.rejection_reason},
    )
    background_tasks.add_task(dispatch_notifications, [notification], sender)
    return row


@router.get("/admin/stats", response_model=AdminStatsResponse)
def get_stats(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    organizers = db.query(User).filter(User.role == UserRole.ORGANIZER)
    return AdminStatsResponse(
        total_participants=db.query(User).filter(User.role == UserRole.PARTICIPANT).count(),
        total_organizers=organizers.count(),
        pending_organizers=organizers.filter(User.is_approved.is_(False)).count(),
        total_events=db.query(Event).count(),
        published_events=db.query(Event).filter(Event.status == EventStatus.PUBLISHED).count(),
        total_registrations=db.query(Registration).filter(Registration.status != RegistrationStatus.CANCELLED).count(),
        pending_password_resets=db.query(PasswordResetRequest).filter(
            PasswordResetRequest.status == ResetRequestStatus.PENDING
        ).count(),
    )
