"""Ticket scanning and attendance reporting.

Every scan that resolves to a registration is appended to its scan history
with the outcome and bumps ``scan_count``, whether or not attendance gets
marked. Marking itself is a guarded update on ``attendance_marked = false``
so two simultaneous scans of one ticket mark it exactly once.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from errors import NotFoundError, StateError, ValidationError
from event_lifecycle import ensure_can_manage, load_event
from models import Registration, RegistrationStatus, ScanRecord, User
from time_utils import now_tz

logger = logging.getLogger(__name__)

SCANNABLE_STATUSES = (RegistrationStatus.REGISTERED, RegistrationStatus.ATTENDED)

SCAN_SUCCESS = "success"
SCAN_WRONG_EVENT = "wrong_event"
SCAN_INVALID_STATUS = "invalid_status"
SCAN_ALREADY_SCANNED = "already_scanned"


@dataclass
class ScanOutcome:
    registration: Registration
    result: str = SCAN_SUCCESS


def _record_attempt(db: Session, registration: Registration, scanner: User, event_id: int, result: str, now: datetime) -> None:
    db.add(
        ScanRecord(
            registration_id=registration.id,
            scanned_by_id=scanner.id,
            scanned_event_id=event_id,
            result=result,
            scanned_at=now,
        )
    )
    db.query(Registration).filter(Registration.id == registration.id).update(
        {Registration.scan_count: Registration.scan_count + 1},
        synchronize_session=False,
    )
    db.commit()
    logger.info("Ticket %s scan rejected (%s) by %s", registration.ticket_id, result, scanner.id)


def _already_scanned(registration: Registration) -> StateError:
    marked_at = registration.attendance_marked_at
    return StateError(
        "AlreadyScanned",
        "Attendance already marked for this ticket",
        extra={
            "validation_status": SCAN_ALREADY_SCANNED,
            "marked_at": marked_at.isoformat() if marked_at else None,
        },
    )


def validate_and_mark(
    db: Session,
    ticket_id: str,
    event_id: int,
    scanner: User,
    now: Optional[datetime] = None,
) -> ScanOutcome:
    now = now or now_tz()
    event = load_event(db, event_id)
    ensure_can_manage(event, scanner)

    registration = db.query(Registration).filter(Registration.ticket_id == str(ticket_id or "").strip()).first()
    if not registration:
        raise NotFoundError("TicketNotFound", "Ticket not found", extra={"validation_status": "invalid"})

    if int(registration.event_id) != int(event.id):
        _record_attempt(db, registration, scanner, event_id, SCAN_WRONG_EVENT, now)
        raise ValidationError(
            "WrongEvent",
            "This ticket does not belong to this event",
            extra={"validation_status": SCAN_WRONG_EVENT},
        )
    if registration.status not in SCANNABLE_STATUSES:
        current = registration.status.value
        _record_attempt(db, registration, scanner, event_id, SCAN_INVALID_STATUS, now)
        raise StateError(
            "InvalidStatus",
            f"Registration status is {current}",
            extra={"validation_status": SCAN_INVALID_STATUS},
        )
    if registration.attendance_marked:
        error = _already_scanned(registration)
        _record_attempt(db, registration, scanner, event_id, SCAN_ALREADY_SCANNED, now)
        raise error

    registration_id = registration.id
    marked = db.query(Registration).filter(
        Registration.id == registration_id,
        Registration.attendance_marked.is_(False),
        Registration.status.in_(SCANNABLE_STATUSES),
    ).update(
        {
            Registration.attendance_marked: True,
            Registration.attendance_marked_at: now,
            Registration.attendance_marked_by_id: scanner.id,
            Registration.status: RegistrationStatus.ATTENDED,
            Registration.scan_count: Registration.scan_count + 1,
        },
        synchronize_session=False,
    )
    if not marked:
        # Lost the race to a concurrent scan of the same ticket.
        db.rollback()
        registration = db.query(Registration).filter(Registration.id == registration_id).first()
        error = _already_scanned(registration)
        _record_attempt(db, registration, scanner, event_id, SCAN_ALREADY_SCANNED, now)
        raise error

    db.add(
        ScanRecord(
            registration_id=registration_id,
            scanned_by_id=scanner.id,
            scanned_event_id=event_id,
            result=SCAN_SUCCESS,
            scanned_at=now,
        )
    )
    db.commit()
    db.refresh(registration)
    logger.info("Attendance marked for ticket %s at event %s by %s", registration.ticket_id, event_id, scanner.id)
    return ScanOutcome(registration=registration)


def attendance_report(db: Session, event_id: int, actor: User) -> dict:
    event = load_event(db, event_id)
    ensure_can_manage(event, actor)
    registrations = (
        db.query(Registration)
        .filter(
            Registration.event_id == event.id,
            Registration.status != RegistrationStatus.CANCELLED,
        )
        .order_by(Registration.attendance_marked_at.desc(), Registration.id.asc())
        .all()
    )
    total = len(registrations)
    attended = sum(1 for registration in registrations if registration.attendance_marked)
    rows = []
    for registration in registrations:
        rows.append({
            "ticket_id": registration.ticket_id,
            "user_id": registration.user_id,
            "name": registration.user.name if registration.user else None,
            "email": registration.user.email if registration.user else None,
            "team_name": registration.team.name if registration.team else None,
            "status": registration.status.value,
            "registered_at": registration.created_at,
            "attendance_marked": bool(registration.attendance_marked),
            "attendance_marked_at": registration.attendance_marked_at,
            "scan_count": int(registration.scan_count or 0),
        })
    return {
        "event_id": event.id,
        "event_name": event.name,
        "statistics": {
            "total_registrations": total,
            "attended": attended,
            "not_attended": total - attended,
            "attendance_rate": round(attended * 100.0 / total, 2) if total else 0.0,
        },
        "registrations": rows,
    }
