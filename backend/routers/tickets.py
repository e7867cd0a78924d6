from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from attendance_service import attendance_report, validate_and_mark
from database import get_db
from models import User
from schemas import AttendanceReportResponse, TicketValidateRequest, TicketValidateResponse
from security import require_event_manager

router = APIRouter()


@router.post("/tickets/validate", response_model=TicketValidateResponse)
def validate_ticket(
    payload: TicketValidateRequest,
    user: User = Depends(require_event_manager),
    db: Session = Depends(get_db),
):
    outcome = validate_and_mark(db, payload.ticket_id, payload.event_id, user)
    registration = outcome.registration
    return TicketValidateResponse(
        valid=True,
        validation_status="valid",
        message="Attendance marked successfully",
        ticket_id=registration.ticket_id,
        participant_name=registration.user.name,
        participant_email=registration.user.email,
        team_name=registration.team.name if registration.team else None,
        marked_at=registration.attendance_marked_at,
    )


@router.get("/tickets/event/{event_id}/attendance", response_model=AttendanceReportResponse)
def get_attendance_report(
    event_id: int,
    user: User = Depends(require_event_manager),
    db: Session = Depends(get_db),
):
    return attendance_report(db, event_id, user)
