from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from database import get_db
from models import Team, TeamMemberStatus, User
from notifications import NotificationSender, dispatch_notifications, get_notification_sender
from schemas import TeamCreate, TeamFinalizeResponse, TeamJoin, TeamMemberResponse, TeamResponse
from security import require_participant
import team_service

router = APIRouter()

VISIBLE_MEMBER_STATUSES = (TeamMemberStatus.INVITED, TeamMemberStatus.ACCEPTED)


def build_team_response(team: Team, include_removed: bool = False) -> TeamResponse:
    members = [
        TeamMemberResponse(
            user_id=member.user_id,
            name=member.user.name,
            email=member.user.email,
            role=member.role,
            status=member.status,
            joined_at=member.joined_at,
        )
        for member in team.members
        if include_removed or member.status in VISIBLE_MEMBER_STATUSES
    ]
    return TeamResponse(
        id=team.id,
        event_id=team.event_id,
        name=team.name,
        leader_id=team.leader_id,
        invite_code=team.invite_code,
        required_size=team.required_size,
        current_size=team.current_size,
        is_finalized=bool(team.is_finalized),
        status=team.status,
        registered_at=team.registered_at,
        members=members,
    )


@router.post("/teams", response_model=TeamResponse)
def create_team(
    payload: TeamCreate,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    team = team_service.create_team(db, payload.event_id, user, payload.name)
    return build_team_response(team)


@router.post("/teams/join", response_model=TeamResponse)
def join_team(
    payload: TeamJoin,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    team = team_service.join_team(db, payload.invite_code, user)
    return build_team_response(team)


@router.get("/teams/mine", response_model=List[TeamResponse])
def list_my_teams(
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    return [build_team_response(team) for team in team_service.list_user_teams(db, user)]


@router.get("/teams/{team_id}", response_model=TeamResponse)
def get_team(
    team_id: int,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    team = team_service.get_team(db, team_id, user)
    return build_team_response(team)


@router.post("/teams/{team_id}/finalize", response_model=TeamFinalizeResponse)
def finalize_team(
    team_id: int,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
):
    outcome = team_service.finalize_team(db, team_id, user)
    background_tasks.add_task(dispatch_notifications, outcome.notifications, sender)
    return TeamFinalizeResponse(
        registration_count=len(outcome.registrations),
        ticket_ids=[registration.ticket_id for registration in outcome.registrations],
        team=build_team_response(outcome.team),
    )


@router.delete("/teams/{team_id}/members/{user_id}", response_model=TeamResponse)
def remove_team_member(
    team_id: int,
    user_id: int,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    team = team_service.remove_member(db, team_id, user_id, user)
    return build_team_response(team)


@router.delete("/teams/{team_id}", response_model=TeamResponse)
def cancel_team(
    team_id: int,
    user: User = Depends(require_participant),
    db: Session = Depends(get_db),
):
    team = team_service.cancel_team(db, team_id, user)
    return build_team_response(team, include_removed=True)
