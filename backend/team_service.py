"""Team formation: create, join by invite code, remove, cancel and finalize.

Team states run Forming -> Complete -> Registered, with Cancelled as a side
exit. The leader is stored as an Accepted member row, so ``current_size``
always equals the number of Accepted rows. Joining never finalizes a team;
finalization is an explicit leader action that fans out into one
registration per accepted member inside a single transaction.
"""
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eligibility import eligibility_message, matches_eligibility
from errors import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
from event_lifecycle import can_manage, ensure_can_manage, load_event
from models import (
    Event,
    EventStatus,
    Registration,
    RegistrationStatus,
    Team,
    TeamMember,
    TeamMemberStatus,
    TeamStatus,
    User,
)
from notifications import TEAM_FINALIZED, Notification
from registration_service import (
    active_registration,
    claim_capacity,
    initial_payment,
    lock_custom_form,
    make_ticket_id,
)
from time_utils import has_passed, now_tz

logger = logging.getLogger(__name__)

ACTIVE_MEMBER_STATUSES = (TeamMemberStatus.INVITED, TeamMemberStatus.ACCEPTED)


@dataclass
class TeamFinalizeOutcome:
    team: Team
    registrations: List[Registration] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)


def normalize_invite_code(value: str) -> str:
    return str(value or "").strip().upper()


def make_invite_code() -> str:
    return f"TEAM-{secrets.token_hex(4).upper()}"


def next_invite_code(db: Session) -> str:
    candidate = make_invite_code()
    while db.query(Team.id).filter(Team.invite_code == candidate).first():
        candidate = make_invite_code()
    return candidate


def load_team(db: Session, team_id: int) -> Team:
    team = db.query(Team).filter(Team.id == team_id).first()
    if not team:
        raise NotFoundError("TeamNotFound", "Team not found")
    return team


def active_membership(db: Session, event_id: int, user_id: int) -> Optional[TeamMember]:
    return db.query(TeamMember).join(Team, TeamMember.team_id == Team.id).filter(
        TeamMember.event_id == event_id,
        TeamMember.user_id == user_id,
        TeamMember.status.in_(ACTIVE_MEMBER_STATUSES),
        Team.status != TeamStatus.CANCELLED,
    ).first()


def accepted_members(team: Team) -> List[TeamMember]:
    return [member for member in team.members if member.status == TeamMemberStatus.ACCEPTED]


def _ensure_leader(team: Team, user: User) -> None:
    if int(team.leader_id) != int(user.id):
        raise AuthorizationError("NotLeader", "Only the team leader can do this")


def _ensure_mutable(team: Team) -> None:
    if team.status == TeamStatus.CANCELLED:
        raise StateError("TeamCancelled", "This team has been cancelled")
    if team.is_finalized:
        raise ConflictError("AlreadyFinalized", "Team is already finalized")


def _ensure_eligible(event: Event, user: User) -> None:
    if not matches_eligibility(event, user):
        raise AuthorizationError("NotEligible", eligibility_message(event))


def create_team(
    db: Session,
    event_id: int,
    leader: User,
    name: str,
    now: Optional[datetime] = None,
) -> Team:
    now = now or now_tz()
    event = load_event(db, event_id)
    if not event.is_team_event:
        raise ValidationError("NotTeamEvent", "This is not a team event")
    if event.status != EventStatus.PUBLISHED:
        raise StateError("RegistrationClosed", "Event is not open for registration")
    if has_passed(event.registration_deadline, now):
        raise StateError("DeadlinePassed", "Registration deadline has passed")
    _ensure_eligible(event, leader)
    if active_membership(db, event.id, leader.id):
        raise ConflictError("AlreadyInTeam", "You are already in a team for this event")
    if active_registration(db, event.id, leader.id):
        raise ConflictError("AlreadyRegistered", "You are already registered for this event")

    required_size = int(event.max_team_size or 1)
    team = Team(
        event_id=event.id,
        name=str(name or "").strip(),
        leader_id=leader.id,
        invite_code=next_invite_code(db),
        required_size=required_size,
        current_size=1,
        is_finalized=False,
        status=TeamStatus.COMPLETE if required_size <= 1 else TeamStatus.FORMING,
    )
    db.add(team)
    try:
        db.flush()
        db.add(
            TeamMember(
                team_id=team.id,
                event_id=event.id,
                user_id=leader.id,
                role="leader",
                status=TeamMemberStatus.ACCEPTED,
                joined_at=now,
                responded_at=now,
            )
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("AlreadyInTeam", "You are already in a team for this event")
    db.refresh(team)
    logger.info("Team %s (%s) created for event %s by user %s", team.id, team.invite_code, event.id, leader.id)
    return team


def join_team(db: Session, invite_code: str, user: User, now: Optional[datetime] = None) -> Team:
    now = now or now_tz()
    code = normalize_invite_code(invite_code)
    team = db.query(Team).filter(Team.invite_code == code).first()
    if not team:
        raise NotFoundError("InviteCodeNotFound", "Invalid invite code")
    _ensure_mutable(team)
    event = team.event
    if has_passed(event.registration_deadline, now):
        raise StateError("DeadlinePassed", "Registration deadline has passed")
    _ensure_eligible(event, user)

    membership = active_membership(db, event.id, user.id)
    if membership and membership.team_id == team.id:
        raise ConflictError("AlreadyInTeam", "You are already a member of this team")
    if membership:
        raise ConflictError("AlreadyInOtherTeam", "You are already in another team for this event")
    if team.current_size >= team.required_size:
        raise ConflictError("TeamFull", "Team is full")

    team_id, event_id = team.id, event.id
    seat_taken = db.query(Team).filter(
        Team.id == team_id,
        Team.is_finalized.is_(False),
        Team.status != TeamStatus.CANCELLED,
        Team.current_size < Team.required_size,
    ).update({Team.current_size: Team.current_size + 1}, synchronize_session=False)
    if not seat_taken:
        db.rollback()
        raise ConflictError("TeamFull", "Team is full")

    db.add(
        TeamMember(
            team_id=team_id,
            event_id=event_id,
            user_id=user.id,
            role="member",
            status=TeamMemberStatus.ACCEPTED,
            joined_at=now,
            responded_at=now,
        )
    )
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("AlreadyInOtherTeam", "You are already in another team for this event")

    db.query(Team).filter(
        Team.id == team_id,
        Team.status == TeamStatus.FORMING,
        Team.current_size >= Team.required_size,
    ).update({Team.status: TeamStatus.COMPLETE}, synchronize_session=False)
    db.commit()
    team = load_team(db, team_id)
    logger.info("User %s joined team %s (%s/%s)", user.id, team.id, team.current_size, team.required_size)
    return team


def finalize_team(db: Session, team_id: int, user: User, now: Optional[datetime] = None) -> TeamFinalizeOutcome:
    now = now or now_tz()
    team = load_team(db, team_id)
    _ensure_leader(team, user)
    _ensure_mutable(team)
    event = team.event
    if int(team.current_size) < int(event.min_team_size or 1):
        raise StateError(
            "BelowMinimumSize",
            f"Team needs at least {event.min_team_size} members (currently {team.current_size})",
        )

    members = accepted_members(team)
    event_id, has_form = event.id, bool(event.custom_form)
    flipped = db.query(Team).filter(
        Team.id == team.id,
        Team.is_finalized.is_(False),
        Team.status != TeamStatus.CANCELLED,
    ).update(
        {Team.is_finalized: True, Team.status: TeamStatus.REGISTERED, Team.registered_at: now},
        synchronize_session=False,
    )
    if not flipped:
        db.rollback()
        raise ConflictError("AlreadyFinalized", "Team is already finalized")

    amount, payment_status, approval_status = initial_payment(event)
    issued = set()
    registrations = []
    for member in members:
        if active_registration(db, event_id, member.user_id):
            name = member.user.name
            db.rollback()
            raise ConflictError("AlreadyRegistered", f"{name} is already registered for this event")
        ticket_id = make_ticket_id(now)
        while ticket_id in issued or db.query(Registration.id).filter(Registration.ticket_id == ticket_id).first():
            ticket_id = make_ticket_id(now)
        issued.add(ticket_id)
        registration = Registration(
            event_id=event_id,
            user_id=member.user_id,
            team_id=team.id,
            ticket_id=ticket_id,
            status=RegistrationStatus.REGISTERED,
            form_responses={},
            payment_amount=amount,
            payment_status=payment_status,
            payment_approval_status=approval_status,
        )
        db.add(registration)
        registrations.append(registration)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("AlreadyRegistered", "A team member is already registered for this event")

    if not claim_capacity(db, event_id, seats=len(registrations)):
        db.rollback()
        raise ConflictError("LimitReached", "Not enough registration slots left for the whole team")
    if has_form:
        lock_custom_form(db, event_id)
    db.commit()

    team = load_team(db, team_id)
    event = team.event
    member_names = [member.user.name for member in accepted_members(team)]
    leader_name = team.leader.name
    notifications = []
    for registration in registrations:
        db.refresh(registration)
        notifications.append(
            Notification(
                kind=TEAM_FINALIZED,
                recipient_email=registration.user.email,
                payload={
                    "name": registration.user.name,
                    "team_name": team.name,
                    "leader_name": leader_name,
                    "event_name": event.name,
                    "members": member_names,
                    "ticket_id": registration.ticket_id,
                },
            )
        )
    logger.info("Team %s finalized for event %s with %s registrations", team.id, event.id, len(registrations))
    return TeamFinalizeOutcome(team=team, registrations=registrations, notifications=notifications)


def remove_member(
    db: Session,
    team_id: int,
    target_user_id: int,
    acting_user: User,
    now: Optional[datetime] = None,
) -> Team:
    team = load_team(db, team_id)
    _ensure_leader(team, acting_user)
    _ensure_mutable(team)
    if int(target_user_id) == int(team.leader_id):
        raise ValidationError("CannotRemoveLeader", "The team leader cannot be removed")

    member = next(
        (
            row for row in team.members
            if int(row.user_id) == int(target_user_id) and row.status in ACTIVE_MEMBER_STATUSES
        ),
        None,
    )
    if not member:
        raise NotFoundError("MemberNotFound", "Member not found in this team")

    was_accepted = member.status == TeamMemberStatus.ACCEPTED
    member.status = TeamMemberStatus.REMOVED
    member.responded_at = now or now_tz()
    if was_accepted:
        released = db.query(Team).filter(
            Team.id == team.id,
            Team.is_finalized.is_(False),
            Team.status != TeamStatus.CANCELLED,
            Team.current_size > 1,
        ).update(
            {Team.current_size: Team.current_size - 1, Team.status: TeamStatus.FORMING},
            synchronize_session=False,
        )
        if not released:
            db.rollback()
            raise ConflictError("AlreadyFinalized", "Team is already finalized")
    db.commit()
    logger.info("User %s removed from team %s by %s", target_user_id, team_id, acting_user.id)
    return load_team(db, team_id)


def cancel_team(db: Session, team_id: int, user: User, now: Optional[datetime] = None) -> Team:
    now = now or now_tz()
    team = load_team(db, team_id)
    _ensure_leader(team, user)
    _ensure_mutable(team)

    cancelled = db.query(Team).filter(
        Team.id == team.id,
        Team.is_finalized.is_(False),
        Team.status != TeamStatus.CANCELLED,
    ).update({Team.status: TeamStatus.CANCELLED, Team.current_size: 0}, synchronize_session=False)
    if not cancelled:
        db.rollback()
        raise ConflictError("AlreadyFinalized", "Team is already finalized")
    db.query(TeamMember).filter(
        TeamMember.team_id == team.id,
        TeamMember.status.in_(ACTIVE_MEMBER_STATUSES),
    ).update(
        {TeamMember.status: TeamMemberStatus.REMOVED, TeamMember.responded_at: now},
        synchronize_session=False,
    )
    db.commit()
    logger.info("Team %s cancelled by leader %s", team_id, user.id)
    return load_team(db, team_id)


def get_team(db: Session, team_id: int, viewer: User) -> Team:
    team = load_team(db, team_id)
    if any(int(member.user_id) == int(viewer.id) for member in team.members):
        return team
    if can_manage(team.event, viewer):
        return team
    raise AuthorizationError("NotTeamMember", "You are not a member of this team")


def list_user_teams(db: Session, user: User) -> List[Team]:
    return (
        db.query(Team)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .filter(
            TeamMember.user_id == user.id,
            TeamMember.status.in_(ACTIVE_MEMBER_STATUSES),
        )
        .order_by(Team.created_at.desc(), Team.id.desc())
        .all()
    )


def list_event_teams(db: Session, event_id: int, actor: User) -> List[Team]:
    event = load_event(db, event_id)
    ensure_can_manage(event, actor)
    return db.query(Team).filter(Team.event_id == event.id).order_by(Team.id.asc()).all()
