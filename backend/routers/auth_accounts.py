import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import create_access_token, get_current_user, get_password_hash, verify_password
from database import get_db
from errors import AuthenticationError, ConflictError
from models import User, UserRole
from schemas import OrganizerSignup, ParticipantSignup, TokenResponse, UserLogin, UserResponse
from time_utils import now_tz

router = APIRouter()
logger = logging.getLogger(__name__)


def _normalize_email(value: str) -> str:
    return str(value or "").strip().lower()


def _ensure_email_free(db: Session, email: str) -> None:
    if db.query(User.id).filter(User.email == email).first():
        raise ConflictError("EmailTaken", "An account with this email already exists")


def _save_new_user(db: Session, user: User) -> User:
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("EmailTaken", "An account with this email already exists")
    db.refresh(user)
    return user


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user),
        user=UserResponse.model_validate(user),
    )


@router.post("/auth/register/participant", response_model=TokenResponse)
def register_participant(payload: ParticipantSignup, db: Session = Depends(get_db)):
    email = _normalize_email(payload.email)
    _ensure_email_free(db, email)
    user = _save_new_user(db, User(
        name=f"{payload.first_name} {payload.last_name}".strip(),
        email=email,
        hashed_password=get_password_hash(payload.password),
        role=UserRole.PARTICIPANT,
        contact=payload.contact,
        participant_type=payload.participant_type,
        first_name=payload.first_name,
        last_name=payload.last_name,
        college_name=payload.college_name,
        interests=payload.interests,
        is_active=True,
        is_approved=True,
    ))
    logger.info("Participant %s signed up", user.id)
    return _token_response(user)


@router.post("/auth/register/organizer", response_model=UserResponse)
def register_organizer(payload: OrganizerSignup, db: Session = Depends(get_db)):
    email = _normalize_email(payload.email)
    _ensure_email_free(db, email)
    user = _save_new_user(db, User(
        name=payload.organization_name.strip(),
        email=email,
        hashed_password=get_password_hash(payload.password),
        role=UserRole.ORGANIZER,
        contact=payload.contact,
        organization_name=payload.organization_name.strip(),
        category=payload.category,
        description=payload.description,
        contact_email=_normalize_email(payload.contact_email) if payload.contact_email else email,
        is_active=True,
        is_approved=False,
    ))
    logger.info("Organizer %s signed up and awaits approval", user.id)
    return user


@router.post("/auth/login", response_model=TokenResponse)
def login(payload: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == _normalize_email(payload.email)).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise AuthenticationError("InvalidCredentials", "Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("AccountInactive", "Account is deactivated")
    user.last_login = now_tz()
    db.commit()
    db.refresh(user)
    return _token_response(user)


@router.get("/auth/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user
