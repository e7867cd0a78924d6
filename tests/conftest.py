from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path
import os
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ.setdefault("JWT_SECRET_KEY", "felicity-test-secret-0123456789abcdef0123456789")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("SMTP_PRIMARY_HOST", None)

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import create_access_token, get_password_hash
from database import Base, get_db
from models import (
    Eligibility,
    Event,
    EventStatus,
    EventType,
    OrganizerCategory,
    ParticipantType,
    User,
    UserRole,
)
from notifications import NotificationSender, get_notification_sender

PASSWORD = "password123"
PASSWORD_HASH = get_password_hash(PASSWORD)
_sequence = count(1)


class RecordingSender(NotificationSender):
    def __init__(self, fail_kinds=()):
        self.sent = []
        self.fail_kinds = set(fail_kinds)

    def send(self, notification):
        if notification.kind in self.fail_kinds:
            raise RuntimeError("smtp down")
        self.sent.append(notification)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def now():
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def make_participant(db):
    def _make(participant_type=ParticipantType.IIIT, **overrides):
        number = next(_sequence)
        values = {
            "name": f"Participant {number}",
            "email": f"participant{number}@example.com",
            "hashed_password": PASSWORD_HASH,
            "role": UserRole.PARTICIPANT,
            "participant_type": participant_type,
            "first_name": "Participant",
            "last_name": str(number),
            "interests": [],
            "is_active": True,
            "is_approved": True,
        }
        values.update(overrides)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_organizer(db):
    def _make(**overrides):
        number = next(_sequence)
        values = {
            "name": f"Club {number}",
            "email": f"club{number}@example.com",
            "hashed_password": PASSWORD_HASH,
            "role": UserRole.ORGANIZER,
            "organization_name": f"Club {number}",
            "category": OrganizerCategory.TECHNICAL,
            "is_active": True,
            "is_approved": True,
        }
        values.update(overrides)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_admin(db):
    def _make():
        number = next(_sequence)
        user = User(
            name="Admin",
            email=f"admin{number}@example.com",
            hashed_password=PASSWORD_HASH,
            role=UserRole.ADMIN,
            is_active=True,
            is_approved=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_event(db, now):
    def _make(organizer, **overrides):
        values = {
            "organizer_id": organizer.id,
            "name": "Hack Night",
            "description": "Overnight hackathon",
            "event_type": EventType.NORMAL,
            "status": EventStatus.PUBLISHED,
            "eligibility": Eligibility.ALL,
            "registration_deadline": now + timedelta(days=7),
            "start_date": now + timedelta(days=10),
            "end_date": now + timedelta(days=11),
            "registration_limit": None,
            "registration_count": 0,
            "registration_fee": 0,
            "tags": ["coding"],
            "is_team_event": False,
            "min_team_size": 1,
            "max_team_size": 1,
            "stock_quantity": 0,
            "purchase_limit": 1,
        }
        values.update(overrides)
        event = Event(**values)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def client(session_factory, sender):
    from fastapi.testclient import TestClient
    from server import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sender] = lambda: sender
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}
