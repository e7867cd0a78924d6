from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Enum as SQLEnum, ForeignKey, Text, JSON, Table, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class UserRole(enum.Enum):
    PARTICIPANT = "participant"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class ParticipantType(enum.Enum):
    IIIT = "IIIT"
    NON_IIIT = "Non-IIIT"


class OrganizerCategory(enum.Enum):
    TECHNICAL = "Technical"
    CULTURAL = "Cultural"
    SPORTS = "Sports"
    LITERARY = "Literary"
    MANAGEMENT = "Management"
    OTHER = "Other"


class EventType(enum.Enum):
    NORMAL = "Normal"
    MERCHANDISE = "Merchandise"


class EventStatus(enum.Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"
    ONGOING = "Ongoing"
    COMPLETED = "Completed"
    CLOSED = "Closed"
    CANCELLED = "Cancelled"


class Eligibility(enum.Enum):
    ALL = "All"
    IIIT_ONLY = "IIIT Only"
    NON_IIIT_ONLY = "Non-IIIT Only"


class TeamStatus(enum.Enum):
    FORMING = "Forming"
    COMPLETE = "Complete"
    REGISTERED = "Registered"
    CANCELLED = "Cancelled"


class TeamMemberStatus(enum.Enum):
    INVITED = "Invited"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    REMOVED = "Removed"


class RegistrationStatus(enum.Enum):
    REGISTERED = "Registered"
    ATTENDED = "Attended"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"
    PENDING = "Pending"


class PaymentStatus(enum.Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class ApprovalStatus(enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ResetRequestStatus(enum.Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


followed_organizers = Table(
    "followed_organizers",
    Base.metadata,
    Column("participant_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("organizer_id", Integer, ForeignKey("users.id"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), default=UserRole.PARTICIPANT, nullable=False, index=True)
    contact = Column(String(20), nullable=True)
    # Participant
    participant_type = Column(SQLEnum(ParticipantType), nullable=True)
    first_name = Column(String(120), nullable=True)
    last_name = Column(String(120), nullable=True)
    college_name = Column(String(255), nullable=True)
    interests = Column(JSON, nullable=True)  # ["Coding", "Music"]
    # Organizer
    organization_name = Column(String(255), nullable=True)
    category = Column(SQLEnum(OrganizerCategory), nullable=True)
    description = Column(Text, nullable=True)
    contact_email = Column(String(255), nullable=True)
    webhook_url = Column(String(500), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    is_approved = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    followed = relationship(
        "User",
        secondary=followed_organizers,
        primaryjoin=id == followed_organizers.c.participant_id,
        secondaryjoin=id == followed_organizers.c.organizer_id,
    )


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    event_type = Column(SQLEnum(EventType), default=EventType.NORMAL, nullable=False)
    status = Column(SQLEnum(EventStatus), default=EventStatus.DRAFT, nullable=False, index=True)
    eligibility = Column(SQLEnum(Eligibility), default=Eligibility.ALL, nullable=False)
    registration_deadline = Column(DateTime(timezone=True), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False, index=True)
    end_date = Column(DateTime(timezone=True), nullable=False)
    registration_limit = Column(Integer, nullable=True)  # None means unlimited
    registration_count = Column(Integer, default=0, nullable=False)
    registration_fee = Column(Float, default=0, nullable=False)
    tags = Column(JSON, nullable=True)
    # [{"field_type": "text", "label": "T-shirt name", "field_name": "tshirt_name", "required": true, "options": [], "order": 0}]
    custom_form = Column(JSON, nullable=True)
    custom_form_locked = Column(Boolean, default=False, nullable=False)
    is_team_event = Column(Boolean, default=False, nullable=False)
    min_team_size = Column(Integer, default=1, nullable=False)
    max_team_size = Column(Integer, default=1, nullable=False)
    merchandise = Column(JSON, nullable=True)  # {"sizes": [...], "colors": [...], "variants": [{"name", "price", "stock"}]}
    stock_quantity = Column(Integer, default=0, nullable=False)
    purchase_limit = Column(Integer, default=1, nullable=False)
    venue = Column(String(255), nullable=True)
    banner_image = Column(String(500), nullable=True)
    views = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    organizer = relationship("User")


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    leader_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invite_code = Column(String(20), unique=True, index=True, nullable=False)
    required_size = Column(Integer, nullable=False)
    current_size = Column(Integer, default=1, nullable=False)
    is_finalized = Column(Boolean, default=False, nullable=False)
    status = Column(SQLEnum(TeamStatus), default=TeamStatus.FORMING, nullable=False)
    registered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    event = relationship("Event")
    leader = relationship("User")
    members = relationship("TeamMember", back_populates="team", order_by="TeamMember.id")


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), default="member", nullable=False)  # "leader" | "member"
    status = Column(SQLEnum(TeamMemberStatus), default=TeamMemberStatus.ACCEPTED, nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    team = relationship("Team", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        # One active team per user per event.
        Index(
            "uq_team_members_active_event_user",
            "event_id",
            "user_id",
            unique=True,
            sqlite_where=text("status IN ('INVITED', 'ACCEPTED')"),
            postgresql_where=text("status IN ('INVITED', 'ACCEPTED')"),
        ),
    )


class Registration(Base):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True, index=True)
    status = Column(SQLEnum(RegistrationStatus), default=RegistrationStatus.REGISTERED, nullable=False, index=True)
    ticket_id = Column(String(40), unique=True, index=True, nullable=False)
    form_responses = Column(JSON, nullable=True)
    merch_size = Column(String(10), nullable=True)
    merch_color = Column(String(50), nullable=True)
    merch_variant = Column(String(100), nullable=True)
    merch_quantity = Column(Integer, nullable=True)
    payment_amount = Column(Float, default=0, nullable=False)
    payment_status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.COMPLETED, nullable=False)
    payment_approval_status = Column(SQLEnum(ApprovalStatus), default=ApprovalStatus.APPROVED, nullable=False)
    payment_transaction_id = Column(String(120), nullable=True)
    attendance_marked = Column(Boolean, default=False, nullable=False)
    attendance_marked_at = Column(DateTime(timezone=True), nullable=True)
    attendance_marked_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    scan_count = Column(Integer, default=0, nullable=False)
    cancellation_date = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    event = relationship("Event")
    user = relationship("User", foreign_keys=[user_id])
    team = relationship("Team")
    scan_history = relationship("ScanRecord", back_populates="registration", order_by="ScanRecord.id")

    __table_args__ = (
        Index(
            "uq_registrations_active_event_user",
            "event_id",
            "user_id",
            unique=True,
            sqlite_where=text("status != 'CANCELLED'"),
            postgresql_where=text("status != 'CANCELLED'"),
        ),
    )


class ScanRecord(Base):
    __tablename__ = "scan_records"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(Integer, ForeignKey("registrations.id"), nullable=False, index=True)
    scanned_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    scanned_event_id = Column(Integer, nullable=True)
    result = Column(String(30), nullable=False)  # success | already_scanned | wrong_event | invalid_status
    scanned_at = Column(DateTime(timezone=True), server_default=func.now())

    registration = relationship("Registration", back_populates="scan_history")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sender_role = Column(String(20), nullable=False)
    body = Column(String(1000), nullable=False)
    is_pinned = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    sender = relationship("User", foreign_keys=[sender_id])


class PasswordResetRequest(Base):
    __tablename__ = "password_reset_requests"

    id = Column(Integer, primary_key=True, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    status = Column(SQLEnum(ResetRequestStatus), default=ResetRequestStatus.PENDING, nullable=False, index=True)
    reviewed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    admin_comments = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    password_changed = Column(Boolean, default=False, nullable=False)
    password_changed_at = Column(DateTime(timezone=True), nullable=True)
    contact_email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    organizer = relationship("User", foreign_keys=[organizer_id])


class ActionLog(Base):
    __tablename__ = "action_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, nullable=True)
    actor_email = Column(String(255), nullable=False)
    action = Column(String(255), nullable=False)
    method = Column(String(10), nullable=True)
    path = Column(String(255), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
