from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from urllib.parse import urlparse

from models import (
    ApprovalStatus,
    Eligibility,
    EventStatus,
    EventType,
    OrganizerCategory,
    ParticipantType,
    PaymentStatus,
    RegistrationStatus,
    ResetRequestStatus,
    TeamMemberStatus,
    TeamStatus,
    UserRole,
)


def _normalize_optional_http_url(value: Optional[str], field_name: str, max_length: int = 500) -> Optional[str]:
    raw = str(value or "").strip()
    if not raw:
        return None
    if len(raw) > max_length:
        raise ValueError(f"{field_name} must be at most {max_length} characters")
    parsed = urlparse(raw)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"{field_name} must be a valid http/https URL")
    return raw


def _clean_tags(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    cleaned = []
    for value in values:
        tag = str(value or "").strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


# Auth
class ParticipantSignup(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=120)
    last_name: str = Field(..., min_length=1, max_length=120)
    participant_type: ParticipantType
    college_name: Optional[str] = Field(None, max_length=255)
    contact: Optional[str] = Field(None, max_length=20)
    interests: List[str] = Field(default_factory=list)

    @field_validator("first_name", "last_name", "college_name", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("interests")
    @classmethod
    def clean_interests(cls, value):
        return _clean_tags(value) or []


class OrganizerSignup(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    organization_name: str = Field(..., min_length=2, max_length=255)
    category: OrganizerCategory
    description: Optional[str] = Field(None, max_length=2000)
    contact_email: Optional[EmailStr] = None
    contact: Optional[str] = Field(None, max_length=20)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    contact: Optional[str] = None
    participant_type: Optional[ParticipantType] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    college_name: Optional[str] = None
    interests: Optional[List[str]] = None
    organization_name: Optional[str] = None
    category: Optional[OrganizerCategory] = None
    description: Optional[str] = None
    contact_email: Optional[str] = None
    is_active: bool = True
    is_approved: bool = True
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# Users / organizers
class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = Field(None, min_length=1, max_length=120)
    last_name: Optional[str] = Field(None, min_length=1, max_length=120)
    college_name: Optional[str] = Field(None, max_length=255)
    contact: Optional[str] = Field(None, max_length=20)
    interests: Optional[List[str]] = None
    followed_organizer_ids: Optional[List[int]] = None

    @field_validator("interests")
    @classmethod
    def clean_interests(cls, value):
        return _clean_tags(value)


class OrganizerPublicResponse(BaseModel):
    id: int
    organization_name: Optional[str] = None
    category: Optional[OrganizerCategory] = None
    description: Optional[str] = None
    contact_email: Optional[str] = None

    class Config:
        from_attributes = True


class OrganizerProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    organization_name: Optional[str] = Field(None, min_length=2, max_length=255)
    category: Optional[OrganizerCategory] = None
    description: Optional[str] = Field(None, max_length=2000)
    contact_email: Optional[EmailStr] = None
    contact: Optional[str] = Field(None, max_length=20)
    webhook_url: Optional[str] = None

    @field_validator("webhook_url", mode="before")
    @classmethod
    def validate_webhook_url(cls, value):
        return _normalize_optional_http_url(value, "webhook_url")


class OrganizerProfileResponse(UserResponse):
    webhook_url: Optional[str] = None


# Events
class CustomFormField(BaseModel):
    field_type: str = Field(..., min_length=1, max_length=30)
    label: str = Field(..., min_length=1, max_length=200)
    field_name: Optional[str] = Field(None, max_length=100)
    required: bool = False
    options: List[str] = Field(default_factory=list)
    order: int = 0

    @field_validator("field_type", mode="before")
    @classmethod
    def normalize_field_type(cls, value):
        return str(value or "").strip().lower()


class MerchandiseVariant(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price: float = Field(0, ge=0)
    stock: int = Field(0, ge=0)


class MerchandiseDescriptor(BaseModel):
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    variants: List[MerchandiseVariant] = Field(default_factory=list)


class EventCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=255)
    description: str = Field(..., min_length=1)
    event_type: EventType = EventType.NORMAL
    eligibility: Eligibility = Eligibility.ALL
    registration_deadline: datetime
    start_date: datetime
    end_date: datetime
    registration_limit: Optional[int] = Field(None, ge=1)
    registration_fee: float = Field(0, ge=0)
    tags: List[str] = Field(default_factory=list)
    custom_form: Optional[List[CustomFormField]] = None
    is_team_event: bool = False
    min_team_size: int = Field(1, ge=1, le=100)
    max_team_size: int = Field(1, ge=1, le=100)
    merchandise: Optional[MerchandiseDescriptor] = None
    stock_quantity: int = Field(0, ge=0)
    purchase_limit: int = Field(1, ge=1)
    venue: Optional[str] = Field(None, max_length=255)
    banner_image: Optional[str] = Field(None, max_length=500)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value):
        return _clean_tags(value) or []


class EventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    event_type: Optional[EventType] = None
    eligibility: Optional[Eligibility] = None
    registration_deadline: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    registration_limit: Optional[int] = Field(None, ge=1)
    registration_fee: Optional[float] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    custom_form: Optional[List[CustomFormField]] = None
    is_team_event: Optional[bool] = None
    min_team_size: Optional[int] = Field(None, ge=1, le=100)
    max_team_size: Optional[int] = Field(None, ge=1, le=100)
    merchandise: Optional[MerchandiseDescriptor] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    purchase_limit: Optional[int] = Field(None, ge=1)
    venue: Optional[str] = Field(None, max_length=255)
    banner_image: Optional[str] = Field(None, max_length=500)
    status: Optional[EventStatus] = None

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value):
        return _clean_tags(value)


class EventResponse(BaseModel):
    id: int
    organizer_id: int
    name: str
    description: str
    event_type: EventType
    status: EventStatus
    eligibility: Eligibility
    registration_deadline: datetime
    start_date: datetime
    end_date: datetime
    registration_limit: Optional[int] = None
    registration_count: int = 0
    registration_fee: float = 0
    tags: Optional[List[str]] = None
    custom_form: Optional[List[Dict[str, Any]]] = None
    custom_form_locked: bool = False
    is_team_event: bool = False
    min_team_size: int = 1
    max_team_size: int = 1
    merchandise: Optional[Dict[str, Any]] = None
    stock_quantity: int = 0
    purchase_limit: int = 1
    venue: Optional[str] = None
    banner_image: Optional[str] = None
    views: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EventDetailResponse(EventResponse):
    organizer: Optional[OrganizerPublicResponse] = None


# Registrations
class MerchandiseSelection(BaseModel):
    size: Optional[str] = None
    color: Optional[str] = None
    variant: Optional[str] = None
    quantity: int = Field(1, ge=1)


class RegistrationCreate(BaseModel):
    form_responses: Dict[str, Any] = Field(default_factory=dict)
    merchandise_selection: Optional[MerchandiseSelection] = None


class RegistrationCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RegistrationResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    team_id: Optional[int] = None
    status: RegistrationStatus
    ticket_id: str
    form_responses: Optional[Dict[str, Any]] = None
    merch_size: Optional[str] = None
    merch_color: Optional[str] = None
    merch_variant: Optional[str] = None
    merch_quantity: Optional[int] = None
    payment_amount: float = 0
    payment_status: PaymentStatus
    payment_approval_status: ApprovalStatus
    attendance_marked: bool = False
    attendance_marked_at: Optional[datetime] = None
    scan_count: int = 0
    cancellation_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RegistrationWithEventResponse(RegistrationResponse):
    event: EventResponse


class RegistrationWithUserResponse(RegistrationResponse):
    user: UserResponse


# Teams
class TeamCreate(BaseModel):
    event_id: int
    name: str = Field(..., min_length=2, max_length=120)


class TeamJoin(BaseModel):
    invite_code: str = Field(..., min_length=5, max_length=20)


class TeamMemberResponse(BaseModel):
    user_id: int
    name: str
    email: str
    role: str
    status: TeamMemberStatus
    joined_at: Optional[datetime] = None


class TeamResponse(BaseModel):
    id: int
    event_id: int
    name: str
    leader_id: int
    invite_code: str
    required_size: int
    current_size: int
    is_finalized: bool
    status: TeamStatus
    registered_at: Optional[datetime] = None
    members: List[TeamMemberResponse] = Field(default_factory=list)


class TeamFinalizeResponse(BaseModel):
    registration_count: int
    ticket_ids: List[str] = Field(default_factory=list)
    team: TeamResponse


# Tickets
class TicketValidateRequest(BaseModel):
    ticket_id: str = Field(..., min_length=1, max_length=40)
    event_id: int


class TicketValidateResponse(BaseModel):
    valid: bool
    validation_status: str
    message: str
    ticket_id: str
    participant_name: Optional[str] = None
    participant_email: Optional[str] = None
    team_name: Optional[str] = None
    marked_at: Optional[datetime] = None


class AttendanceStatistics(BaseModel):
    total_registrations: int
    attended: int
    not_attended: int
    attendance_rate: float


class AttendanceRow(BaseModel):
    ticket_id: str
    user_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    team_name: Optional[str] = None
    status: str
    registered_at: Optional[datetime] = None
    attendance_marked: bool
    attendance_marked_at: Optional[datetime] = None
    scan_count: int = 0


class AttendanceReportResponse(BaseModel):
    event_id: int
    event_name: str
    statistics: AttendanceStatistics
    registrations: List[AttendanceRow]


# Messages
class MessageCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=1000)

    @field_validator("body", mode="before")
    @classmethod
    def strip_body(cls, value):
        return value.strip() if isinstance(value, str) else value


class MessageResponse(BaseModel):
    id: int
    event_id: int
    sender_id: int
    sender_role: str
    sender_name: Optional[str] = None
    body: str
    is_pinned: bool = False
    created_at: Optional[datetime] = None


# Password resets / admin
class PasswordResetRequestCreate(BaseModel):
    reason: str = Field(..., min_length=5, max_length=2000)


class PasswordResetReview(BaseModel):
    comments: Optional[str] = Field(None, max_length=2000)
    reason: Optional[str] = Field(None, max_length=2000)


class PasswordResetResponse(BaseModel):
    id: int
    organizer_id: int
    reason: str
    status: ResetRequestStatus
    reviewed_by_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    admin_comments: Optional[str] = None
    rejection_reason: Optional[str] = None
    password_changed: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrganizerDashboardResponse(BaseModel):
    total_events: int
    events_by_status: Dict[str, int]
    total_registrations: int
    total_attended: int
    total_revenue: float


class AdminStatsResponse(BaseModel):
    total_participants: int
    total_organizers: int
    pending_organizers: int
    total_events: int
    published_events: int
    total_registrations: int
    pending_password_resets: int
