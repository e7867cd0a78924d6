"""Individual registrations: sign-up, ticket issue, cancellation and lookups.

``register`` keeps the registration row, the capacity counter, the
merchandise stock and the custom-form lock in a single transaction. The
counters are changed with guarded ``UPDATE ... WHERE`` statements so two
concurrent sign-ups can never both take the last seat or the last item.
"""
import logging
import os
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eligibility import check_registration
from errors import AuthorizationError, ConflictError, NotFoundError, StateError, ValidationError
from event_lifecycle import ensure_can_manage, load_event
from models import (
    Event,
    EventType,
    PaymentStatus,
    ApprovalStatus,
    Registration,
    RegistrationStatus,
    User,
)
from notifications import REGISTRATION_CONFIRMED, Notification
from time_utils import date_stamp, ensure_timezone, now_tz

logger = logging.getLogger(__name__)

TICKET_PREFIX = os.environ.get("TICKET_PREFIX", "FEL")
CHOICE_FIELD_TYPES = {"dropdown", "select", "radio", "checkbox"}


@dataclass
class RegistrationOutcome:
    registration: Registration
    notifications: List[Notification] = field(default_factory=list)


def make_ticket_id(now: Optional[datetime] = None) -> str:
    return f"{TICKET_PREFIX}-{date_stamp(now)}-{secrets.token_hex(3).upper()}"


def next_ticket_id(db: Session, now: Optional[datetime] = None) -> str:
    candidate = make_ticket_id(now)
    while db.query(Registration.id).filter(Registration.ticket_id == candidate).first():
        candidate = make_ticket_id(now)
    return candidate


def active_registration(db: Session, event_id: int, user_id: int) -> Optional[Registration]:
    return db.query(Registration).filter(
        Registration.event_id == event_id,
        Registration.user_id == user_id,
        Registration.status != RegistrationStatus.CANCELLED,
    ).first()


def initial_payment(event: Event):
    fee = float(event.registration_fee or 0)
    if fee > 0:
        return fee, PaymentStatus.PENDING, ApprovalStatus.PENDING
    return fee, PaymentStatus.COMPLETED, ApprovalStatus.APPROVED


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def validate_form_responses(custom_form: Optional[list], responses: Optional[dict]) -> dict:
    """Check responses against the event's custom form and return the cleaned mapping."""
    responses = dict(responses or {})
    if not custom_form:
        return responses
    for form_field in sorted(custom_form, key=lambda item: item.get("order") or 0):
        name = form_field.get("field_name") or form_field.get("label")
        label = form_field.get("label") or name
        value = responses.get(name)
        if _is_blank(value):
            if form_field.get("required"):
                raise ValidationError("InvalidFormResponse", f"'{label}' is required")
            continue
        options = form_field.get("options") or []
        if form_field.get("field_type") in CHOICE_FIELD_TYPES and options:
            chosen = value if isinstance(value, list) else [value]
            invalid = [item for item in chosen if item not in options]
            if invalid:
                raise ValidationError("InvalidFormResponse", f"Invalid choice for '{label}': {invalid[0]}")
    return responses


def validate_merchandise_selection(event: Event, selection: Optional[dict]) -> dict:
    """Validate size/color/variant against the catalogue, then stock, then the purchase limit."""
    selection = dict(selection or {})
    merchandise = event.merchandise or {}
    for key, catalogue_key in (("size", "sizes"), ("color", "colors")):
        allowed = merchandise.get(catalogue_key) or []
        value = selection.get(key)
        if allowed and value not in allowed:
            raise ValidationError("InvalidSelection", f"Please select a valid {key}")
    variants = [item.get("name") for item in (merchandise.get("variants") or []) if item.get("name")]
    if variants and selection.get("variant") not in variants:
        raise ValidationError("InvalidSelection", "Please select a valid variant")

    quantity = selection.get("quantity")
    quantity = 1 if quantity is None else int(quantity)
    if quantity < 1:
        raise ValidationError("InvalidSelection", "Quantity must be at least 1")
    if quantity > int(event.stock_quantity or 0):
        raise ConflictError("InsufficientStock", f"Insufficient stock. Only {event.stock_quantity} items available")
    if quantity > int(event.purchase_limit or 1):
        raise ValidationError("PurchaseLimitExceeded", f"Purchase limit is {event.purchase_limit} items per person")
    selection["quantity"] = quantity
    return selection


def claim_capacity(db: Session, event_id: int, seats: int = 1) -> bool:
    """Add ``seats`` to the registration count only if the limit still allows it."""
    updated = db.query(Event).filter(
        Event.id == event_id,
        or_(
            Event.registration_limit.is_(None),
            Event.registration_count + seats <= Event.registration_limit,
        ),
    ).update({Event.registration_count: Event.registration_count + seats}, synchronize_session=False)
    return updated == 1


def release_capacity(db: Session, event_id: int, seats: int = 1) -> None:
    db.query(Event).filter(Event.id == event_id, Event.registration_count >= seats).update(
        {Event.registration_count: Event.registration_count - seats},
        synchronize_session=False,
    )


def take_stock(db: Session, event_id: int, quantity: int) -> bool:
    updated = db.query(Event).filter(
        Event.id == event_id,
        Event.stock_quantity >= quantity,
    ).update({Event.stock_quantity: Event.stock_quantity - quantity}, synchronize_session=False)
    return updated == 1


def lock_custom_form(db: Session, event_id: int) -> bool:
    updated = db.query(Event).filter(
        Event.id == event_id,
        Event.custom_form_locked.is_(False),
    ).update({Event.custom_form_locked: True}, synchronize_session=False)
    return updated == 1


def _insert_registration(db: Session, event: Event, user: User, values: dict, now: datetime) -> Registration:
    """Flush a new registration, retrying once if only the ticket id collided."""
    event_id, user_id = event.id, user.id
    for attempt in range(2):
        registration = Registration(event_id=event_id, user_id=user_id, ticket_id=next_ticket_id(db, now), **values)
        db.add(registration)
        try:
            db.flush()
            return registration
        except IntegrityError:
            db.rollback()
            if active_registration(db, event_id, user_id):
                raise ConflictError("AlreadyRegistered", "You are already registered for this event")
            logger.warning("Ticket id collision for event %s (attempt %s)", event_id, attempt + 1)
    raise ConflictError("TicketCollision", "Could not issue a unique ticket, please retry")


def registration_notification(registration: Registration, event: Event, user: User) -> Notification:
    organizer = event.organizer
    start = ensure_timezone(event.start_date)
    return Notification(
        kind=REGISTRATION_CONFIRMED,
        recipient_email=user.email,
        payload={
            "name": user.name,
            "event_name": event.name,
            "ticket_id": registration.ticket_id,
            "organizer_name": (organizer.organization_name or organizer.name) if organizer else None,
            "start_date": start.strftime("%d %b %Y, %I:%M %p") if start else None,
            "venue": event.venue,
            "registration_fee": event.registration_fee,
        },
    )


def register(
    db: Session,
    event_id: int,
    user: User,
    form_responses: Optional[dict] = None,
    merchandise_selection: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> RegistrationOutcome:
    now = now or now_tz()
    event = load_event(db, event_id)
    existing = active_registration(db, event.id, user.id)
    check_registration(event, user, now, has_active_registration=existing is not None).raise_for_failure()

    responses = validate_form_responses(event.custom_form, form_responses)
    values = {"form_responses": responses, "status": RegistrationStatus.REGISTERED}
    quantity = 0
    if event.event_type == EventType.MERCHANDISE:
        selection = validate_merchandise_selection(event, merchandise_selection)
        quantity = selection["quantity"]
        values.update(
            merch_size=selection.get("size"),
            merch_color=selection.get("color"),
            merch_variant=selection.get("variant"),
            merch_quantity=quantity,
        )
    amount, payment_status, approval_status = initial_payment(event)
    values.update(
        payment_amount=amount,
        payment_status=payment_status,
        payment_approval_status=approval_status,
    )
    has_form = bool(event.custom_form)

    registration = _insert_registration(db, event, user, values, now)
    if not claim_capacity(db, registration.event_id):
        db.rollback()
        raise ConflictError("LimitReached", "Registration limit reached")
    if quantity and not take_stock(db, registration.event_id, quantity):
        db.rollback()
        raise ConflictError("InsufficientStock", "Insufficient stock")
    if has_form and lock_custom_form(db, registration.event_id):
        logger.info("Custom form locked for event %s", registration.event_id)
    db.commit()
    db.refresh(registration)

    event = registration.event
    logger.info("Registration %s created for event %s user %s", registration.ticket_id, event.id, user.id)
    return RegistrationOutcome(
        registration=registration,
        notifications=[registration_notification(registration, event, user)],
    )


def load_registration(db: Session, registration_id: int) -> Registration:
    registration = db.query(Registration).filter(Registration.id == registration_id).first()
    if not registration:
        raise NotFoundError("RegistrationNotFound", "Registration not found")
    return registration


def cancel_registration(
    db: Session,
    registration_id: int,
    user: User,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Registration:
    registration = load_registration(db, registration_id)
    if int(registration.user_id) != int(user.id):
        raise AuthorizationError("NotOwner", "You can only cancel your own registrations")
    if registration.status == RegistrationStatus.CANCELLED:
        raise ConflictError("AlreadyCancelled", "Registration is already cancelled")
    if registration.status == RegistrationStatus.ATTENDED or registration.attendance_marked:
        raise StateError("InvalidStatus", "Attended registrations cannot be cancelled")

    registration.status = RegistrationStatus.CANCELLED
    registration.cancellation_date = now or now_tz()
    registration.cancellation_reason = reason
    release_capacity(db, registration.event_id)
    if registration.merch_quantity:
        db.query(Event).filter(Event.id == registration.event_id).update(
            {Event.stock_quantity: Event.stock_quantity + int(registration.merch_quantity)},
            synchronize_session=False,
        )
    db.commit()
    db.refresh(registration)
    logger.info("Registration %s cancelled by user %s", registration.ticket_id, user.id)
    return registration


def get_by_ticket(db: Session, ticket_id: str) -> Registration:
    registration = db.query(Registration).filter(Registration.ticket_id == str(ticket_id or "").strip()).first()
    if not registration:
        raise NotFoundError("TicketNotFound", "Ticket not found")
    return registration


def get_ticket_for_viewer(db: Session, ticket_id: str, viewer: User) -> Registration:
    registration = get_by_ticket(db, ticket_id)
    if int(registration.user_id) == int(viewer.id):
        return registration
    ensure_can_manage(registration.event, viewer)
    return registration


def list_user_registrations(
    db: Session,
    user: User,
    status_filter: Optional[RegistrationStatus] = None,
) -> List[Registration]:
    query = db.query(Registration).filter(Registration.user_id == user.id)
    if status_filter:
        query = query.filter(Registration.status == status_filter)
    return query.order_by(Registration.created_at.desc(), Registration.id.desc()).all()


def list_event_registrations(
    db: Session,
    event_id: int,
    actor: User,
    search: Optional[str] = None,
    status_filter: Optional[RegistrationStatus] = None,
    attended: Optional[bool] = None,
) -> List[Registration]:
    event = load_event(db, event_id)
    ensure_can_manage(event, actor)
    query = db.query(Registration).join(User, Registration.user_id == User.id).filter(Registration.event_id == event.id)
    if status_filter:
        query = query.filter(Registration.status == status_filter)
    if attended is not None:
        query = query.filter(Registration.attendance_marked.is_(bool(attended)))
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                Registration.ticket_id.ilike(pattern),
            )
        )
    return query.order_by(Registration.created_at.desc(), Registration.id.desc()).all()
