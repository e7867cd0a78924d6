from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from errors import AuthorizationError, NotFoundError
from event_lifecycle import can_manage, load_event
from models import Event, Message, User
from registration_service import active_registration
from schemas import MessageCreate, MessageResponse
from time_utils import now_tz

router = APIRouter()


def _ensure_forum_access(db: Session, event: Event, user: User) -> None:
    if can_manage(event, user):
        return
    if active_registration(db, event.id, user.id):
        return
    raise AuthorizationError("NotRegistered", "Only registered participants can use this event's forum")


def _get_message_or_404(db: Session, message_id: int) -> Message:
    message = db.query(Message).filter(Message.id == message_id, Message.is_deleted.is_(False)).first()
    if not message:
        raise NotFoundError("MessageNotFound", "Message not found")
    return message


def _message_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        event_id=message.event_id,
        sender_id=message.sender_id,
        sender_role=message.sender_role,
        sender_name=message.sender.name if message.sender else None,
        body=message.body,
        is_pinned=bool(message.is_pinned),
        created_at=message.created_at,
    )


@router.get("/messages/event/{event_id}", response_model=List[MessageResponse])
def list_messages(
    event_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = load_event(db, event_id)
    _ensure_forum_access(db, event, user)
    rows = (
        db.query(Message)
        .filter(Message.event_id == event.id, Message.is_deleted.is_(False))
        .order_by(Message.is_pinned.desc(), Message.created_at.asc(), Message.id.asc())
        .all()
    )
    return [_message_response(row) for row in rows]


@router.post("/messages/event/{event_id}", response_model=MessageResponse)
def post_message(
    event_id: int,
    payload: MessageCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = load_event(db, event_id)
    _ensure_forum_access(db, event, user)
    message = Message(
        event_id=event.id,
        sender_id=user.id,
        sender_role=user.role.value,
        body=payload.body,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return _message_response(message)


@router.put("/messages/{message_id}/pin", response_model=MessageResponse)
def toggle_pin(
    message_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    message = _get_message_or_404(db, message_id)
    event = load_event(db, message.event_id)
    if not can_manage(event, user):
        raise AuthorizationError("NotOwner", "Only the organizer can pin messages")
    message.is_pinned = not message.is_pinned
    db.commit()
    db.refresh(message)
    return _message_response(message)


@router.delete("/messages/{message_id}")
def delete_message(
    message_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    message = _get_message_or_404(db, message_id)
    event = load_event(db, message.event_id)
    if int(message.sender_id) != int(user.id) and not can_manage(event, user):
        raise AuthorizationError("NotOwner", "You cannot delete this message")
    message.is_deleted = True
    message.deleted_by_id = user.id
    message.deleted_at = now_tz()
    db.commit()
    return {"message": "Message deleted"}
