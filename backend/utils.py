from typing import Optional
from fastapi import Request
from sqlalchemy.orm import Session
from models import ActionLog, User


def log_action(db: Session, actor: Optional[User], action: str, method: Optional[str] = None, path: Optional[str] = None, meta: Optional[dict] = None):
    db.add(ActionLog(
        actor_id=actor.id if actor else None,
        actor_email=actor.email if actor else "",
        action=action,
        method=method,
        path=path,
        meta=meta
    ))
    db.commit()


def log_request_action(db: Session, actor: Optional[User], action: str, request: Request, meta: Optional[dict] = None):
    log_action(db, actor, action, method=request.method, path=request.url.path, meta=meta)
