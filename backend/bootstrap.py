from __future__ import annotations

import logging
import os
from typing import Optional

from database import Base, engine, get_db
from models import User, UserRole

logger = logging.getLogger(__name__)


def create_schema() -> None:
    # Importing models registers every table on Base.metadata.
    Base.metadata.create_all(bind=engine)


def ensure_admin_account(
    email: Optional[str] = None,
    password: Optional[str] = None,
    name: Optional[str] = None,
    reset_password: bool = False,
) -> Optional[User]:
    """Create (or refresh) the platform admin from arguments or ADMIN_* env vars."""
    from auth import get_password_hash

    email = (email or os.environ.get("ADMIN_EMAIL") or "").strip().lower()
    password = password or os.environ.get("ADMIN_PASSWORD")
    name = name or os.environ.get("ADMIN_NAME") or "Admin"
    if not email or not password:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set; skipping admin seeding.")
        return None

    db = next(get_db())
    try:
        user = db.query(User).filter(User.email == email).first()
        if user and user.role != UserRole.ADMIN:
            raise RuntimeError(f"{email} already belongs to a {user.role.value} account")
        if not user:
            user = User(
                name=name,
                email=email,
                hashed_password=get_password_hash(password),
                role=UserRole.ADMIN,
                is_active=True,
                is_approved=True,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            logger.info("Admin account %s created.", email)
        elif reset_password:
            user.hashed_password = get_password_hash(password)
            user.is_active = True
            db.commit()
            logger.info("Admin account %s password reset.", email)
        else:
            logger.info("Admin account %s already exists.", email)
        return user
    finally:
        db.close()
