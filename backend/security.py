from fastapi import Depends

from auth import get_current_user
from errors import AuthorizationError
from models import User, UserRole


def require_roles(*roles: UserRole):
    allowed = set(roles)

    def _checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            names = " or ".join(sorted(role.value for role in allowed))
            raise AuthorizationError("RoleRequired", f"Access restricted to {names} accounts")
        if user.role == UserRole.ORGANIZER and not user.is_approved:
            raise AuthorizationError("AccountPendingApproval", "Organizer account is awaiting admin approval")
        return user

    return _checker


def require_participant(user: User = Depends(require_roles(UserRole.PARTICIPANT))) -> User:
    return user


def require_organizer(user: User = Depends(require_roles(UserRole.ORGANIZER))) -> User:
    return user


def require_admin(user: User = Depends(require_roles(UserRole.ADMIN))) -> User:
    return user


def require_event_manager(user: User = Depends(require_roles(UserRole.ORGANIZER, UserRole.ADMIN))) -> User:
    return user
