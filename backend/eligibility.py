"""Registration preconditions for individual sign-ups.

Everything here is pure: callers load the event, the user and whether an
active registration exists, and get back an :class:`EligibilityResult`.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from errors import AuthorizationError, ConflictError, StateError, ValidationError
from models import Eligibility, EventStatus, ParticipantType
from time_utils import has_passed

OPEN_STATUSES = (EventStatus.PUBLISHED, EventStatus.ONGOING)

_ERROR_FOR_CODE = {
    "RegistrationClosed": StateError,
    "DeadlinePassed": StateError,
    "LimitReached": ConflictError,
    "NotEligible": AuthorizationError,
    "UseTeamRegistration": ValidationError,
    "AlreadyRegistered": ConflictError,
}


@dataclass(frozen=True)
class EligibilityResult:
    ok: bool
    code: Optional[str] = None
    message: Optional[str] = None

    def raise_for_failure(self) -> None:
        if self.ok:
            return
        raise _ERROR_FOR_CODE.get(self.code, StateError)(self.code, self.message)


ALLOWED = EligibilityResult(ok=True)


def _reject(code: str, message: str) -> EligibilityResult:
    return EligibilityResult(ok=False, code=code, message=message)


def is_full(event) -> bool:
    if event.registration_limit is None:
        return False
    return int(event.registration_count or 0) >= int(event.registration_limit)


def matches_eligibility(event, user) -> bool:
    if event.eligibility in (None, Eligibility.ALL):
        return True
    if event.eligibility == Eligibility.IIIT_ONLY:
        return user.participant_type == ParticipantType.IIIT
    if event.eligibility == Eligibility.NON_IIIT_ONLY:
        return user.participant_type == ParticipantType.NON_IIIT
    return False


def eligibility_message(event) -> str:
    if event.eligibility == Eligibility.IIIT_ONLY:
        return "This event is for IIIT students only"
    return "This event is for Non-IIIT participants only"


def check_registration(event, user, now: datetime, has_active_registration: bool) -> EligibilityResult:
    if event.status not in OPEN_STATUSES:
        return _reject("RegistrationClosed", "Event is not open for registration")
    if has_passed(event.registration_deadline, now):
        return _reject("DeadlinePassed", "Registration deadline has passed")
    if is_full(event):
        return _reject("LimitReached", "Registration limit reached")
    if not matches_eligibility(event, user):
        return _reject("NotEligible", eligibility_message(event))
    if event.is_team_event:
        return _reject("UseTeamRegistration", "This is a team event. Please use team registration.")
    if has_active_registration:
        return _reject("AlreadyRegistered", "You are already registered for this event")
    return ALLOWED
