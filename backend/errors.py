from typing import Optional

from fastapi import HTTPException, status


class EventServiceError(HTTPException):
    """Business-rule rejection with a stable ``{kind, code, message}`` detail."""

    kind = "StateError"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, message: str, extra: Optional[dict] = None):
        detail = {"kind": self.kind, "code": code, "message": message}
        if extra:
            detail.update(extra)
        super().__init__(status_code=self.http_status, detail=detail)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind}[{self.code}]: {self.message}"


class ValidationError(EventServiceError):
    kind = "ValidationError"
    http_status = status.HTTP_400_BAD_REQUEST


class NotFoundError(EventServiceError):
    kind = "NotFoundError"
    http_status = status.HTTP_404_NOT_FOUND


class ConflictError(EventServiceError):
    kind = "ConflictError"
    http_status = status.HTTP_409_CONFLICT


class AuthorizationError(EventServiceError):
    kind = "AuthorizationError"
    http_status = status.HTTP_403_FORBIDDEN


class StateError(EventServiceError):
    kind = "StateError"
    http_status = status.HTTP_400_BAD_REQUEST


class AuthenticationError(AuthorizationError):
    http_status = status.HTTP_401_UNAUTHORIZED
