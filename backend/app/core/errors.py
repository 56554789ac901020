"""Error hierarchy for messaging operations.

Every failure surfaced by the service layer carries a stable ``kind`` and a
human readable ``reason``. The API layer renders them through a single
exception handler so clients always receive ``{"error": kind, "detail": reason}``.
"""

from __future__ import annotations

from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    """Stable error identifiers exposed to clients."""

    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    UNAVAILABLE = "unavailable"


class MessagingError(Exception):
    """Base exception for all messaging failures."""

    kind: ErrorKind = ErrorKind.UNAVAILABLE
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    def to_response(self) -> dict[str, str]:
        return {"error": self.kind.value, "detail": self.reason}


class InvalidArgumentError(MessagingError):
    """A required field is empty or malformed."""

    kind = ErrorKind.INVALID_ARGUMENT
    http_status = status.HTTP_400_BAD_REQUEST


class NotFoundError(MessagingError):
    """Referenced user or message is absent, or must not be revealed."""

    kind = ErrorKind.NOT_FOUND
    http_status = status.HTTP_404_NOT_FOUND


class UnauthorizedError(MessagingError):
    """Actor does not control the targeted resource."""

    kind = ErrorKind.UNAUTHORIZED
    http_status = status.HTTP_403_FORBIDDEN


class UnavailableError(MessagingError):
    """An external collaborator (push, media storage) failed."""

    kind = ErrorKind.UNAVAILABLE
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
