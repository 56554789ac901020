"""Core utilities for the Mesh backend."""

from .errors import (
    InvalidArgumentError,
    MessagingError,
    NotFoundError,
    UnauthorizedError,
    UnavailableError,
)
from .storage import build_media_url, resolve_media_path, store_message_media

__all__ = [
    "MessagingError",
    "InvalidArgumentError",
    "NotFoundError",
    "UnauthorizedError",
    "UnavailableError",
    "store_message_media",
    "resolve_media_path",
    "build_media_url",
]
