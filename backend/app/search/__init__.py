"""Message history pagination and filtering."""

from .service import (
    MessageFilters,
    MessageHistoryService,
    MessageWindow,
    message_load_options,
    normalize_limit,
    parse_timestamp,
)

__all__ = [
    "MessageFilters",
    "MessageHistoryService",
    "MessageWindow",
    "message_load_options",
    "normalize_limit",
    "parse_timestamp",
]
