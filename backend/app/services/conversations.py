"""Per-counterpart conversation summaries derived from the message log."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import InvalidArgumentError
from app.models import DirectMessage, User

settings = get_settings()


@dataclass(slots=True)
class ConversationSummary:
    """Most recent message and unread count for one counterpart."""

    counterpart_id: int
    last_message: Any
    unread_count: int = 0
    counterpart: User | None = None


@dataclass(slots=True)
class ConversationListing:
    items: list[ConversationSummary] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total


def normalize_page_size(page_size: int | None) -> int:
    effective = page_size or settings.conversation_page_default_size
    if effective < 1:
        raise InvalidArgumentError("Page size must be positive")
    if effective > settings.conversation_page_max_size:
        raise InvalidArgumentError(
            f"Page size must not exceed {settings.conversation_page_max_size}"
        )
    return effective


class ConversationAggregator:
    """Groups a user's messages by counterpart, newest conversation first.

    The whole history of the user is reduced before paging because the
    most-recent-per-counterpart ordering is global. Everything needed for the
    summaries comes from one SELECT so the view reflects a single snapshot;
    only the counterpart profiles of the requested page are loaded afterwards.
    """

    def __init__(self, session: Session):
        self._session = session

    def list(self, user_id: int, *, page: int = 1, page_size: int | None = None) -> ConversationListing:
        if page < 1:
            raise InvalidArgumentError("Page must be positive")
        page_size = normalize_page_size(page_size)

        stmt = (
            select(
                DirectMessage.id,
                DirectMessage.sender_id,
                DirectMessage.recipient_id,
                DirectMessage.content,
                DirectMessage.message_type,
                DirectMessage.created_at,
                DirectMessage.is_read,
            )
            .where(
                or_(
                    DirectMessage.sender_id == user_id,
                    DirectMessage.recipient_id == user_id,
                )
            )
            .order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc())
        )

        groups: dict[int, ConversationSummary] = {}
        for row in self._session.execute(stmt):
            counterpart_id = row.recipient_id if row.sender_id == user_id else row.sender_id
            summary = groups.get(counterpart_id)
            if summary is None:
                # rows arrive newest first, so the first row is the representative
                summary = ConversationSummary(counterpart_id=counterpart_id, last_message=row)
                groups[counterpart_id] = summary
            if row.recipient_id == user_id and not row.is_read:
                summary.unread_count += 1

        ordered = list(groups.values())
        start = (page - 1) * page_size
        items = ordered[start : start + page_size]

        if items:
            user_stmt = select(User).where(User.id.in_([item.counterpart_id for item in items]))
            users = {user.id: user for user in self._session.execute(user_stmt).scalars()}
            for item in items:
                item.counterpart = users.get(item.counterpart_id)

        return ConversationListing(
            items=[item for item in items if item.counterpart is not None],
            total=len(ordered),
            page=page,
            page_size=page_size,
        )
