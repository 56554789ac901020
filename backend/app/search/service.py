"""Cursor pagination and filtering over direct message history."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Sequence

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session, selectinload

from app.config import get_settings
from app.core.errors import InvalidArgumentError
from app.models import DirectMessage, as_utc, utcnow

settings = get_settings()

_DATE_ONLY = re.compile(r"\d{4}-\d{2}-\d{2}")
_END_OF_DAY = time(23, 59, 59, 999000)


def parse_timestamp(value: str, *, field: str, end_of_day: bool = False) -> datetime:
    """Parse an ISO timestamp, a plain date or epoch milliseconds into UTC.

    Naive values are interpreted as UTC. A plain date resolves to its first
    instant, or to 23:59:59.999 when ``end_of_day`` is set.
    """

    raw = value.strip()
    if "T" in raw and " " in raw:
        # '+' of an unencoded offset arrives as a space
        raw = raw.replace(" ", "+")
    try:
        if raw.isdigit():
            return datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)
        if _DATE_ONLY.fullmatch(raw):
            day = date.fromisoformat(raw)
            moment = datetime.combine(day, _END_OF_DAY if end_of_day else time.min)
        else:
            moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError) as exc:
        raise InvalidArgumentError(f"Invalid {field}: {value!r}") from exc
    return as_utc(moment)


def normalize_limit(limit: int | None) -> int:
    effective = limit or settings.message_history_default_limit
    if effective < 1:
        raise InvalidArgumentError("Limit must be positive")
    return min(effective, settings.message_history_max_limit)


def message_load_options() -> Sequence:
    """Eager loads needed to fully serialize a message."""

    return (
        selectinload(DirectMessage.sender),
        selectinload(DirectMessage.recipient),
        selectinload(DirectMessage.reactions),
        selectinload(DirectMessage.reply_to).selectinload(DirectMessage.sender),
    )


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class MessageFilters:
    """Optional filters applied to a history window."""

    before: datetime | None = None
    text: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None

    @classmethod
    def from_query(
        cls,
        *,
        before: str | None = None,
        text: str | None = None,
        start: str | None = None,
        end: str | None = None,
    ) -> "MessageFilters":
        return cls(
            before=parse_timestamp(before, field="cursor") if before else None,
            text=text.strip() if text and text.strip() else None,
            start_at=parse_timestamp(start, field="start date") if start else None,
            end_at=parse_timestamp(end, field="end date", end_of_day=True) if end else None,
        )


@dataclass(frozen=True)
class MessageWindow:
    """Ascending slice of history plus whether older messages exist."""

    messages: list[DirectMessage]
    has_more: bool

    @property
    def next_cursor(self) -> datetime | None:
        if not self.has_more or not self.messages:
            return None
        return as_utc(self.messages[0].created_at)


class MessageHistoryService:
    """Backward pagination by creation time with text and date filters."""

    def __init__(self, session: Session):
        self._session = session

    def conversation(
        self,
        user_id: int,
        other_id: int,
        *,
        limit: int | None = None,
        filters: MessageFilters | None = None,
    ) -> MessageWindow:
        pair = or_(
            and_(DirectMessage.sender_id == user_id, DirectMessage.recipient_id == other_id),
            and_(DirectMessage.sender_id == other_id, DirectMessage.recipient_id == user_id),
        )
        return self._window(pair, normalize_limit(limit), filters or MessageFilters())

    def thread(
        self,
        thread_id: int,
        requester_id: int,
        *,
        limit: int | None = None,
        before: datetime | None = None,
    ) -> MessageWindow:
        visible = and_(
            DirectMessage.thread_id == thread_id,
            or_(
                DirectMessage.sender_id == requester_id,
                DirectMessage.recipient_id == requester_id,
            ),
        )
        return self._window(visible, normalize_limit(limit), MessageFilters(before=before))

    def mark_window_read(self, window: MessageWindow, reader_id: int) -> int:
        """Mark unread messages of ``window`` addressed to ``reader_id`` as read."""

        unread = [
            message
            for message in window.messages
            if message.recipient_id == reader_id and not message.is_read
        ]
        if not unread:
            return 0

        read_at = utcnow()
        stmt = (
            update(DirectMessage)
            .where(
                DirectMessage.id.in_([message.id for message in unread]),
                DirectMessage.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.commit()
        return result.rowcount or 0

    # Internal helpers -----------------------------------------------------

    def _window(self, scope, limit: int, filters: MessageFilters) -> MessageWindow:
        conditions: list = [scope]
        if filters.before is not None:
            conditions.append(DirectMessage.created_at < filters.before)
        if filters.text:
            conditions.append(
                DirectMessage.content.ilike(f"%{_escape_like(filters.text)}%", escape="\\")
            )
        if filters.start_at is not None:
            conditions.append(DirectMessage.created_at >= filters.start_at)
        if filters.end_at is not None:
            conditions.append(DirectMessage.created_at <= filters.end_at)

        stmt = (
            select(DirectMessage)
            .where(and_(*conditions))
            .options(*message_load_options())
            .order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc())
            .limit(limit + 1)
        )
        rows = list(self._session.execute(stmt).scalars())
        has_more = len(rows) > limit
        rows = rows[:limit]
        rows.reverse()
        return MessageWindow(messages=rows, has_more=has_more)
