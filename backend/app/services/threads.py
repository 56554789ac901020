"""Thread linkage between root messages and their replies."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models import DirectMessage
from app.search import MessageHistoryService, MessageWindow


def resolve_thread(parent: DirectMessage) -> int:
    """Thread a reply to ``parent`` belongs to.

    Only one hop is followed: the parent's own thread id, or the parent id
    when the parent has none.
    """

    return parent.thread_id or parent.id


def fetch_thread(
    thread_id: int,
    requester_id: int,
    db: Session,
    *,
    before: datetime | None = None,
    limit: int | None = None,
) -> MessageWindow:
    """Return the requester's visible messages of a thread, oldest first."""

    visible = db.execute(
        select(DirectMessage.id)
        .where(
            DirectMessage.thread_id == thread_id,
            or_(
                DirectMessage.sender_id == requester_id,
                DirectMessage.recipient_id == requester_id,
            ),
        )
        .limit(1)
    ).first()
    if visible is None:
        raise NotFoundError("Thread not found")

    return MessageHistoryService(db).thread(thread_id, requester_id, limit=limit, before=before)
