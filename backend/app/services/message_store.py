"""Persistence and mutation of direct messages."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import InvalidArgumentError, NotFoundError, UnauthorizedError
from app.models import DirectMessage, MessageType, User, utcnow
from app.monitoring.metrics import messages_sent_total
from app.search import message_load_options
from app.services.threads import resolve_thread

logger = logging.getLogger(__name__)

settings = get_settings()


class MessageStore:
    """Validates and persists messages and their mutable read/edit state."""

    def __init__(self, session: Session):
        self._session = session

    def get(self, message_id: int) -> DirectMessage:
        """Load a message with everything needed to serialize it."""

        stmt = (
            select(DirectMessage)
            .where(DirectMessage.id == message_id)
            .options(*message_load_options())
            .execution_options(populate_existing=True)
        )
        message = self._session.execute(stmt).scalar_one_or_none()
        if message is None:
            raise NotFoundError("Message not found")
        return message

    def lock(self, message_id: int) -> DirectMessage | None:
        """Fetch a message row for update so writers to it are serialized."""

        stmt = select(DirectMessage).where(DirectMessage.id == message_id).with_for_update()
        return self._session.execute(stmt).scalar_one_or_none()

    def send(
        self,
        sender_id: int,
        recipient_id: int,
        *,
        kind: MessageType = MessageType.TEXT,
        content: str | None = None,
        media_url: str | None = None,
        media_duration: float | None = None,
        media_poster_url: str | None = None,
        reply_to_id: int | None = None,
    ) -> DirectMessage:
        if self._session.get(User, recipient_id) is None:
            raise NotFoundError("Recipient not found")

        kind = MessageType(kind)
        body = self._clean_body(content, required=kind is MessageType.TEXT)
        if kind.requires_media:
            if not media_url or not media_url.strip():
                raise InvalidArgumentError(f"Media URL is required for {kind.value} messages")
        else:
            media_url = media_duration = media_poster_url = None

        thread_id: int | None = None
        if reply_to_id is not None:
            parent = self._session.get(DirectMessage, reply_to_id)
            # a parent outside this conversation is treated like a missing one
            if parent is not None and parent.in_conversation(sender_id, recipient_id):
                thread_id = resolve_thread(parent)
            else:
                logger.debug(
                    "Reply target %s is not in this conversation; message from %s starts a new thread",
                    reply_to_id,
                    sender_id,
                )

        message = DirectMessage(
            sender_id=sender_id,
            recipient_id=recipient_id,
            content=body,
            message_type=kind,
            media_url=media_url.strip() if media_url else None,
            media_duration=media_duration,
            media_poster_url=media_poster_url,
            thread_id=thread_id,
            reply_to_id=reply_to_id,
            created_at=utcnow(),
        )
        self._session.add(message)
        self._session.flush()
        if message.thread_id is None:
            message.thread_id = message.id
        self._session.commit()

        messages_sent_total.labels(kind.value).inc()
        return self.get(message.id)

    def edit(self, message_id: int, actor_id: int, new_body: str | None) -> DirectMessage:
        message = self.lock(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if message.sender_id != actor_id:
            self._session.rollback()
            raise UnauthorizedError("Only the sender can edit this message")
        try:
            body = self._clean_body(new_body, required=True)
        except InvalidArgumentError:
            self._session.rollback()
            raise

        message.content = body
        message.edited = True
        message.edited_at = utcnow()
        self._session.commit()
        return self.get(message_id)

    def mark_thread_read(self, counterpart_id: int, reader_id: int) -> tuple[int, datetime]:
        """Mark everything ``counterpart_id`` sent to ``reader_id`` as read in one batch."""

        read_at = utcnow()
        stmt = (
            update(DirectMessage)
            .where(
                DirectMessage.sender_id == counterpart_id,
                DirectMessage.recipient_id == reader_id,
                DirectMessage.is_read.is_(False),
            )
            .values(is_read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        self._session.commit()
        return result.rowcount or 0, read_at

    def mark_one_read(self, message_id: int, reader_id: int) -> DirectMessage:
        # Missing, foreign and already read messages are reported identically.
        stmt = (
            select(DirectMessage)
            .where(
                DirectMessage.id == message_id,
                DirectMessage.recipient_id == reader_id,
                DirectMessage.is_read.is_(False),
            )
            .with_for_update()
        )
        message = self._session.execute(stmt).scalar_one_or_none()
        if message is None:
            raise NotFoundError("Message not found or already read")

        message.is_read = True
        message.read_at = utcnow()
        self._session.commit()
        return self.get(message_id)

    def unread_total(self, user_id: int) -> int:
        stmt = select(func.count(DirectMessage.id)).where(
            DirectMessage.recipient_id == user_id,
            DirectMessage.is_read.is_(False),
        )
        return int(self._session.execute(stmt).scalar_one())

    def _clean_body(self, content: str | None, *, required: bool) -> str:
        body = (content or "").strip()
        if required and not body:
            raise InvalidArgumentError("Message content is required")
        if len(body) > settings.message_max_length:
            raise InvalidArgumentError(
                f"Message content exceeds {settings.message_max_length} characters"
            )
        return body
