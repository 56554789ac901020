"""Per-user reaction toggles on direct messages."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import InvalidArgumentError, NotFoundError
from app.models import DirectMessage, DirectMessageReaction, utcnow
from app.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class ReactionEngine:
    """Keeps at most one reaction per user on each message."""

    def __init__(self, session: Session):
        self._session = session
        self._store = MessageStore(session)

    def toggle(self, message_id: int, user_id: int, emoji: str) -> DirectMessage:
        """Add, remove or replace the user's reaction.

        The same emoji twice removes it; a different emoji replaces the
        existing one and refreshes its timestamp. A unique violation from a
        concurrent insert is retried once against the fresh row state.
        """

        emoji = (emoji or "").strip()
        if not emoji:
            raise InvalidArgumentError("Emoji is required")

        try:
            self._apply_toggle(message_id, user_id, emoji)
        except IntegrityError:
            self._session.rollback()
            logger.info(
                "Concurrent reaction write on message %s by user %s; retrying", message_id, user_id
            )
            self._apply_toggle(message_id, user_id, emoji)
        return self._store.get(message_id)

    def remove(self, message_id: int, user_id: int, emoji: str | None = None) -> DirectMessage:
        """Remove the user's reaction, restricted to ``emoji`` when given."""

        self._locked_message(message_id, user_id)
        stmt = select(DirectMessageReaction).where(
            DirectMessageReaction.message_id == message_id,
            DirectMessageReaction.user_id == user_id,
        )
        if emoji is not None and emoji.strip():
            stmt = stmt.where(DirectMessageReaction.emoji == emoji.strip())
        reaction = self._session.execute(stmt).scalar_one_or_none()
        if reaction is None:
            self._session.rollback()
            raise NotFoundError("Reaction not found")

        self._session.delete(reaction)
        self._session.commit()
        return self._store.get(message_id)

    def _apply_toggle(self, message_id: int, user_id: int, emoji: str) -> None:
        self._locked_message(message_id, user_id)
        stmt = select(DirectMessageReaction).where(
            DirectMessageReaction.message_id == message_id,
            DirectMessageReaction.user_id == user_id,
        )
        existing = self._session.execute(stmt).scalar_one_or_none()
        if existing is None:
            self._session.add(
                DirectMessageReaction(message_id=message_id, user_id=user_id, emoji=emoji)
            )
        elif existing.emoji == emoji:
            self._session.delete(existing)
        else:
            existing.emoji = emoji
            existing.created_at = utcnow()
        self._session.commit()

    def _locked_message(self, message_id: int, user_id: int) -> DirectMessage:
        message = self._store.lock(message_id)
        if message is None or not message.involves(user_id):
            self._session.rollback()
            raise NotFoundError("Message not found")
        return message
