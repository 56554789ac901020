from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base
from app.models.enums import MessageType

# MySQL DATETIME truncates to whole seconds unless fsp is given.
PreciseDateTime = DateTime(timezone=True).with_variant(mysql.DATETIME(fsp=6), "mysql")


def utcnow() -> datetime:
    """Timezone-aware current time with microsecond precision."""

    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from the database."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class User(Base):
    """Application user."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(128))
    avatar_url: Mapped[str | None] = mapped_column(String(512))
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    sent_messages: Mapped[list["DirectMessage"]] = relationship(
        back_populates="sender", foreign_keys="DirectMessage.sender_id"
    )
    received_messages: Mapped[list["DirectMessage"]] = relationship(
        back_populates="recipient", foreign_keys="DirectMessage.recipient_id"
    )
    push_subscriptions: Mapped[list["PushSubscription"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


class UserFollow(Base):
    """Directed follow edge of the social graph."""

    __tablename__ = "user_follows"
    __table_args__ = (
        UniqueConstraint("follower_id", "followee_id", name="uq_user_follows_pair"),
        Index("ix_user_follows_followee", "followee_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    follower_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    followee_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class DirectMessage(Base):
    """Single message exchanged between two users."""

    __tablename__ = "direct_messages"
    __table_args__ = (
        Index("ix_direct_messages_pair_created", "sender_id", "recipient_id", "created_at"),
        Index("ix_direct_messages_recipient_unread", "recipient_id", "is_read"),
        Index("ix_direct_messages_thread", "thread_id"),
        Index("ix_direct_messages_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    sender_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    message_type: Mapped[MessageType] = mapped_column(
        SAEnum(
            MessageType,
            name="message_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=MessageType.TEXT,
        nullable=False,
    )
    media_url: Mapped[str | None] = mapped_column(String(1024))
    media_duration: Mapped[float | None] = mapped_column()
    media_poster_url: Mapped[str | None] = mapped_column(String(1024))
    thread_id: Mapped[int | None] = mapped_column(Integer)
    # May point at a message that no longer exists.
    reply_to_id: Mapped[int | None] = mapped_column(Integer)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(PreciseDateTime)
    edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edited_at: Mapped[datetime | None] = mapped_column(PreciseDateTime)
    created_at: Mapped[datetime] = mapped_column(
        PreciseDateTime, default=utcnow, nullable=False
    )

    sender: Mapped[User] = relationship(back_populates="sent_messages", foreign_keys=[sender_id])
    recipient: Mapped[User] = relationship(
        back_populates="received_messages", foreign_keys=[recipient_id]
    )
    reply_to: Mapped["DirectMessage | None"] = relationship(
        primaryjoin="foreign(DirectMessage.reply_to_id) == remote(DirectMessage.id)",
        viewonly=True,
    )
    reactions: Mapped[list["DirectMessageReaction"]] = relationship(
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="DirectMessageReaction.created_at",
    )

    def involves(self, user_id: int) -> bool:
        return user_id in (self.sender_id, self.recipient_id)

    def in_conversation(self, first_id: int, second_id: int) -> bool:
        return {self.sender_id, self.recipient_id} == {first_id, second_id}

    @property
    def reply_preview(self) -> "DirectMessage | None":
        """The replied-to message, hidden unless it belongs to this conversation."""

        parent = self.reply_to
        if parent is None or not parent.in_conversation(self.sender_id, self.recipient_id):
            return None
        return parent


class DirectMessageReaction(Base):
    """Emoji reaction left by a user on a direct message."""

    __tablename__ = "direct_message_reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_direct_message_reactions_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    message_id: Mapped[int] = mapped_column(
        ForeignKey("direct_messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    emoji: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        PreciseDateTime, default=utcnow, nullable=False
    )

    message: Mapped[DirectMessage] = relationship(back_populates="reactions")
    user: Mapped[User] = relationship()


class PushSubscription(Base):
    """Browser push endpoint registered by a user."""

    __tablename__ = "push_subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    endpoint: Mapped[str] = mapped_column(String(768), unique=True, nullable=False)
    p256dh: Mapped[str] = mapped_column(String(255), nullable=False)
    auth: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    user: Mapped[User] = relationship(back_populates="push_subscriptions")
