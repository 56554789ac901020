"""HTTP endpoints for direct messages."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_fanout
from app.config import get_settings
from app.core import resolve_media_path, store_message_media
from app.database import get_db
from app.models import DirectMessage, User, as_utc
from app.schemas import (
    ConversationLastMessage,
    ConversationPage,
    ConversationPagination,
    ConversationRead,
    MediaUploadRead,
    MessageCreate,
    MessageHistoryPage,
    MessageRead,
    MessageUpdate,
    PublicUser,
    ReactionRead,
    ReactionRequest,
    ReadReceipt,
    ReplyPreview,
    UnreadCount,
)
from app.search import MessageFilters, MessageHistoryService, MessageWindow, parse_timestamp
from app.services import (
    ConversationAggregator,
    ConversationSummary,
    MessageStore,
    ReactionEngine,
    UserDirectory,
    build_message_notification,
    fetch_thread,
    mutual_contacts,
)
from mesh.realtime import RealtimeFanout

router = APIRouter(prefix="/messages", tags=["messages"])

settings = get_settings()

logger = logging.getLogger(__name__)


def serialize_message(message: DirectMessage) -> MessageRead:
    reply_to = None
    parent = message.reply_preview
    if parent is not None:
        reply_to = ReplyPreview(
            id=parent.id,
            content=parent.content,
            message_type=parent.message_type,
            sender=PublicUser.model_validate(parent.sender),
        )

    return MessageRead(
        id=message.id,
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        sender=PublicUser.model_validate(message.sender),
        recipient=PublicUser.model_validate(message.recipient),
        content=message.content,
        message_type=message.message_type,
        media_url=message.media_url,
        media_duration=message.media_duration,
        media_poster_url=message.media_poster_url,
        thread_id=message.thread_id,
        reply_to_id=message.reply_to_id,
        reply_to=reply_to,
        reactions=[
            ReactionRead(
                user_id=reaction.user_id,
                emoji=reaction.emoji,
                created_at=as_utc(reaction.created_at),
            )
            for reaction in message.reactions
        ],
        is_read=message.is_read,
        read_at=as_utc(message.read_at),
        edited=message.edited,
        edited_at=as_utc(message.edited_at),
        created_at=as_utc(message.created_at),
    )


def _serialize_window(window: MessageWindow) -> MessageHistoryPage:
    return MessageHistoryPage(
        messages=[serialize_message(message) for message in window.messages],
        has_more=window.has_more,
        next_cursor=window.next_cursor,
    )


def _serialize_conversation(summary: ConversationSummary) -> ConversationRead:
    last = summary.last_message
    return ConversationRead(
        user=PublicUser.model_validate(summary.counterpart),
        last_message=ConversationLastMessage(
            id=last.id,
            content=last.content,
            message_type=last.message_type,
            created_at=as_utc(last.created_at),
            is_read=last.is_read,
            sender_id=last.sender_id,
        ),
        unread_count=summary.unread_count,
    )


@router.post("", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    fanout: RealtimeFanout = Depends(get_fanout),
) -> MessageRead:
    """Send a message to another user."""

    message = MessageStore(db).send(
        current_user.id,
        payload.recipient_id,
        kind=payload.message_type,
        content=payload.content,
        media_url=payload.media_url,
        media_duration=payload.media_duration,
        media_poster_url=payload.media_poster_url,
        reply_to_id=payload.reply_to_id,
    )
    serialized = serialize_message(message)
    fanout.message_created(
        serialized.model_dump(mode="json"),
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
        notification=build_message_notification(message.sender, settings),
    )
    return serialized


@router.get("/conversations", response_model=ConversationPage)
def list_conversations(
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ConversationPage:
    """Return one summary per counterpart, most recent conversation first."""

    listing = ConversationAggregator(db).list(current_user.id, page=page, page_size=limit)
    return ConversationPage(
        conversations=[_serialize_conversation(item) for item in listing.items],
        pagination=ConversationPagination(
            current_page=listing.page,
            total_pages=listing.total_pages,
            total_conversations=listing.total,
            has_more=listing.has_more,
            limit=listing.page_size,
        ),
    )


@router.get("/mutual-contacts", response_model=list[PublicUser])
def list_mutual_contacts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[PublicUser]:
    """Users who follow the current user and are followed back."""

    return mutual_contacts(current_user.id, db)


@router.get("/unread-count", response_model=UnreadCount)
def get_unread_total(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnreadCount:
    return UnreadCount(count=MessageStore(db).unread_total(current_user.id))


@router.post("/media", response_model=MediaUploadRead, status_code=status.HTTP_201_CREATED)
async def upload_media(
    file: UploadFile = File(...),
    duration: float | None = Form(default=None, ge=0),
    current_user: User = Depends(get_current_user),
) -> MediaUploadRead:
    """Store a media payload; the returned URL is then sent as a message."""

    stored = await store_message_media(current_user.id, file)
    logger.info("Stored %d bytes of media for user %s", stored.file_size, current_user.id)
    return MediaUploadRead(
        url=stored.url,
        content_type=stored.content_type,
        size=stored.file_size,
        duration=duration,
    )


@router.get("/media/{user_id}/{file_name}", response_class=FileResponse)
def download_media(
    user_id: int,
    file_name: str,
    current_user: User = Depends(get_current_user),
) -> FileResponse:
    return FileResponse(resolve_media_path(user_id, file_name))


@router.get("/with/{user_id}", response_model=MessageHistoryPage)
def list_messages(
    user_id: int,
    before: str | None = Query(default=None, description="Exclusive upper bound on created_at"),
    limit: int | None = Query(default=None, ge=1),
    q: str | None = Query(default=None, max_length=200),
    start: str | None = Query(default=None),
    end: str | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageHistoryPage:
    """Return a window of the conversation with ``user_id`` in ascending order.

    Unread messages in the returned window that are addressed to the caller
    are marked as read.
    """

    UserDirectory(db).get(user_id)
    filters = MessageFilters.from_query(before=before, text=q, start=start, end=end)
    history = MessageHistoryService(db)
    window = history.conversation(current_user.id, user_id, limit=limit, filters=filters)
    history.mark_window_read(window, current_user.id)
    return _serialize_window(window)


@router.post("/with/{user_id}/read", response_model=ReadReceipt)
def mark_conversation_read(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ReadReceipt:
    """Mark everything ``user_id`` sent to the caller as read."""

    UserDirectory(db).get(user_id)
    updated, read_at = MessageStore(db).mark_thread_read(user_id, current_user.id)
    return ReadReceipt(updated=updated, read_at=read_at)


@router.get("/threads/{thread_id}", response_model=MessageHistoryPage)
def get_thread(
    thread_id: int,
    before: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageHistoryPage:
    """Return the root message and its replies, oldest first."""

    cursor = parse_timestamp(before, field="cursor") if before else None
    window = fetch_thread(thread_id, current_user.id, db, before=cursor, limit=limit)
    return _serialize_window(window)


@router.put("/{message_id}", response_model=MessageRead)
async def edit_message(
    message_id: int,
    payload: MessageUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    fanout: RealtimeFanout = Depends(get_fanout),
) -> MessageRead:
    """Replace the body of a message sent by the caller."""

    message = MessageStore(db).edit(message_id, current_user.id, payload.content)
    serialized = serialize_message(message)
    fanout.message_edited(
        serialized.model_dump(mode="json"),
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
    )
    return serialized


@router.post("/{message_id}/reactions", response_model=MessageRead)
async def toggle_reaction(
    message_id: int,
    payload: ReactionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    fanout: RealtimeFanout = Depends(get_fanout),
) -> MessageRead:
    """Add, replace or remove (same emoji again) the caller's reaction."""

    message = ReactionEngine(db).toggle(message_id, current_user.id, payload.emoji)
    serialized = serialize_message(message)
    fanout.reaction_changed(
        serialized.model_dump(mode="json"),
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
    )
    return serialized


@router.delete("/{message_id}/reactions", response_model=MessageRead)
async def remove_reaction(
    message_id: int,
    emoji: str | None = Query(default=None, max_length=32),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    fanout: RealtimeFanout = Depends(get_fanout),
) -> MessageRead:
    """Remove the caller's reaction, optionally only if it matches ``emoji``."""

    message = ReactionEngine(db).remove(message_id, current_user.id, emoji)
    serialized = serialize_message(message)
    fanout.reaction_changed(
        serialized.model_dump(mode="json"),
        sender_id=message.sender_id,
        recipient_id=message.recipient_id,
    )
    return serialized


@router.put("/{message_id}/read", response_model=MessageRead)
def mark_message_read(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageRead:
    """Mark a single message addressed to the caller as read."""

    return serialize_message(MessageStore(db).mark_one_read(message_id, current_user.id))
