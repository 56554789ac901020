"""WebSocket endpoint for realtime direct message delivery."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.exceptions import HTTPException
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.api.deps import get_user_from_token
from app.config import get_settings
from app.database import get_db_session
from app.models import User
from app.services import UserDirectory
from mesh.realtime import RealtimeFanout

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = interval <= 0 or (
                now - last_activity >= interval
                and (last_ping_sent is None or now - last_ping_sent >= interval)
            )
            if should_ping:
                if not await safe_send_json(websocket, ping_payload):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


async def _resolve_user(websocket: WebSocket) -> User | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return None

    try:
        with get_db_session() as db:
            return get_user_from_token(token, db)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send JSON through the websocket, returning False when the peer is gone."""

    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Failed to send websocket message: %s", e)
        return False


async def _send_error(websocket: WebSocket, detail: str) -> None:
    await safe_send_json(websocket, {"type": "error", "detail": detail})


def _record_presence(user_id: int, online: bool) -> None:
    with get_db_session() as db:
        UserDirectory(db).set_online(user_id, online)


def _parse_typing(payload: dict[str, Any]) -> tuple[int, bool] | None:
    target = payload.get("to")
    if isinstance(target, bool) or not isinstance(target, int):
        return None
    return target, bool(payload.get("is_typing", True))


@router.websocket("/direct")
async def websocket_direct(websocket: WebSocket) -> None:
    """Deliver message events to the authenticated user and relay typing hints."""

    fanout: RealtimeFanout | None = getattr(websocket.app.state, "fanout", None)
    if fanout is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason="Realtime delivery unavailable")
        return

    user = await _resolve_user(websocket)
    if user is None:
        return
    user_id = user.id

    await websocket.accept()
    if await fanout.registry.register(user_id, websocket):
        _record_presence(user_id, True)
    logger.info("User %s connected to direct channel", user_id)

    try:
        await safe_send_json(websocket, {"type": "ready", "data": {"user_id": user_id}})
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                await _send_error(websocket, "Invalid payload")
                continue
            if not isinstance(payload, dict):
                await _send_error(websocket, "Invalid payload")
                continue

            message_type = payload.get("type")
            if message_type == "ping":
                await safe_send_json(websocket, {"type": "pong"})
            elif message_type == "pong":
                continue
            elif message_type == "typing":
                parsed = _parse_typing(payload)
                if parsed is None:
                    await _send_error(websocket, "Typing target is required")
                    continue
                target, is_typing = parsed
                fanout.typing(from_user_id=user_id, to_user_id=target, is_typing=is_typing)
            else:
                await _send_error(websocket, "Unsupported event type")
    finally:
        # the fan-out may already have evicted this channel
        await fanout.registry.unregister(user_id, websocket)
        if not await fanout.registry.is_online(user_id):
            _record_presence(user_id, False)
        logger.info("User %s disconnected from direct channel", user_id)
