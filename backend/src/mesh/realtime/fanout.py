"""Asynchronous fan-out of message events to live channels and push."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from fastapi import status
from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.core.errors import UnavailableError
from app.models.enums import RealtimeEvent
from app.monitoring.metrics import (
    push_dispatch_total,
    realtime_delivery_errors_total,
    realtime_events_total,
)

from .registry import ConnectionRegistry

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from app.services.push import PushDispatcher, PushNotification


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FanoutEvent:
    """Event queued for delivery.

    ``recipients`` are served in order. When ``push_user_id`` has no live
    channel at processing time, ``notification`` is dispatched to it instead.
    """

    type: str
    data: dict[str, Any]
    recipients: tuple[int, ...]
    push_user_id: int | None = None
    notification: "PushNotification | None" = None

    def envelope(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


class RealtimeFanout:
    """Queue plus background worker decoupling delivery from request handling.

    The worker only routes events: each user gets a delivery lane of their
    own, so events for one user keep their order while a stalled channel
    never holds up anybody else. Publishing never blocks and never raises
    because of delivery problems: a full queue drops the event, slow or
    broken channels are timed out, evicted and logged, and push failures are
    logged by the push task itself.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        push_dispatcher: "PushDispatcher | None" = None,
        *,
        send_timeout: float = 5.0,
        queue_size: int = 1000,
    ) -> None:
        self._registry = registry
        self._push = push_dispatcher
        self._send_timeout = send_timeout
        self._queue: asyncio.Queue[FanoutEvent] = asyncio.Queue(maxsize=queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._lanes: dict[int, deque[tuple[dict[str, Any], str]]] = {}
        self._lane_tasks: dict[int, asyncio.Task[None]] = {}
        self._background: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    # Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        self._ensure_worker()

    async def drain(self) -> None:
        """Wait until queued events, per-user deliveries and push tasks have finished."""

        if self._worker is not None:
            await self._queue.join()
        while True:
            pending = [
                task
                for task in (*self._lane_tasks.values(), *self._background)
                if not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def stop(self, *, timeout: float = 5.0) -> None:
        worker = self._worker
        if worker is None:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Realtime fan-out stopped with %d undelivered events", self._queue.qsize()
            )
        tasks = [worker, *self._lane_tasks.values(), *self._background]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._lanes.clear()
        self._lane_tasks.clear()
        self._worker = None

    # Publishing ----------------------------------------------------------

    def publish(self, event: FanoutEvent) -> bool:
        """Enqueue ``event``; returns False when it had to be dropped."""

        self._ensure_worker()
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Realtime queue is full; dropping %s event", event.type)
            realtime_events_total.labels(event.type, "dropped").inc()
            return False
        return True

    def message_created(
        self,
        message: dict[str, Any],
        *,
        sender_id: int,
        recipient_id: int,
        notification: "PushNotification | None" = None,
    ) -> bool:
        # recipient first, then the sender's confirmation
        return self.publish(
            FanoutEvent(
                type=RealtimeEvent.MESSAGE_CREATED.value,
                data=message,
                recipients=(recipient_id, sender_id),
                push_user_id=recipient_id if notification is not None else None,
                notification=notification,
            )
        )

    def message_edited(self, message: dict[str, Any], *, sender_id: int, recipient_id: int) -> bool:
        return self.publish(
            FanoutEvent(
                type=RealtimeEvent.MESSAGE_EDITED.value,
                data=message,
                recipients=(recipient_id, sender_id),
            )
        )

    def reaction_changed(
        self, message: dict[str, Any], *, sender_id: int, recipient_id: int
    ) -> bool:
        return self.publish(
            FanoutEvent(
                type=RealtimeEvent.MESSAGE_REACTION_CHANGED.value,
                data=message,
                recipients=(recipient_id, sender_id),
            )
        )

    def typing(self, *, from_user_id: int, to_user_id: int, is_typing: bool) -> bool:
        return self.publish(
            FanoutEvent(
                type=RealtimeEvent.PRESENCE_TYPING.value,
                data={"user_id": from_user_id, "is_typing": is_typing},
                recipients=(to_user_id,),
            )
        )

    # Worker --------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            loop = asyncio.get_running_loop()
            self._worker = loop.create_task(self._run(), name="realtime-fanout")

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._process(event)
            except Exception:
                logger.exception("Realtime fan-out failed for %s event", event.type)
                realtime_events_total.labels(event.type, "error").inc()
            else:
                realtime_events_total.labels(event.type, "processed").inc()
            finally:
                self._queue.task_done()

    async def _process(self, event: FanoutEvent) -> None:
        if event.push_user_id is not None and event.notification is not None:
            if not await self._registry.is_online(event.push_user_id):
                self._spawn(self._dispatch_push(event.push_user_id, event.notification))

        envelope = event.envelope()
        for user_id in _unique(event.recipients):
            self._enqueue(user_id, envelope, event.type)

    def _enqueue(self, user_id: int, envelope: dict[str, Any], event_type: str) -> None:
        lane = self._lanes.get(user_id)
        if lane is None:
            lane = self._lanes[user_id] = deque()
            self._lane_tasks[user_id] = asyncio.get_running_loop().create_task(
                self._drain_lane(user_id, lane), name=f"realtime-lane-{user_id}"
            )
        lane.append((envelope, event_type))

    async def _drain_lane(self, user_id: int, lane: deque[tuple[dict[str, Any], str]]) -> None:
        # the lane is dropped as soon as it runs dry; _enqueue starts a fresh one
        try:
            while lane:
                envelope, event_type = lane.popleft()
                try:
                    channels = await self._registry.channels_for(user_id)
                    if channels:
                        await self._deliver(user_id, channels, envelope, event_type)
                except Exception:
                    logger.exception("Delivering %s event to user %s failed", event_type, user_id)
                    realtime_delivery_errors_total.labels(event_type, "error").inc()
        finally:
            self._lanes.pop(user_id, None)
            self._lane_tasks.pop(user_id, None)

    async def _deliver(
        self,
        user_id: int,
        channels: list[WebSocket],
        envelope: dict[str, Any],
        event_type: str,
    ) -> None:
        results = await asyncio.gather(
            *(self._send(channel, envelope, event_type) for channel in channels),
            return_exceptions=True,
        )
        for channel, result in zip(channels, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error delivering %s event",
                    event_type,
                    exc_info=(type(result), result, result.__traceback__),
                )
                realtime_delivery_errors_total.labels(event_type, "error").inc()
            elif not result:
                await self._evict(user_id, channel)

    async def _send(self, channel: WebSocket, envelope: dict[str, Any], event_type: str) -> bool:
        if channel.application_state != WebSocketState.CONNECTED:
            realtime_delivery_errors_total.labels(event_type, "closed").inc()
            return False
        try:
            await asyncio.wait_for(channel.send_json(envelope), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Timed out delivering %s event to a channel", event_type)
            realtime_delivery_errors_total.labels(event_type, "timeout").inc()
            return False
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.warning("Failed to deliver %s event: %s", event_type, exc)
            realtime_delivery_errors_total.labels(event_type, "disconnected").inc()
            return False
        return True

    async def _evict(self, user_id: int, channel: WebSocket) -> None:
        """Stop delivering to a channel that timed out or went away."""

        await self._registry.unregister(user_id, channel)
        logger.info("Evicted an unresponsive channel of user %s", user_id)
        if channel.application_state == WebSocketState.CONNECTED:
            self._spawn(self._close(channel))

    async def _close(self, channel: WebSocket) -> None:
        try:
            await asyncio.wait_for(
                channel.close(code=status.WS_1013_TRY_AGAIN_LATER),
                timeout=self._send_timeout,
            )
        except (asyncio.TimeoutError, WebSocketDisconnect, RuntimeError, OSError) as exc:
            logger.debug("Could not close evicted channel: %s", exc)

    # Background ------------------------------------------------------------

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _dispatch_push(self, user_id: int, notification: "PushNotification") -> None:
        if self._push is None:
            push_dispatch_total.labels("skipped").inc()
            return
        try:
            result = await self._push.dispatch(user_id, notification)
        except UnavailableError as exc:
            logger.warning("Push notification to user %s failed: %s", user_id, exc.reason)
            push_dispatch_total.labels("failed").inc()
        except Exception:
            logger.exception("Unexpected push failure for user %s", user_id)
            push_dispatch_total.labels("failed").inc()
        else:
            push_dispatch_total.labels(result.value).inc()


def _unique(user_ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(user_ids))
