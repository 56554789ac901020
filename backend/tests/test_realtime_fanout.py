"""Unit tests for the realtime fan-out worker and connection registry."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest
from fastapi import status
from fastapi.websockets import WebSocketState

from app.core.errors import UnavailableError
from app.monitoring.metrics import (
    push_dispatch_total,
    realtime_connections,
    realtime_delivery_errors_total,
    realtime_events_total,
)
from app.services.push import PushNotification, PushResult
from helpers import DummyWebSocket, RecordingPushDispatcher
from mesh.realtime import ConnectionRegistry, RealtimeFanout

NOTIFICATION = PushNotification(
    title="New message",
    body="Alice sent you a message",
    icon_ref="/icon-192x192.png",
    target_url="/inbox/1",
    tag="mesh-message",
)


class SlowWebSocket(DummyWebSocket):
    async def send_json(self, payload: dict[str, Any]) -> None:
        await asyncio.sleep(10)


class BrokenWebSocket(DummyWebSocket):
    async def send_json(self, payload: dict[str, Any]) -> None:
        raise RuntimeError("socket is gone")


async def _until(predicate) -> None:
    while not predicate():
        await asyncio.sleep(0.01)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.mark.anyio("asyncio")
async def test_registry_tracks_presence_transitions() -> None:
    registry = ConnectionRegistry(scope="test-presence")
    first, second = DummyWebSocket(), DummyWebSocket()

    assert await registry.register(7, first) is True
    assert await registry.register(7, second) is False
    assert await registry.register(7, second) is False
    assert await registry.is_online(7)
    assert realtime_connections.value("test-presence") == 2
    assert registry.online_user_ids() == {7}

    assert await registry.unregister(7, first) is False
    assert await registry.unregister(7, second) is True
    assert await registry.unregister(7, second) is False
    assert not await registry.is_online(7)
    assert await registry.channels_for(7) == []
    assert realtime_connections.value("test-presence") == 0


@pytest.mark.anyio("asyncio")
async def test_message_created_reaches_every_channel_of_both_parties() -> None:
    registry = ConnectionRegistry()
    push = RecordingPushDispatcher()
    fanout = RealtimeFanout(registry, push)
    sender_phone, sender_laptop, recipient = DummyWebSocket(), DummyWebSocket(), DummyWebSocket()
    await registry.register(1, sender_phone)
    await registry.register(1, sender_laptop)
    await registry.register(2, recipient)

    assert fanout.message_created({"id": 5}, sender_id=1, recipient_id=2, notification=NOTIFICATION)
    await fanout.drain()

    expected = [{"type": "message.created", "data": {"id": 5}}]
    assert recipient.sent == expected
    assert sender_phone.sent == expected
    assert sender_laptop.sent == expected
    assert push.calls == []
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_offline_recipient_gets_push_and_sender_still_gets_event() -> None:
    registry = ConnectionRegistry()
    push = RecordingPushDispatcher()
    fanout = RealtimeFanout(registry, push)
    sender = DummyWebSocket()
    await registry.register(1, sender)
    delivered_before = push_dispatch_total.value("delivered")

    fanout.message_created({"id": 9}, sender_id=1, recipient_id=2, notification=NOTIFICATION)
    await fanout.drain()

    assert push.calls == [(2, NOTIFICATION)]
    assert sender.sent == [{"type": "message.created", "data": {"id": 9}}]
    assert push_dispatch_total.value("delivered") == delivered_before + 1
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_edits_and_reactions_never_push() -> None:
    registry = ConnectionRegistry()
    push = RecordingPushDispatcher()
    fanout = RealtimeFanout(registry, push)

    fanout.message_edited({"id": 1}, sender_id=1, recipient_id=2)
    fanout.reaction_changed({"id": 1}, sender_id=1, recipient_id=2)
    await fanout.drain()

    assert push.calls == []
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_self_message_is_delivered_once_per_channel() -> None:
    registry = ConnectionRegistry()
    fanout = RealtimeFanout(registry, RecordingPushDispatcher())
    channel = DummyWebSocket()
    await registry.register(3, channel)

    fanout.message_created({"id": 1}, sender_id=3, recipient_id=3, notification=NOTIFICATION)
    await fanout.drain()

    assert len(channel.sent) == 1
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_typing_is_addressed_to_the_target_only() -> None:
    registry = ConnectionRegistry()
    fanout = RealtimeFanout(registry)
    typist, target = DummyWebSocket(), DummyWebSocket()
    await registry.register(1, typist)
    await registry.register(2, target)

    fanout.typing(from_user_id=1, to_user_id=2, is_typing=True)
    await fanout.drain()

    assert target.sent == [{"type": "presence.typing", "data": {"user_id": 1, "is_typing": True}}]
    assert typist.sent == []
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_slow_and_broken_channels_do_not_block_healthy_ones() -> None:
    registry = ConnectionRegistry()
    fanout = RealtimeFanout(registry, send_timeout=0.05)
    slow, broken, healthy, closed = SlowWebSocket(), BrokenWebSocket(), DummyWebSocket(), DummyWebSocket()
    closed.application_state = WebSocketState.DISCONNECTED
    for channel in (slow, broken, healthy, closed):
        await registry.register(2, channel)
    timeouts = realtime_delivery_errors_total.value("message.edited", "timeout")
    disconnects = realtime_delivery_errors_total.value("message.edited", "disconnected")
    closed_before = realtime_delivery_errors_total.value("message.edited", "closed")

    fanout.message_edited({"id": 4}, sender_id=1, recipient_id=2)
    await asyncio.wait_for(fanout.drain(), timeout=2)

    assert healthy.sent == [{"type": "message.edited", "data": {"id": 4}}]
    assert realtime_delivery_errors_total.value("message.edited", "timeout") == timeouts + 1
    assert realtime_delivery_errors_total.value("message.edited", "disconnected") == disconnects + 1
    assert realtime_delivery_errors_total.value("message.edited", "closed") == closed_before + 1
    assert await registry.channels_for(2) == [healthy]
    assert slow.close_code == status.WS_1013_TRY_AGAIN_LATER
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_events_for_one_user_keep_publication_order() -> None:
    registry = ConnectionRegistry()
    fanout = RealtimeFanout(registry)
    channel = DummyWebSocket()
    await registry.register(2, channel)

    for index in range(5):
        fanout.message_edited({"id": index}, sender_id=1, recipient_id=2)
    await fanout.drain()

    assert [event["data"]["id"] for event in channel.sent] == [0, 1, 2, 3, 4]
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_full_queue_drops_events(caplog, monkeypatch) -> None:
    monkeypatch.setattr(logging.getLogger("mesh.realtime"), "propagate", True)
    fanout = RealtimeFanout(ConnectionRegistry(), queue_size=1)
    dropped = realtime_events_total.value("message.edited", "dropped")

    with caplog.at_level(logging.WARNING):
        assert fanout.message_edited({"id": 1}, sender_id=1, recipient_id=2) is True
        assert fanout.message_edited({"id": 2}, sender_id=1, recipient_id=2) is False

    assert realtime_events_total.value("message.edited", "dropped") == dropped + 1
    assert "dropping message.edited event" in caplog.text
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_push_failures_are_logged_not_raised(caplog, monkeypatch) -> None:
    monkeypatch.setattr(logging.getLogger("mesh.realtime"), "propagate", True)
    push = RecordingPushDispatcher(error=UnavailableError("gateway down"))
    fanout = RealtimeFanout(ConnectionRegistry(), push)
    failed = push_dispatch_total.value("failed")

    with caplog.at_level(logging.WARNING):
        fanout.message_created({"id": 1}, sender_id=1, recipient_id=2, notification=NOTIFICATION)
        await fanout.drain()

    assert push_dispatch_total.value("failed") == failed + 1
    assert "gateway down" in caplog.text
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_skipped_push_is_counted() -> None:
    fanout = RealtimeFanout(ConnectionRegistry(), RecordingPushDispatcher(result=PushResult.SKIPPED))
    skipped = push_dispatch_total.value("skipped")

    fanout.message_created({"id": 1}, sender_id=1, recipient_id=2, notification=NOTIFICATION)
    await fanout.drain()

    assert push_dispatch_total.value("skipped") == skipped + 1
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_stuck_channel_does_not_delay_other_users() -> None:
    registry = ConnectionRegistry()
    fanout = RealtimeFanout(registry, send_timeout=1.0)
    stuck, bystander = SlowWebSocket(), DummyWebSocket()
    await registry.register(2, stuck)
    await registry.register(4, bystander)

    fanout.message_edited({"id": 1}, sender_id=1, recipient_id=2)
    fanout.message_edited({"id": 2}, sender_id=3, recipient_id=4)
    await asyncio.wait_for(_until(lambda: bystander.sent), timeout=0.5)

    assert bystander.sent == [{"type": "message.edited", "data": {"id": 2}}]
    await fanout.drain()
    assert not await registry.is_online(2)
    assert stuck.close_code == status.WS_1013_TRY_AGAIN_LATER
    await fanout.stop()


@pytest.mark.anyio("asyncio")
async def test_evicted_user_falls_back_to_push() -> None:
    registry = ConnectionRegistry()
    push = RecordingPushDispatcher()
    fanout = RealtimeFanout(registry, push, send_timeout=0.05)
    await registry.register(2, SlowWebSocket())

    fanout.message_edited({"id": 1}, sender_id=1, recipient_id=2)
    await fanout.drain()
    fanout.message_created({"id": 2}, sender_id=1, recipient_id=2, notification=NOTIFICATION)
    await fanout.drain()

    assert push.calls == [(2, NOTIFICATION)]
    await fanout.stop()
