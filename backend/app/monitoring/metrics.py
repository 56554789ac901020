"""Metric definitions for messaging and realtime delivery."""

from __future__ import annotations

from .registry import registry


messages_sent_total = registry.counter(
    "messages_sent_total",
    "Number of direct messages persisted, by message kind.",
    label_names=("kind",),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events processed by the fan-out worker.",
    label_names=("event", "outcome"),
)

realtime_delivery_errors_total = registry.counter(
    "realtime_delivery_errors_total",
    "Per-channel delivery failures of realtime events.",
    label_names=("event", "reason"),
)

push_dispatch_total = registry.counter(
    "push_dispatch_total",
    "Outcome of push notification attempts for offline recipients.",
    label_names=("outcome",),
)
