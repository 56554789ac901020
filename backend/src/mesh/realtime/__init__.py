"""Realtime delivery of direct message events."""

from .fanout import FanoutEvent, RealtimeFanout  # noqa: F401
from .registry import ConnectionRegistry  # noqa: F401

__all__ = [
    "ConnectionRegistry",
    "FanoutEvent",
    "RealtimeFanout",
]
