"""Relay transport layer

This module defines the channel primitives the room engine consumes and an
in-process relay implementing them.
"""

from .base import (
    Channel,
    ChannelConfig,
    ChannelState,
    PresenceEvent,
    RelayClient,
    SubscribeStatus,
)
from .memory import InMemoryRelay, MemoryChannel

__all__ = [
    "Channel",
    "ChannelConfig",
    "ChannelState",
    "PresenceEvent",
    "RelayClient",
    "SubscribeStatus",
    "InMemoryRelay",
    "MemoryChannel",
]
