"""
In-process relay implementing presence and broadcast.

Every channel owns an inbox queue drained by its own pump task, so callbacks
for one channel always run sequentially on the event loop while deliveries to
different channels interleave freely.
"""

import asyncio
import copy
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..utils.logging import get_logger
from ..utils.errors import TransportError
from .base import (
    Channel,
    ChannelConfig,
    ChannelState,
    PresenceEvent,
    PresenceState,
    RelayClient,
    StatusCallback,
    SubscribeStatus,
)

logger = get_logger("poker-sync.relay")

_STATUS = "status"
_PRESENCE = "presence"
_BROADCAST = "broadcast"


@dataclass
class _Topic:
    """Members and presence entries of one topic."""
    name: str
    members: List['MemoryChannel'] = field(default_factory=list)
    # key -> [(channel, payload)], oldest first
    presence: "OrderedDict[str, List[Tuple[MemoryChannel, Dict[str, Any]]]]" = field(
        default_factory=OrderedDict
    )

    def snapshot(self) -> PresenceState:
        return {
            key: [copy.deepcopy(payload) for _, payload in entries]
            for key, entries in self.presence.items()
        }


class MemoryChannel(Channel):
    """Channel bound to an :class:`InMemoryRelay` topic."""

    def __init__(self, relay: 'InMemoryRelay', topic: str, config: Optional[ChannelConfig] = None):
        super().__init__(topic, config)
        self._relay = relay
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._pump_task: Optional[asyncio.Task] = None

    def subscribe(self, callback: Optional[StatusCallback] = None) -> 'MemoryChannel':
        if self.state in (ChannelState.JOINING, ChannelState.JOINED):
            raise TransportError(f"Channel {self.topic} is already subscribed")

        self._status_callback = callback
        self.state = ChannelState.JOINING
        self._start_pump()
        self._relay._join(self)
        return self

    async def track(self, payload: Dict[str, Any]) -> str:
        if not self.joined:
            logger.warning("track_before_join", topic=self.topic, state=self.state.value)
            return "error"
        self._stats["messages_sent"] += 1
        self._relay._track(self, copy.deepcopy(payload))
        return "ok"

    async def untrack(self) -> str:
        if not self.joined:
            return "error"
        self._relay._untrack(self)
        return "ok"

    async def send(self, message: Dict[str, Any]) -> str:
        self._validate_broadcast(message)
        if not self.joined:
            logger.warning("send_before_join", topic=self.topic, broadcast_event=message["event"])
            return "error"
        self._stats["messages_sent"] += 1
        self._relay._broadcast(self, copy.deepcopy(message))
        return "ok"

    def presence_state(self) -> PresenceState:
        return self._relay.presence_state(self.topic)

    async def unsubscribe(self) -> str:
        if self.state == ChannelState.CLOSED:
            return "ok"
        if self._relay.fail_teardown:
            raise TransportError(f"Relay refused to close {self.topic}")

        self.state = ChannelState.LEAVING
        self._relay._leave(self)
        self.state = ChannelState.CLOSED
        await self._stop_pump()
        return "ok"

    def _deliver(self, kind: str, *args) -> None:
        self._relay._pending += 1
        self._inbox.put_nowait((kind, args))

    def _start_pump(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    async def _stop_pump(self) -> None:
        while not self._inbox.empty():
            self._inbox.get_nowait()
            self._inbox.task_done()
            self._relay._pending -= 1

        task, self._pump_task = self._pump_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _pump(self) -> None:
        """Deliver queued notifications one at a time."""
        while True:
            kind, args = await self._inbox.get()
            try:
                if kind == _STATUS:
                    await self._dispatch_status(*args)
                elif kind == _PRESENCE:
                    await self._dispatch_presence(*args)
                elif kind == _BROADCAST:
                    await self._dispatch_broadcast(*args)
            finally:
                self._inbox.task_done()
                self._relay._pending -= 1
            # Stopped from inside one of its own deliveries.
            if self._pump_task is not asyncio.current_task():
                return


class InMemoryRelay(RelayClient):
    """
    Relay that keeps every topic in this process.

    Presence is delivered at-least-once to all members including the tracker;
    broadcasts reach the other members (and the sender when the channel asks
    for ``broadcast_self``). ``fail_subscriptions``, ``drop_broadcasts`` and
    ``fail_teardown`` simulate relay faults.
    """

    def __init__(self, name: str = "memory"):
        self.name = name
        self.fail_subscriptions = False
        self.drop_broadcasts = False
        self.fail_teardown = False
        self._topics: Dict[str, _Topic] = {}
        self._channels: List[MemoryChannel] = []
        self._pending = 0
        self._stats = {
            "broadcasts": 0,
            "broadcasts_dropped": 0,
            "presence_updates": 0,
        }

    def channel(self, topic: str, config: Optional[ChannelConfig] = None) -> MemoryChannel:
        channel = MemoryChannel(self, topic, config)
        self._channels.append(channel)
        logger.debug("channel_created", relay=self.name, topic=topic)
        return channel

    async def remove_channel(self, channel: Channel) -> None:
        try:
            await channel.unsubscribe()
        finally:
            if channel in self._channels:
                self._channels.remove(channel)

    def get_channels(self) -> List[Channel]:
        return list(self._channels)

    def presence_state(self, topic: str) -> PresenceState:
        entry = self._topics.get(topic)
        return entry.snapshot() if entry else {}

    async def flush(self, idle_rounds: int = 10) -> None:
        """Yield to the loop until no delivery is pending for ``idle_rounds`` turns."""
        idle = 0
        while idle < idle_rounds:
            await asyncio.sleep(0)
            idle = idle + 1 if self._pending == 0 else 0

    def _topic(self, name: str) -> _Topic:
        if name not in self._topics:
            self._topics[name] = _Topic(name=name)
        return self._topics[name]

    def _join(self, channel: MemoryChannel) -> None:
        if self.fail_subscriptions:
            channel.state = ChannelState.ERRORED
            channel._deliver(_STATUS, SubscribeStatus.CHANNEL_ERROR,
                             TransportError(f"Relay rejected {channel.topic}"))
            logger.warning("subscription_rejected", relay=self.name, topic=channel.topic)
            return

        topic = self._topic(channel.topic)
        topic.members.append(channel)
        channel.state = ChannelState.JOINED
        channel._deliver(_STATUS, SubscribeStatus.SUBSCRIBED, None)
        # A fresh member learns the current roster through a sync.
        channel._deliver(_PRESENCE, PresenceEvent.SYNC, {})
        logger.debug("channel_joined", relay=self.name, topic=channel.topic,
                     members=len(topic.members))

    def _leave(self, channel: MemoryChannel) -> None:
        topic = self._topics.get(channel.topic)
        if topic is None:
            return
        self._untrack(channel)
        if channel in topic.members:
            topic.members.remove(channel)
        if not topic.members and not topic.presence:
            del self._topics[channel.topic]

    def _track(self, channel: MemoryChannel, payload: Dict[str, Any]) -> None:
        topic = self._topic(channel.topic)
        entries = topic.presence.setdefault(channel.presence_key, [])
        for index, (owner, _) in enumerate(entries):
            if owner is channel:
                entries[index] = (channel, payload)
                break
        else:
            entries.append((channel, payload))

        self._stats["presence_updates"] += 1
        self._fan_out_presence(
            topic,
            PresenceEvent.JOIN,
            {"key": channel.presence_key, "newPresences": [copy.deepcopy(payload)]},
        )

    def _untrack(self, channel: MemoryChannel) -> None:
        topic = self._topics.get(channel.topic)
        if topic is None:
            return
        entries = topic.presence.get(channel.presence_key)
        if not entries:
            return
        left = [payload for owner, payload in entries if owner is channel]
        if not left:
            return
        remaining = [(owner, payload) for owner, payload in entries if owner is not channel]
        if remaining:
            topic.presence[channel.presence_key] = remaining
        else:
            del topic.presence[channel.presence_key]

        self._stats["presence_updates"] += 1
        self._fan_out_presence(
            topic,
            PresenceEvent.LEAVE,
            {"key": channel.presence_key, "leftPresences": left},
        )

    def _fan_out_presence(self, topic: _Topic, event: PresenceEvent, payload: Dict[str, Any]) -> None:
        for member in topic.members:
            if member.joined:
                member._deliver(_PRESENCE, event, copy.deepcopy(payload))
                member._deliver(_PRESENCE, PresenceEvent.SYNC, {})

    def _broadcast(self, sender: MemoryChannel, message: Dict[str, Any]) -> None:
        self._stats["broadcasts"] += 1
        if self.drop_broadcasts:
            self._stats["broadcasts_dropped"] += 1
            logger.debug("broadcast_dropped", topic=sender.topic, broadcast_event=message["event"])
            return

        topic = self._topic(sender.topic)
        for member in topic.members:
            if member is sender and not sender.config.broadcast_self:
                continue
            if member.joined:
                member._deliver(_BROADCAST, copy.deepcopy(message))

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "topics": len(self._topics),
            "channels": len(self._channels),
            "pending": self._pending,
        }


__all__ = [
    'InMemoryRelay',
    'MemoryChannel',
]
