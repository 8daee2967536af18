"""
Room channel lifecycle.

The binder owns the one relay channel of a room: it builds the channel for a
normalized room identifier, wires the fixed set of presence and broadcast
handlers, publishes this device's presence record once the relay confirms
the subscription, and republishes the full record whenever one of its inputs
changes.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Set

from ..models.room import BroadcastEvent, DEFAULT_PLAYER_NAME, PresencePayload
from ..transport.base import (
    Channel,
    ChannelConfig,
    PresenceEvent,
    PresenceState,
    RelayClient,
    SubscribeStatus,
)
from ..utils.config import RoomConfig
from ..utils.errors import SubscriptionError
from ..utils.logging import get_logger


logger = get_logger("poker-sync.binder")


def normalize_room_id(room_identifier: Optional[str]) -> str:
    """Trim and case-fold a room identifier."""
    return (room_identifier or "").strip().casefold()


def topic_for(room_identifier: Optional[str], prefix: str = "room") -> Optional[str]:
    """Relay topic for a room, or ``None`` when the identifier is blank."""
    normalized = normalize_room_id(room_identifier)
    if not normalized:
        return None
    return f"{prefix}:{normalized}"


class RoomEventListener(Protocol):
    """Receiver of the binder's channel callbacks."""

    def on_presence(self, event: PresenceEvent, raw_state: PresenceState) -> Any:
        ...

    def on_broadcast(self, event: BroadcastEvent, payload: Any) -> Any:
        ...

    def on_status(self, status: SubscribeStatus) -> Any:
        ...


@dataclass
class RoomHandle:
    """The binder's handle on one room; empty when the room id was blank."""
    room_id: str
    topic: Optional[str] = None
    channel: Optional[Channel] = None
    status: Optional[SubscribeStatus] = None
    closed: bool = False

    @property
    def empty(self) -> bool:
        return self.channel is None

    @property
    def joined(self) -> bool:
        return (
            not self.closed
            and self.channel is not None
            and self.status == SubscribeStatus.SUBSCRIBED
        )


@dataclass
class _PresenceRecord:
    name: str
    is_moderator: bool
    vote: Optional[str] = None


class RoomChannelBinder:
    """Per-device owner of the current room's relay channel."""

    def __init__(
        self,
        relay: RelayClient,
        player_id: str,
        listener: RoomEventListener,
        config: Optional[RoomConfig] = None
    ):
        self.relay = relay
        self.player_id = player_id
        self.listener = listener
        self.config = config or RoomConfig()
        self._handle: Optional[RoomHandle] = None
        self._record = _PresenceRecord(name=self.config.default_display_name, is_moderator=False)
        self._vote_unconfirmed = False
        self._tracks: Set[asyncio.Task] = set()
        self._sends: Set[asyncio.Task] = set()

    @property
    def handle(self) -> Optional[RoomHandle]:
        return self._handle

    @property
    def vote_unconfirmed(self) -> bool:
        """True while the local vote has not yet been acknowledged on presence."""
        return self._vote_unconfirmed

    def presence_payload(self) -> Dict[str, Any]:
        """The full record this device publishes on presence."""
        return PresencePayload(
            id=self.player_id,
            name=self._record.name,
            is_moderator=self._record.is_moderator,
            vote=self._record.vote,
        ).to_wire()

    async def open_room(
        self,
        room_identifier: Optional[str],
        display_name: Optional[str] = None,
        is_moderator: bool = False
    ) -> RoomHandle:
        """
        Bind to a room, tearing down any previous channel first.

        A blank identifier yields an empty handle and no channel.
        """
        if self._handle is not None:
            await self.close_room(self._handle)

        self._record = _PresenceRecord(
            name=self._display_name(display_name),
            is_moderator=bool(is_moderator),
        )
        self._vote_unconfirmed = False

        room_id = normalize_room_id(room_identifier)
        topic = topic_for(room_id, self.config.topic_prefix)
        if topic is None:
            logger.info("room_not_joined", reason="blank room identifier")
            self._handle = RoomHandle(room_id="")
            return self._handle

        channel = self.relay.channel(topic, ChannelConfig(
            presence_key=self.player_id,
            broadcast_ack=self.config.broadcast_ack,
            broadcast_self=self.config.broadcast_self,
        ))
        handle = RoomHandle(room_id=room_id, topic=topic, channel=channel)
        self._handle = handle

        self._register_handlers(handle)
        channel.subscribe(lambda status, error=None: self._on_status(handle, status, error))

        logger.info("room_opened", topic=topic, player_id=self.player_id)
        return handle

    async def close_room(self, handle: Optional[RoomHandle] = None) -> None:
        """Unsubscribe and release a room's channel. Safe to call repeatedly."""
        handle = handle or self._handle
        if handle is None:
            return
        if handle is self._handle:
            self._handle = None
        if handle.closed:
            return
        handle.closed = True

        for task in list(self._tracks):
            task.cancel()

        if handle.channel is None:
            return

        # Broadcasts already issued still go out before the channel closes.
        sends = [task for task in self._sends if task is not asyncio.current_task()]
        if sends:
            await asyncio.gather(*sends, return_exceptions=True)

        try:
            await self.relay.remove_channel(handle.channel)
        except Exception as e:
            # Teardown races with the caller going away; nothing to act on.
            logger.warning("room_teardown_failed", topic=handle.topic, error=str(e))
        else:
            logger.info("room_closed", topic=handle.topic)

    def set_identity(self, display_name: Optional[str] = None, is_moderator: Optional[bool] = None) -> None:
        """Update name and/or moderator flag; re-tracks when either changed."""
        changed = False
        if display_name is not None:
            name = self._display_name(display_name)
            if name != self._record.name:
                self._record.name = name
                changed = True
        if is_moderator is not None and bool(is_moderator) != self._record.is_moderator:
            self._record.is_moderator = bool(is_moderator)
            changed = True
        if changed:
            self.retrack()

    def set_vote(self, vote: Optional[str], force: bool = False) -> None:
        """Update the tracked vote; re-tracks when it changed or ``force`` is set."""
        if vote == self._record.vote and not force:
            return
        self._record.vote = vote
        self._vote_unconfirmed = True
        self.retrack()

    def retrack(self) -> Optional[asyncio.Task]:
        """Publish the full presence record if the room is subscribed."""
        handle = self._handle
        if handle is None or not handle.joined:
            return None
        return self._spawn(self._track(handle), self._tracks)

    def broadcast(self, event: BroadcastEvent, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Fire-and-forget a broadcast event on the current room."""
        handle = self._handle
        if handle is None or not handle.joined:
            logger.debug("broadcast_skipped", broadcast_event=event.value, reason="not joined")
            return None
        return self._spawn(self._send(handle, event, payload), self._sends)

    def _display_name(self, display_name: Optional[str]) -> str:
        name = (display_name or "").strip()
        return name or self.config.default_display_name or DEFAULT_PLAYER_NAME

    def _register_handlers(self, handle: RoomHandle) -> None:
        channel = handle.channel

        def presence_handler(event: PresenceEvent):
            def handler(_payload):
                if handle is self._handle:
                    return self.listener.on_presence(event, channel.presence_state())
            return handler

        def broadcast_handler(event: BroadcastEvent):
            def handler(message):
                if handle is self._handle:
                    payload = message.get("payload") if isinstance(message, dict) else None
                    return self.listener.on_broadcast(event, payload)
            return handler

        for event in PresenceEvent:
            channel.on_presence(event, presence_handler(event))
        for event in BroadcastEvent:
            channel.on_broadcast(event.value, broadcast_handler(event))

    def _on_status(self, handle: RoomHandle, status: SubscribeStatus, error: Optional[Exception]) -> None:
        if handle is not self._handle or handle.closed:
            logger.debug("stale_channel_status", topic=handle.topic, status=status.value)
            return

        handle.status = status
        if status == SubscribeStatus.SUBSCRIBED:
            logger.info("room_subscribed", topic=handle.topic)
            self._spawn(self._track(handle), self._tracks)
        else:
            failure = SubscriptionError(handle.topic, status.value, cause=error)
            logger.warning("room_subscription_failed", error=failure.to_dict())
        self.listener.on_status(status)

    async def _track(self, handle: RoomHandle) -> None:
        if not handle.joined:
            return
        payload = self.presence_payload()
        try:
            ack = await handle.channel.track(payload)
        except Exception as e:
            logger.error("presence_track_failed", topic=handle.topic, error=str(e))
            ack = None

        # Settled either way: presence is authoritative again until the next change.
        if payload["vote"] == self._record.vote:
            self._vote_unconfirmed = False

        if ack is None:
            return
        if ack != "ok":
            logger.warning("presence_track_not_acknowledged", topic=handle.topic, ack=ack)
            return
        logger.debug("presence_tracked", topic=handle.topic, vote=payload["vote"])

    async def _send(self, handle: RoomHandle, event: BroadcastEvent, payload: Dict[str, Any]) -> None:
        message = {"type": "broadcast", "event": event.value, "payload": payload}
        try:
            ack = await handle.channel.send(message)
        except Exception as e:
            logger.error("broadcast_failed", topic=handle.topic, broadcast_event=event.value, error=str(e))
            return
        if self.config.broadcast_ack and ack != "ok":
            logger.warning("broadcast_not_acknowledged", topic=handle.topic,
                           broadcast_event=event.value, ack=ack)

    def _spawn(self, coro, tasks: Set[asyncio.Task]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)
        return task


__all__ = [
    'RoomChannelBinder',
    'RoomHandle',
    'RoomEventListener',
    'normalize_room_id',
    'topic_for',
]
