"""Base relay transport abstractions for room channels"""

import enum
import inspect
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..utils.logging import get_logger
from ..utils.errors import TransportError

logger = get_logger("poker-sync.relay")


class SubscribeStatus(enum.Enum):
    """Status reported to a channel's subscribe callback"""
    SUBSCRIBED = "SUBSCRIBED"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"
    CHANNEL_ERROR = "CHANNEL_ERROR"


class ChannelState(enum.Enum):
    """Lifecycle state of a channel"""
    CLOSED = "closed"
    JOINING = "joining"
    JOINED = "joined"
    LEAVING = "leaving"
    ERRORED = "errored"


class PresenceEvent(enum.Enum):
    """Presence notifications delivered by the relay"""
    SYNC = "sync"
    JOIN = "join"
    LEAVE = "leave"


@dataclass(frozen=True)
class ChannelConfig:
    """Per-channel relay options"""
    presence_key: Optional[str] = None
    broadcast_ack: bool = True
    broadcast_self: bool = False


PresenceState = Dict[str, List[Dict[str, Any]]]
StatusCallback = Callable[[SubscribeStatus, Optional[Exception]], Any]


class Channel(ABC):
    """Abstract base class for one subscription to a relay topic"""

    def __init__(self, topic: str, config: Optional[ChannelConfig] = None):
        self.topic = topic
        self.config = config or ChannelConfig()
        self.presence_key = self.config.presence_key or uuid.uuid4().hex
        self.state = ChannelState.CLOSED
        self._status_callback: Optional[StatusCallback] = None
        self._presence_handlers: Dict[PresenceEvent, List[Callable]] = {}
        self._broadcast_handlers: Dict[str, List[Callable]] = {}
        self._stats = {
            "messages_sent": 0,
            "messages_received": 0,
            "handler_errors": 0,
        }

    def on_presence(self, event: PresenceEvent, handler: Callable) -> 'Channel':
        """Register a presence handler; returns the channel for chaining"""
        self._presence_handlers.setdefault(event, []).append(handler)
        return self

    def on_broadcast(self, event: str, handler: Callable) -> 'Channel':
        """Register a broadcast handler; returns the channel for chaining"""
        self._broadcast_handlers.setdefault(event, []).append(handler)
        return self

    @abstractmethod
    def subscribe(self, callback: Optional[StatusCallback] = None) -> 'Channel':
        """Join the topic; ``callback`` observes the resulting status"""
        pass

    @abstractmethod
    async def track(self, payload: Dict[str, Any]) -> str:
        """Replace this channel's presence payload"""
        pass

    @abstractmethod
    async def untrack(self) -> str:
        """Withdraw this channel's presence payload"""
        pass

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> str:
        """Send a ``{"type": "broadcast", "event", "payload"}`` message"""
        pass

    @abstractmethod
    def presence_state(self) -> PresenceState:
        """Current presence map: key -> payloads, oldest first"""
        pass

    @abstractmethod
    async def unsubscribe(self) -> str:
        """Leave the topic"""
        pass

    @property
    def joined(self) -> bool:
        return self.state == ChannelState.JOINED

    async def _invoke(self, handler: Callable, *args) -> None:
        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._stats["handler_errors"] += 1
            logger.error(
                "channel_handler_failed",
                topic=self.topic,
                handler=getattr(handler, "__name__", repr(handler)),
                error=str(e),
                exc_info=True
            )

    async def _dispatch_status(self, status: SubscribeStatus, error: Optional[Exception] = None) -> None:
        """Handle a subscription status change"""
        logger.debug("channel_status", topic=self.topic, status=status.value)
        if self._status_callback is not None:
            await self._invoke(self._status_callback, status, error)

    async def _dispatch_presence(self, event: PresenceEvent, payload: Dict[str, Any]) -> None:
        """Handle an incoming presence notification"""
        self._stats["messages_received"] += 1
        for handler in list(self._presence_handlers.get(event, [])):
            await self._invoke(handler, payload)

    async def _dispatch_broadcast(self, message: Dict[str, Any]) -> None:
        """Handle an incoming broadcast message"""
        self._stats["messages_received"] += 1
        event = message.get("event")
        handlers = self._broadcast_handlers.get(event)
        if not handlers:
            logger.debug("no_broadcast_handler", topic=self.topic, broadcast_event=event)
            return
        for handler in list(handlers):
            await self._invoke(handler, message)

    @staticmethod
    def _validate_broadcast(message: Dict[str, Any]) -> None:
        if message.get("type") != "broadcast":
            raise TransportError(f"Unsupported message type: {message.get('type')!r}")
        if not isinstance(message.get("event"), str):
            raise TransportError("Broadcast message requires an event name")

    def get_stats(self) -> Dict[str, Any]:
        """Get channel statistics"""
        return {
            **self._stats,
            "topic": self.topic,
            "state": self.state.value,
            "presence_key": self.presence_key,
        }


class RelayClient(ABC):
    """Abstract base class for a relay connection hosting room channels"""

    @abstractmethod
    def channel(self, topic: str, config: Optional[ChannelConfig] = None) -> Channel:
        """Construct (but do not subscribe) a channel for ``topic``"""
        pass

    @abstractmethod
    async def remove_channel(self, channel: Channel) -> None:
        """Unsubscribe and release ``channel``"""
        pass

    @abstractmethod
    def get_channels(self) -> List[Channel]:
        """Channels currently held by this client"""
        pass


__all__ = [
    'SubscribeStatus',
    'ChannelState',
    'PresenceEvent',
    'ChannelConfig',
    'PresenceState',
    'Channel',
    'RelayClient',
]
