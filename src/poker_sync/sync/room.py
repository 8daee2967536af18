"""
Planning poker room: the consumer-facing surface of the sync engine.

``PokerRoom`` wires a :class:`RoomChannelBinder` to a
:class:`RosterReconciler`. Actions update local state immediately and hand
the broadcast to the binder without waiting for the relay; channel callbacks
fold remote facts into the reconciler and notify listeners.
"""

import asyncio
from typing import Any, Callable, List, Optional, Tuple

from ..identity import IdentityProvider
from ..models.room import (
    BroadcastEvent,
    Player,
    RosterSnapshot,
    VoteSummary,
    new_round_payload,
    reveal_payload,
    vote_payload,
)
from ..transport.base import PresenceEvent, PresenceState, RelayClient, SubscribeStatus
from ..utils.config import RoomConfig
from ..utils.errors import MalformedEventError, error_context, handle_errors
from ..utils.logging import get_logger
from .binder import RoomChannelBinder, RoomHandle
from .reconciler import RosterReconciler


logger = get_logger("poker-sync.room")

RoomListener = Callable[[RosterSnapshot], Any]


class PokerRoom:
    """
    One device's view of a planning poker room.

    Provides:
    - Roster, selected vote and reveal flag
    - Optimistic vote / reveal / new round actions
    - Change listeners fed with immutable snapshots
    """

    def __init__(
        self,
        relay: RelayClient,
        identity: IdentityProvider,
        config: Optional[RoomConfig] = None
    ):
        self.config = config or RoomConfig()
        with error_context("room", "resolve_identity", provider=type(identity).__name__):
            self.player_id = identity.get_or_create()
        self.reconciler = RosterReconciler(
            self.player_id,
            vote_values=self.config.vote_values,
            default_name=self.config.default_display_name,
        )
        self.binder = RoomChannelBinder(relay, self.player_id, listener=self, config=self.config)
        self._listeners: List[RoomListener] = []
        self._listener_tasks = set()

    # Lifecycle

    async def join(
        self,
        room_code: Optional[str],
        display_name: Optional[str] = None,
        is_moderator: bool = False
    ) -> RoomHandle:
        """Enter a room, leaving the current one first."""
        self.reconciler.reset()
        handle = await self.binder.open_room(room_code, display_name, is_moderator)
        self._notify()
        return handle

    async def leave(self) -> None:
        await self.binder.close_room()
        self.reconciler.reset()
        self._notify()

    async def __aenter__(self) -> 'PokerRoom':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.leave()

    # Consumer surface

    @property
    def handle(self) -> Optional[RoomHandle]:
        return self.binder.handle

    @property
    def joined(self) -> bool:
        handle = self.binder.handle
        return handle is not None and handle.joined

    @property
    def players(self) -> Tuple[Player, ...]:
        return self.reconciler.players

    @property
    def selected_vote(self) -> Optional[str]:
        return self.reconciler.selected_vote

    @property
    def votes_revealed(self) -> bool:
        return self.reconciler.votes_revealed

    def snapshot(self) -> RosterSnapshot:
        return self.reconciler.snapshot()

    def summary(self) -> VoteSummary:
        return self.snapshot().summary(self.config.vote_values)

    def subscribe(self, listener: RoomListener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Actions

    def cast_vote(self, value: str) -> Optional[str]:
        """Select ``value``, or clear it when already selected."""
        selected = self.reconciler.cast_vote(value)
        self.binder.set_vote(selected)
        self.binder.broadcast(BroadcastEvent.VOTE, vote_payload(self.player_id, selected))
        logger.info("vote_cast", player_id=self.player_id, vote=selected)
        self._notify()
        return selected

    def toggle_reveal(self) -> bool:
        revealed = self.reconciler.toggle_reveal()
        self.binder.broadcast(BroadcastEvent.REVEAL, reveal_payload(revealed))
        logger.info("reveal_toggled", revealed=revealed)
        self._notify()
        return revealed

    def trigger_new_round(self) -> None:
        self.reconciler.trigger_new_round()
        self._clear_tracked_vote()
        self.binder.broadcast(BroadcastEvent.NEW_ROUND, new_round_payload())
        logger.info("new_round_started")
        self._notify()

    def update_identity(self, display_name: Optional[str] = None, is_moderator: Optional[bool] = None) -> None:
        """Change name or moderator flag; peers see it on the next presence sync."""
        self.binder.set_identity(display_name, is_moderator)

    # Channel callbacks

    @handle_errors(Exception, reraise=False)
    def on_presence(self, event: PresenceEvent, raw_state: PresenceState) -> None:
        try:
            self.reconciler.on_presence_sync(
                raw_state,
                adopt_own_vote=not self.binder.vote_unconfirmed,
            )
        except MalformedEventError as e:
            logger.warning("presence_ignored", presence_event=event.value, reason=e.reason)
            return
        # A recovered vote becomes part of this device's own record.
        self.binder.set_vote(self.reconciler.selected_vote)
        self._notify()

    @handle_errors(Exception, reraise=False)
    def on_broadcast(self, event: BroadcastEvent, payload: Any) -> None:
        try:
            if event == BroadcastEvent.VOTE:
                self.reconciler.on_vote_broadcast(payload)
                self.binder.set_vote(self.reconciler.selected_vote)
            elif event == BroadcastEvent.REVEAL:
                self.reconciler.on_reveal_broadcast(payload)
            elif event == BroadcastEvent.NEW_ROUND:
                self.reconciler.on_new_round_broadcast(payload)
                self._clear_tracked_vote()
        except MalformedEventError as e:
            logger.warning("broadcast_ignored", broadcast_event=event.value, reason=e.reason)
            return
        self._notify()

    def on_status(self, status: SubscribeStatus) -> None:
        if status != SubscribeStatus.SUBSCRIBED:
            self._notify()

    def _clear_tracked_vote(self) -> None:
        self.binder.set_vote(None, force=self.config.retrack_on_new_round)

    def _notify(self) -> None:
        snapshot = self.reconciler.snapshot()
        for listener in list(self._listeners):
            try:
                result = listener(snapshot)
                if asyncio.iscoroutine(result):
                    task = asyncio.get_running_loop().create_task(result)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self._listener_tasks.discard)
            except Exception as e:
                logger.error(
                    "room_listener_failed",
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e)
                )


__all__ = [
    'PokerRoom',
    'RoomListener',
]
