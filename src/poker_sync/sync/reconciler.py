"""
Roster and vote reconciliation.

Turns raw presence state into the player roster and folds broadcast events
(vote, reveal, new round) into it. Presence always rebuilds the roster from
scratch; broadcasts patch the current projection until the next rebuild.
"""

from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..models.room import DEFAULT_PLAYER_NAME, Player, RosterSnapshot
from ..utils.config import DEFAULT_VOTE_VALUES
from ..utils.errors import MalformedEventError, ValidationError
from ..utils.logging import get_logger


logger = get_logger("poker-sync.reconciler")


def _require_mapping(event: str, payload: Any) -> Mapping[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise MalformedEventError(event, payload, f"expected an object, got {type(payload).__name__}")
    return payload


def build_roster(
    raw_state: Mapping[str, Sequence[Any]],
    default_name: str = DEFAULT_PLAYER_NAME
) -> Tuple[Player, ...]:
    """
    One player per presence key, taken from that key's most recent entry.

    Earlier entries under the same key are stale duplicates left behind by
    reconnects. Keys whose latest entry is unusable are skipped.
    """
    if not isinstance(raw_state, Mapping):
        raise MalformedEventError("presence", raw_state, "presence state must be a mapping")

    players: List[Player] = []
    for key, entries in raw_state.items():
        if not isinstance(entries, Sequence) or isinstance(entries, (str, bytes)) or not entries:
            continue
        latest = entries[-1]
        if not isinstance(latest, Mapping):
            logger.warning("presence_entry_skipped", key=key, reason="not an object")
            continue
        players.append(Player.from_presence(latest, fallback_id=str(key), default_name=default_name))

    return tuple(players)


class RosterReconciler:
    """
    Owns the roster, the reveal flag and this device's selected vote.

    All methods are synchronous and run on the event loop that delivers relay
    callbacks, so no locking is involved.
    """

    def __init__(
        self,
        player_id: str,
        vote_values: Optional[Sequence[str]] = None,
        default_name: str = DEFAULT_PLAYER_NAME
    ):
        self.player_id = player_id
        self.vote_values: Tuple[str, ...] = tuple(vote_values or DEFAULT_VOTE_VALUES)
        self.default_name = default_name
        self.players: Tuple[Player, ...] = ()
        self.votes_revealed = False
        self.selected_vote: Optional[str] = None

    def snapshot(self) -> RosterSnapshot:
        return RosterSnapshot(
            players=self.players,
            votes_revealed=self.votes_revealed,
            selected_vote=self.selected_vote,
        )

    def reset(self) -> None:
        """Forget everything observed in the current room."""
        self.players = ()
        self.votes_revealed = False
        self.selected_vote = None

    # Remote input

    def on_presence_sync(
        self,
        raw_state: Mapping[str, Sequence[Any]],
        adopt_own_vote: bool = True
    ) -> RosterSnapshot:
        """
        Rebuild the roster and recover this device's vote from it.

        With ``adopt_own_vote`` off (a local vote not yet confirmed on
        presence) the local selection wins and is laid over this device's
        roster entry instead.
        """
        self.players = build_roster(raw_state, self.default_name)

        me = self._find(self.player_id)
        if me is not None and me.vote != self.selected_vote:
            if adopt_own_vote:
                logger.debug("selected_vote_recovered", player_id=self.player_id, vote=me.vote)
                self.selected_vote = me.vote
            else:
                self._set_vote(self.player_id, self.selected_vote)

        logger.debug("roster_rebuilt", players=len(self.players))
        return self.snapshot()

    def on_vote_broadcast(self, payload: Any) -> RosterSnapshot:
        payload = _require_mapping("vote", payload)
        player_id = payload.get("playerId")
        if not isinstance(player_id, str) or not player_id:
            logger.warning("vote_without_player", payload=dict(payload))
            return self.snapshot()

        value = payload.get("value")
        if value is not None and not isinstance(value, str):
            logger.warning("vote_value_ignored", player_id=player_id,
                           value_type=type(value).__name__)
            return self.snapshot()
        value = value or None

        self._set_vote(player_id, value)
        if player_id == self.player_id:
            self.selected_vote = value
        return self.snapshot()

    def on_reveal_broadcast(self, payload: Any) -> RosterSnapshot:
        payload = _require_mapping("reveal", payload)
        if "revealed" not in payload:
            logger.warning("reveal_without_flag")
            return self.snapshot()
        self.votes_revealed = bool(payload["revealed"])
        return self.snapshot()

    def on_new_round_broadcast(self, payload: Any = None) -> RosterSnapshot:
        # The event carries no fields; its payload is never consulted.
        if payload is not None and not isinstance(payload, Mapping):
            logger.debug("new_round_payload_ignored", payload_type=type(payload).__name__)
        self._clear_round()
        return self.snapshot()

    # Local actions

    def cast_vote(self, value: str) -> Optional[str]:
        """
        Toggle this device's vote for ``value`` and return the new selection.

        Selecting the current value again clears it.
        """
        if value not in self.vote_values:
            raise ValidationError("value", value, f"must be one of {', '.join(self.vote_values)}")

        selected = None if self.selected_vote == value else value
        self.selected_vote = selected
        self._set_vote(self.player_id, selected)
        return selected

    def toggle_reveal(self) -> bool:
        self.votes_revealed = not self.votes_revealed
        return self.votes_revealed

    def trigger_new_round(self) -> None:
        self._clear_round()

    def _clear_round(self) -> None:
        self.votes_revealed = False
        self.selected_vote = None
        self.players = tuple(p.with_vote(None) for p in self.players)

    def _find(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def _set_vote(self, player_id: str, value: Optional[str]) -> None:
        self.players = tuple(
            p.with_vote(value) if p.id == player_id else p
            for p in self.players
        )


__all__ = [
    'RosterReconciler',
    'build_roster',
]
