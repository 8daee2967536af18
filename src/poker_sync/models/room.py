"""
Room models for poker-sync.

This module defines the player roster, the broadcast wire contract and the
round summary shared by every device in a room.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from enum import Enum


DEFAULT_PLAYER_NAME = "Anonymous"


class BroadcastEvent(Enum):
    """Broadcast event names on the room channel."""
    VOTE = "vote"
    REVEAL = "reveal"
    NEW_ROUND = "new_round"


@dataclass(frozen=True)
class Player:
    """One participant as observed by this device."""
    id: str
    name: str = DEFAULT_PLAYER_NAME
    is_moderator: bool = False
    vote: Optional[str] = None

    @property
    def has_voted(self) -> bool:
        return self.vote is not None

    def with_vote(self, vote: Optional[str]) -> 'Player':
        """Return a copy carrying ``vote``."""
        return replace(self, vote=vote)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "isModerator": self.is_moderator,
            "vote": self.vote,
        }

    @classmethod
    def from_presence(
        cls,
        entry: Mapping[str, Any],
        fallback_id: str,
        default_name: str = DEFAULT_PLAYER_NAME
    ) -> 'Player':
        """
        Create from a tracked presence payload.

        Missing or mistyped fields fall back to defaults; the presence key
        stands in for a missing ``id``.
        """
        player_id = entry.get("id")
        if not isinstance(player_id, str) or not player_id:
            player_id = fallback_id

        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            name = default_name

        vote = entry.get("vote")
        if isinstance(vote, (int, float)) and not isinstance(vote, bool):
            # Numeric cards tracked by other clients keep their face value.
            vote = f"{vote:g}"
        if not isinstance(vote, str) or not vote:
            vote = None

        return cls(
            id=player_id,
            name=name,
            is_moderator=bool(entry.get("isModerator", False)),
            vote=vote,
        )


@dataclass(frozen=True)
class PresencePayload:
    """The full record a device tracks on the presence feed."""
    id: str
    name: str
    is_moderator: bool
    vote: Optional[str]
    online_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "isModerator": self.is_moderator,
            "vote": self.vote,
            "online_at": self.online_at.isoformat(),
        }


def vote_payload(player_id: str, value: Optional[str]) -> Dict[str, Any]:
    return {"playerId": player_id, "value": value}


def reveal_payload(revealed: bool) -> Dict[str, Any]:
    return {"revealed": revealed}


def new_round_payload() -> Dict[str, Any]:
    return {}


@dataclass(frozen=True)
class VoteTally:
    """Count of one vote token among cast votes."""
    value: str
    count: int
    percentage: int


@dataclass(frozen=True)
class VoteSummary:
    """Distribution of cast votes, in deck order."""
    revealed: bool
    voted_count: int
    player_count: int
    tallies: Tuple[VoteTally, ...] = ()

    @property
    def consensus(self) -> Optional[str]:
        """The single token everyone who voted picked, if any."""
        if self.revealed and len(self.tallies) == 1:
            return self.tallies[0].value
        return None


@dataclass(frozen=True)
class RosterSnapshot:
    """Immutable view of the room handed to consumers."""
    players: Tuple[Player, ...] = ()
    votes_revealed: bool = False
    selected_vote: Optional[str] = None

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def voted_count(self) -> int:
        return sum(1 for p in self.players if p.has_voted)

    @property
    def voted_ratio(self) -> str:
        return f"{self.voted_count}/{self.player_count}"

    def get(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def summary(self, deck: Sequence[str]) -> VoteSummary:
        """
        Summarize cast votes against ``deck``.

        The distribution stays empty while votes are hidden. Percentages are
        relative to the number of players who voted and rounded to integers.
        """
        voted = self.voted_count
        tallies: List[VoteTally] = []

        if self.votes_revealed and voted:
            for value in deck:
                count = sum(1 for p in self.players if p.vote == value)
                if count:
                    tallies.append(VoteTally(
                        value=value,
                        count=count,
                        percentage=round(count / voted * 100),
                    ))

        return VoteSummary(
            revealed=self.votes_revealed,
            voted_count=voted,
            player_count=self.player_count,
            tallies=tuple(tallies),
        )


__all__ = [
    'DEFAULT_PLAYER_NAME',
    'BroadcastEvent',
    'Player',
    'PresencePayload',
    'RosterSnapshot',
    'VoteSummary',
    'VoteTally',
    'vote_payload',
    'reveal_payload',
    'new_round_payload',
]
