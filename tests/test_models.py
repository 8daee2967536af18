"""
Tests for room models.
"""

from datetime import datetime, timezone

import pytest

from poker_sync.models.room import (
    Player,
    PresencePayload,
    RosterSnapshot,
    new_round_payload,
    reveal_payload,
    vote_payload,
)
from poker_sync.utils.config import DEFAULT_VOTE_VALUES


def snapshot_with(votes, revealed=True):
    players = tuple(Player(id=f"p{i}", name=f"P{i}", vote=vote) for i, vote in enumerate(votes))
    return RosterSnapshot(players=players, votes_revealed=revealed)


class TestPlayer:
    """Test the Player model."""

    def test_from_presence(self):
        """Test a full payload maps onto a player."""
        player = Player.from_presence(
            {"id": "A", "name": "Alice", "isModerator": True, "vote": "5", "online_at": "x"},
            fallback_id="key",
        )

        assert player == Player(id="A", name="Alice", is_moderator=True, vote="5")
        assert player.has_voted

    def test_custom_default_name(self):
        """Test the placeholder name is configurable."""
        assert Player.from_presence({}, fallback_id="k", default_name="Guest").name == "Guest"

    def test_with_vote_is_a_copy(self):
        """Test players are immutable and with_vote copies."""
        player = Player(id="A")

        voted = player.with_vote("3")

        assert player.vote is None
        assert voted.vote == "3"
        with pytest.raises(AttributeError):
            player.vote = "1"

    def test_to_dict(self):
        """Test the dict form uses wire field names."""
        assert Player(id="A", name="Alice").to_dict() == {
            "id": "A", "name": "Alice", "isModerator": False, "vote": None,
        }


class TestWireContract:
    """Test payload builders."""

    def test_presence_payload(self):
        """Test the presence payload serializes its timestamp as ISO-8601."""
        moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        wire = PresencePayload(id="A", name="Alice", is_moderator=False, vote=None,
                               online_at=moment).to_wire()

        assert wire == {
            "id": "A",
            "name": "Alice",
            "isModerator": False,
            "vote": None,
            "online_at": "2024-05-01T12:00:00+00:00",
        }

    def test_broadcast_payloads(self):
        """Test broadcast payload shapes."""
        assert vote_payload("A", "8") == {"playerId": "A", "value": "8"}
        assert vote_payload("A", None) == {"playerId": "A", "value": None}
        assert reveal_payload(True) == {"revealed": True}
        assert new_round_payload() == {}


class TestSnapshot:
    """Test roster snapshots and round summaries."""

    def test_counts(self):
        """Test voted counts ignore players without a vote."""
        snapshot = snapshot_with(["5", None, "8"], revealed=False)

        assert snapshot.player_count == 3
        assert snapshot.voted_count == 2
        assert snapshot.voted_ratio == "2/3"
        assert snapshot.get("p1").name == "P1"
        assert snapshot.get("missing") is None

    def test_hidden_votes_have_no_tallies(self):
        """Test the distribution stays empty until reveal."""
        summary = snapshot_with(["5", "8"], revealed=False).summary(DEFAULT_VOTE_VALUES)

        assert summary.tallies == ()
        assert summary.voted_count == 2
        assert summary.consensus is None

    def test_tallies_in_deck_order(self):
        """Test tallies follow deck order with rounded percentages."""
        summary = snapshot_with(["13", "2", "13", None]).summary(DEFAULT_VOTE_VALUES)

        assert [(t.value, t.count, t.percentage) for t in summary.tallies] == [
            ("2", 1, 33),
            ("13", 2, 67),
        ]
        assert summary.player_count == 4

    def test_consensus(self):
        """Test a single distinct vote is reported as consensus."""
        summary = snapshot_with(["8", "8", None]).summary(DEFAULT_VOTE_VALUES)

        assert summary.consensus == "8"
        assert summary.tallies[0].percentage == 100

    def test_no_votes(self):
        """Test a revealed round without votes has no tallies."""
        summary = snapshot_with([None, None]).summary(DEFAULT_VOTE_VALUES)

        assert summary.tallies == ()
        assert summary.consensus is None

    def test_special_cards(self):
        """Test non-numeric cards are tallied like any other."""
        summary = snapshot_with(["?", "☕", "?"]).summary(DEFAULT_VOTE_VALUES)

        assert [(t.value, t.count) for t in summary.tallies] == [("?", 2), ("☕", 1)]
