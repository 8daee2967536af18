"""
Room test fixtures.
"""

from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional


class RoomFixtures:
    """Fixtures for roster and broadcast testing."""

    @staticmethod
    def create_presence_entry(
        player_id: str,
        name: str = "Player",
        is_moderator: bool = False,
        vote: Optional[str] = None,
        offset_seconds: int = 0
    ) -> Dict[str, Any]:
        """Create one tracked presence payload."""
        online_at = datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=offset_seconds)
        return {
            "id": player_id,
            "name": name,
            "isModerator": is_moderator,
            "vote": vote,
            "online_at": online_at.isoformat(),
        }

    @staticmethod
    def create_presence_state(*players: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
        """One key per payload, keyed by the payload's id."""
        return {p["id"]: [p] for p in players}

    @staticmethod
    def create_reconnect_state(player_id: str, votes: List[Optional[str]]) -> Dict[str, List[Dict[str, Any]]]:
        """One key holding several entries, oldest first, as left by reconnects."""
        return {
            player_id: [
                RoomFixtures.create_presence_entry(player_id, name=f"Tab {i}", vote=vote, offset_seconds=i)
                for i, vote in enumerate(votes)
            ]
        }

    @staticmethod
    def create_abc_room() -> Dict[str, List[Dict[str, Any]]]:
        """Players A (moderator), B and C; A voted 5, C voted 8."""
        return RoomFixtures.create_presence_state(
            RoomFixtures.create_presence_entry("A", name="Alice", is_moderator=True, vote="5"),
            RoomFixtures.create_presence_entry("B", name="Bob"),
            RoomFixtures.create_presence_entry("C", name="Carol", vote="8"),
        )

    @staticmethod
    def create_malformed_payloads() -> List[Any]:
        """Broadcast payloads that carry nothing usable."""
        return [
            "not-an-object",
            42,
            ["playerId", "A"],
            {"value": "5"},
            {"playerId": "", "value": "5"},
            {"playerId": 7, "value": "5"},
            {"playerId": "C", "value": 13},
            {"playerId": "C", "value": ["8"]},
        ]
