"""
Test fixtures for poker-sync.

Provides reusable presence states and relay payloads.
"""

from .room_fixtures import RoomFixtures

__all__ = [
    "RoomFixtures",
]
