"""
Room synchronization components for poker-sync.

This package turns a relay's presence and broadcast feeds into one roster,
vote and reveal state per device.
"""

from .binder import RoomChannelBinder, RoomHandle, normalize_room_id, topic_for
from .reconciler import RosterReconciler, build_roster
from .room import PokerRoom

__all__ = [
    'RoomChannelBinder',
    'RoomHandle',
    'normalize_room_id',
    'topic_for',
    'RosterReconciler',
    'build_roster',
    'PokerRoom',
]
