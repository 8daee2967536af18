"""
poker-sync - room synchronization engine for planning poker sessions.

This package keeps a shared view of a planning poker room across devices
using only a relay's presence and broadcast feeds:
- Presence-driven roster reconciliation
- Optimistic votes, reveal and new round actions
- Pluggable relay transports with an in-process implementation
"""

__version__ = "0.1.0"

from .identity import FileIdentityProvider, StaticIdentityProvider
from .models.room import Player, RosterSnapshot, VoteSummary
from .sync.room import PokerRoom
from .transport.memory import InMemoryRelay

__all__ = [
    'PokerRoom',
    'Player',
    'RosterSnapshot',
    'VoteSummary',
    'InMemoryRelay',
    'FileIdentityProvider',
    'StaticIdentityProvider',
]
