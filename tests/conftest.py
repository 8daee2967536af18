"""
Pytest configuration and shared fixtures for poker-sync tests.
"""

import pytest
import pytest_asyncio
import logging
import os
import uuid
from pathlib import Path
from typing import AsyncGenerator, Callable, Optional

import structlog

from poker_sync.identity import StaticIdentityProvider
from poker_sync.sync.room import PokerRoom
from poker_sync.transport.memory import InMemoryRelay
from poker_sync.utils import config as config_module
from poker_sync.utils.config import RoomConfig


@pytest_asyncio.fixture
async def relay() -> AsyncGenerator[InMemoryRelay, None]:
    """In-process relay; every channel still open is removed afterwards."""
    relay = InMemoryRelay()
    yield relay
    relay.fail_teardown = False
    for channel in relay.get_channels():
        await relay.remove_channel(channel)


@pytest.fixture
def room_config() -> RoomConfig:
    """Room configuration with defaults."""
    return RoomConfig()


@pytest.fixture
def make_room(relay: InMemoryRelay, room_config: RoomConfig) -> Callable[..., PokerRoom]:
    """Factory for devices sharing the test relay."""
    def factory(player_id: Optional[str] = None, config: Optional[RoomConfig] = None) -> PokerRoom:
        identity = StaticIdentityProvider(player_id or f"player-{uuid.uuid4().hex[:8]}")
        return PokerRoom(relay, identity, config or room_config)
    return factory


@pytest.fixture
def reset_logging():
    """Undo global logging configuration done by a test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    """Point home and cwd (and so default config/log paths) at tmp_path."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("POKER_SYNC_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr(config_module, "_config_loader", None)
    return tmp_path
