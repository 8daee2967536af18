#!/usr/bin/env python3
"""
poker-sync command line - entry point for python -m poker_sync
"""

import argparse
import asyncio
import random
import sys
import uuid
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .identity import FileIdentityProvider, StaticIdentityProvider
from .models.room import RosterSnapshot
from .sync.binder import topic_for
from .sync.room import PokerRoom
from .transport.memory import InMemoryRelay
from .utils.config import PokerSyncConfig, load_config
from .utils.errors import PokerSyncError, error_context
from .utils.logging import setup_logging


console = Console()


def configure_logging(config: PokerSyncConfig, log_level: Optional[str] = None) -> None:
    """Apply the logging section of the configuration; ``log_level`` overrides it."""
    settings = config.logging
    level = log_level or ("DEBUG" if config.debug else settings.level)
    setup_logging(
        app_name=config.app_name,
        log_level=level,
        log_dir=settings.directory,
        enable_json=settings.format == "json",
        enable_console=settings.console,
        enable_sentry=settings.enable_sentry,
        sentry_dsn=settings.sentry_dsn,
        max_size=settings.max_size,
        backup_count=settings.backup_count,
    )


def render_roster(title: str, snapshot: RosterSnapshot) -> Table:
    table = Table(title=title)
    table.add_column("Player")
    table.add_column("Moderator", justify="center")
    table.add_column("Vote", justify="center")

    for player in snapshot.players:
        if player.vote is None:
            vote = "-"
        elif snapshot.votes_revealed:
            vote = player.vote
        else:
            vote = "✓"
        table.add_row(player.name, "yes" if player.is_moderator else "", vote)

    table.caption = f"Voted {snapshot.voted_ratio} · revealed: {snapshot.votes_revealed}"
    return table


async def simulate(config: PokerSyncConfig, room_code: str, player_count: int, seed: Optional[int]) -> int:
    """Run a full round between in-process devices and print each stage."""
    deck = list(config.room.vote_values)
    rng = random.Random(seed)

    # This device moderates under its persisted id; the others are simulated peers.
    identities = [FileIdentityProvider(config.identity.path)]
    identities += [StaticIdentityProvider(str(uuid.uuid4())) for _ in range(player_count - 1)]

    relay = InMemoryRelay()
    rooms = [PokerRoom(relay, identity, config.room) for identity in identities]

    for index, room in enumerate(rooms):
        await room.join(room_code, display_name=f"Player {index + 1}", is_moderator=index == 0)
    await relay.flush()

    moderator = rooms[0]
    if not moderator.joined:
        console.print(f"[red]Could not join room {escape(repr(room_code))}[/red]")
        return 1
    console.print(render_roster(f"{moderator.handle.topic} joined", moderator.snapshot()))

    # Everyone but the last player votes.
    for room in rooms[:-1]:
        room.cast_vote(rng.choice(deck))
    await relay.flush()
    console.print(render_roster("votes cast", moderator.snapshot()))

    moderator.toggle_reveal()
    await relay.flush()
    observer = rooms[-1]
    console.print(render_roster("revealed (as seen by last player)", observer.snapshot()))
    for tally in observer.summary().tallies:
        console.print(f"  {tally.value}: {tally.count} vote(s), {tally.percentage}%")

    moderator.trigger_new_round()
    await relay.flush()
    console.print(render_roster("new round", observer.snapshot()))

    for room in rooms:
        await room.leave()
    return 0


async def run(args: argparse.Namespace) -> int:
    config = await load_config(config_paths=args.config)
    configure_logging(config, args.log_level)

    if args.command == "identity":
        with error_context("cli", "identity", path=str(config.identity.path)):
            player_id = FileIdentityProvider(config.identity.path).get_or_create()
        console.print(player_id)
        return 0

    return await simulate(config, args.room, args.players, args.seed)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for python -m poker_sync"""
    parser = argparse.ArgumentParser(
        prog="poker-sync",
        description="Planning poker room synchronization engine"
    )
    parser.add_argument("--config", action="append", type=Path, default=[],
                        help="Extra configuration file (repeatable)")
    parser.add_argument("--log-level", default=None,
                        help="Logging level (defaults to logging.level from configuration)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    sim = subparsers.add_parser("simulate", help="Simulate a round over an in-process relay")
    sim.add_argument("--room", default="abc123", help="Room code")
    sim.add_argument("--players", type=int, default=3, help="Number of devices")
    sim.add_argument("--seed", type=int, default=None, help="Random seed for votes")

    norm = subparsers.add_parser("normalize", help="Print the relay topic for a room code")
    norm.add_argument("room", help="Room code")

    subparsers.add_parser("identity", help="Print this device's persisted player id")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "normalize":
        topic = topic_for(args.room)
        if topic is None:
            console.print("[red]Room code is blank[/red]")
            return 1
        console.print(topic)
        return 0

    if args.command == "simulate" and args.players < 1:
        parser.error("--players must be at least 1")

    try:
        return asyncio.run(run(args))
    except PokerSyncError as e:
        console.print(f"[red]{e.code}: {escape(e.message)}[/red]")
        return 1
    except KeyboardInterrupt:
        print("\npoker-sync stopped by user", file=sys.stderr)
        return 0


if __name__ == "__main__":
    sys.exit(main())
