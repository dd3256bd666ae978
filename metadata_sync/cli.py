"""Command-line player: ``relay-player``."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from logging_module import LoggingConfig, setup_logging

from .config import PullTransport, SyncConfig, get_config
from .controller import PlaybackController, create_controller
from .models import PlaybackStatus, Track
from .presentation import build_view, render_text
from .sources import build_source
from .synchronizer import TrackSynchronizer
from .volume_store import VolumeStore

logger = logging.getLogger(__name__)


def render(controller: PlaybackController, width: int = 40) -> str:
    sync = controller.synchronizer
    view = build_view(
        controller.channel.name,
        controller.state,
        sync.current_track,
        tuple(sync.history.entries()),
        width=width,
    )
    return render_text(view)


async def run_player(controller: PlaybackController) -> int:
    """Play a channel until interrupted or until playback stops.

    Returns:
        int: Process exit code.
    """
    stopped = asyncio.Event()

    def on_track(track: Track, archived) -> None:
        print(render(controller), flush=True)

    def on_state(state) -> None:
        if state.status == PlaybackStatus.IDLE:
            stopped.set()

    controller.synchronizer.add_listener(on_track)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopped.set)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        await controller.load_initial_metadata()
        print(render(controller), flush=True)

        if not await controller.play():
            logger.error(f"Could not start playback of {controller.channel.name}")
            return 1

        controller.add_listener(on_state)
        await stopped.wait()
        return 0 if controller.status == PlaybackStatus.PLAYING else 1
    finally:
        await controller.close()


async def play_channel(config: SyncConfig, channel_name: str) -> int:
    return await run_player(create_controller(config, channel_name))


async def show_now_playing(config: SyncConfig, channel_name: str) -> int:
    channel = config.get_channel(channel_name)
    source = build_source(channel, config)
    raw = await source.fetch_once()

    synchronizer = TrackSynchronizer(channel.name, config.history_capacity)
    if raw is None or not synchronizer.apply(raw):
        print("Loading...")
        return 1

    print(synchronizer.current_track.label)
    return 0


def volume_command(config: SyncConfig, channel_name: str, value: Optional[float]) -> int:
    channel = config.get_channel(channel_name)
    store = VolumeStore(config.volume_store_path)

    if value is not None:
        if not 0.0 <= value <= 1.0:
            print(f"Volume must be between 0 and 1, got {value}", file=sys.stderr)
            return 2
        store.save(channel.name, value)

    print(f"{channel.name}: {round(store.load(channel.name) * 100)}%")
    return 0


def list_channels(config: SyncConfig) -> int:
    for channel in config.channels.values():
        transport = channel.transport
        if isinstance(transport, PullTransport):
            detail = f"pull every {transport.interval:g}s from {channel.metadata_url}"
        else:
            detail = f"push from {channel.live_url}"
        print(f"{channel.name}: {detail}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relay-player",
        description="Play a radio relay channel with live now-playing metadata",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Play the chiptune channel
  relay-player play chip

  # Set the vaporwave channel volume to 40%
  relay-player volume vapor 0.4
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    play = subparsers.add_parser("play", help="Play a channel until interrupted")
    play.add_argument("channel", help="Channel name")

    volume = subparsers.add_parser("volume", help="Show or set a channel's stored volume")
    volume.add_argument("channel", help="Channel name")
    volume.add_argument("value", nargs="?", type=float, help="New volume between 0 and 1")

    now = subparsers.add_parser("now", help="Print the track currently on air")
    now.add_argument("channel", help="Channel name")

    subparsers.add_parser("channels", help="List configured channels")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the player CLI."""
    args = build_parser().parse_args(argv)

    try:
        setup_logging(LoggingConfig.from_env())
        config = get_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        if args.command == "channels":
            return list_channels(config)
        if args.command == "volume":
            return volume_command(config, args.channel, args.value)
        if args.command == "now":
            return asyncio.run(show_now_playing(config, args.channel))
        if args.command == "play":
            return asyncio.run(play_channel(config, args.channel))
    except KeyError as e:
        print(e.args[0], file=sys.stderr)
        return 2

    return 2
