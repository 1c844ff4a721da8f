#!/usr/bin/env python3
"""
RuneSync - Command Line

Offline tooling around the sync agent. The agent itself runs embedded in the
game client; these commands help check configuration and exercise the
orchestration without one.

Usage:
    python -m runesync settings                 # Print effective settings
    python -m runesync send snapshot.json       # POST a snapshot file
    python -m runesync replay recording.json    # Replay recorded host events
    python -m runesync replay rec.json --dry-run --debug
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from runesync.config import Settings
from runesync.errors import TransportError
from runesync.models import Snapshot

logger = logging.getLogger("runesync")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> None:
    """
    Set up logging for the command line tools.

    Args:
        level: Logging level.
        log_file: Optional path to log file.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def _load_settings(env_file: Optional[Path]) -> Settings:
    if env_file is not None:
        return Settings(_env_file=env_file)
    return Settings()


def cmd_settings(args, settings: Settings) -> int:
    print(json.dumps(settings.model_dump(mode="json"), indent=2))
    return 0


def cmd_send(args, settings: Settings) -> int:
    from runesync.transport import HttpTransport

    try:
        with open(args.snapshot, "r", encoding="utf-8") as f:
            snapshot = Snapshot.model_validate(json.load(f))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Could not read snapshot {args.snapshot}: {e}")
        return 2

    transport = HttpTransport.from_settings(settings)
    try:
        response = transport.post_snapshot(snapshot)
    except TransportError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        transport.close()

    print(f"Synced {snapshot.username}: HTTP {response.status_code}")
    return 0


def cmd_replay(args, settings: Settings) -> int:
    from runesync.agent import SyncAgent
    from runesync.replay import RecordingTransport, load_recording, replay

    try:
        host, events = load_recording(args.recording)
    except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
        logger.error(f"Could not load recording {args.recording}: {e}")
        return 2

    transport = RecordingTransport() if args.dry_run else None
    agent = SyncAgent(
        host,
        settings=settings,
        transport=transport,
        wall_clock_timer=False,
        summary_scripts=host.summary_scripts,
    )

    with agent:
        status = replay(agent, host, events)

    if isinstance(transport, RecordingTransport):
        for snapshot in transport.sent:
            print(json.dumps(snapshot.to_dict(), indent=2))
    print(json.dumps(status, indent=2))
    for message in host.messages:
        print(f"[chat] {message}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="RuneSync agent tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Settings .env file (default: .env in the working directory)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, default=None, help="Also log to this file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("settings", help="Print effective settings")

    send = subparsers.add_parser("send", help="POST a snapshot JSON file to the endpoint")
    send.add_argument("snapshot", type=Path)

    replay_parser = subparsers.add_parser("replay", help="Replay a recorded host session")
    replay_parser.add_argument("recording", type=Path)
    replay_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print snapshots instead of sending them",
    )

    args = parser.parse_args(argv)

    try:
        settings = _load_settings(args.env_file)
    except ValidationError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return 2

    level = logging.DEBUG if args.debug else getattr(logging, settings.log_level)
    setup_logging(level=level, log_file=args.log_file)

    commands = {
        "settings": cmd_settings,
        "send": cmd_send,
        "replay": cmd_replay,
    }
    try:
        return commands[args.command](args, settings)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
