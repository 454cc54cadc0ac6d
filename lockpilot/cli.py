#!/usr/bin/env python3
"""
LockPilot CLI - talk to a running daemon.

Usage:
    lockpilot create popup +25m -m "Break time"
    lockpilot create lock 2026-10-17T18:00:00+02:00
    lockpilot list
    lockpilot cancel <timer-id>
"""

import argparse
import asyncio
import json
import re
import sys
from datetime import datetime, timedelta
from pathlib import Path

from .core.config import load_config
from .core.errors import TimerError
from .ipc import IPCClient, IPCError
from .scheduler.timer import Timer, TimerAction, format_rfc3339, parse_rfc3339, utcnow

_RELATIVE = re.compile(r"^\+(\d+)([smhd])$")
_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def resolve_time(value: str, now: datetime | None = None) -> str:
    """Turn ``+<n>[smhd]`` into an absolute RFC-3339 time; pass anything else through."""
    match = _RELATIVE.match(value.strip())
    if not match:
        return value
    amount, unit = match.groups()
    now = now or utcnow()
    return format_rfc3339(now + timedelta(**{_UNITS[unit]: int(amount)}))


def format_timer(record: dict) -> str:
    timer = Timer(
        id=record["id"],
        action=TimerAction(record["action"]),
        target_time=parse_rfc3339(record["targetTime"]),
        message=record.get("message"),
        created_at=parse_rfc3339(record["createdAt"]),
    )
    local = timer.target_time.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    line = f"{timer.id}  {timer.action.value.upper():<8} {local}  ({timer.format_remaining()})"
    if timer.action is TimerAction.POPUP and timer.message:
        line += f"\n    {timer.message}"
    return line


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lockpilot", description="LockPilot - one-shot system timers")
    parser.add_argument("--socket", metavar="PATH", help="Daemon socket (default from LOCKPILOT_SOCKET)")
    parser.add_argument("--json", action="store_true", help="Output raw JSON")

    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Schedule a timer")
    create.add_argument("action", choices=[a.value for a in TimerAction])
    create.add_argument("time", help="RFC-3339 timestamp or relative offset like +10m")
    create.add_argument("-m", "--message", help="Message for popup timers")

    commands.add_parser("list", help="List pending timers")

    cancel = commands.add_parser("cancel", help="Cancel a pending timer")
    cancel.add_argument("id")

    return parser


async def run_command(args: argparse.Namespace, client: IPCClient) -> int:
    if args.command == "create":
        record = await client.create_timer(args.action, resolve_time(args.time), args.message)
        print(json.dumps(record, indent=2) if args.json else f"✅ Scheduled\n{format_timer(record)}")
        return 0

    if args.command == "list":
        records = await client.list_timers()
        if args.json:
            print(json.dumps(records, indent=2))
        elif not records:
            print("No active timers.")
        else:
            for record in records:
                print(format_timer(record))
        return 0

    cancelled = await client.cancel_timer(args.id)
    if args.json:
        print(json.dumps(cancelled))
    else:
        print("Timer canceled." if cancelled else "No pending timer with that id.")
    return 0 if cancelled else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    socket_path = Path(args.socket) if args.socket else load_config().socket_path
    client = IPCClient(socket_path)

    try:
        return asyncio.run(run_command(args, client))
    except TimerError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 2
    except IPCError as e:
        print(f"❌ Daemon error: {e.message}", file=sys.stderr)
        return 3
    except (OSError, asyncio.TimeoutError) as e:
        print(f"❌ Cannot reach daemon at {socket_path}: {e}", file=sys.stderr)
        return 3


if __name__ == "__main__":
    sys.exit(main())
