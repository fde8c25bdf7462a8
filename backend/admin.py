#!/usr/bin/env python3
"""
Operator commands for the chart history.

USAGE:
  python admin.py list-history                 # Show stored sessions
  python admin.py clear-history                # Delete the persisted history blob
  python admin.py --path ./x.json clear-history
"""
from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone

from app.config import CHART_HISTORY_PATH
from core.storage import HistoryStore, JsonFileBlob


def _open_store(args) -> HistoryStore:
    store = HistoryStore(JsonFileBlob(args.path))
    store.load()
    return store


def cmd_list(args) -> int:
    store = _open_store(args)
    sessions = store.sessions
    if not sessions:
        print("No chart history.")
        return 0
    for s in sessions:
        when = datetime.fromtimestamp(s.timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
        print(f"{s.id}  {when}  v{len(s.versions)}  {s.originalRequest[:60]}")
    return 0


def cmd_clear(args) -> int:
    store = _open_store(args)
    count = len(store.sessions)
    store.purge_storage()
    print(f"Cleared {count} session(s) from {args.path}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Chart history administration")
    parser.add_argument("--path", default=CHART_HISTORY_PATH, help="history JSON file")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list-history", help="list stored sessions").set_defaults(func=cmd_list)
    sub.add_parser("clear-history", help="delete all stored sessions").set_defaults(func=cmd_clear)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
