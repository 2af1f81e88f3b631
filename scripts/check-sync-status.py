#!/usr/bin/env python3
"""Script to check sync history and recent changes."""

import json
import os
import sys
from pathlib import Path
from typing import Any


def get_data_dir() -> Path:
    """Resolve the data directory the service writes to."""
    return Path(os.getenv("JIRA_PULSE_DATA_DIR", str(Path.home() / ".jira-pulse"))).expanduser() / "data"


def load_document(path: Path) -> dict[str, Any]:
    """Load a JSON document, empty when missing."""
    if not path.exists():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


def print_sync_summary(meta: dict[str, Any]) -> None:
    """Print summary of sync history."""
    history = meta.get("sync_history", [])
    type_counts: dict[str, int] = {}
    failed_count = 0

    for entry in history:
        sync_type = entry.get("type", "unknown")
        type_counts[sync_type] = type_counts.get(sync_type, 0) + 1

        if not entry.get("success", False):
            failed_count += 1

    print("📊 Sync Status Summary")  # noqa: T201
    print("=" * 40)  # noqa: T201
    print(f"Last sync: {meta.get('last_sync') or 'never'}")  # noqa: T201
    print(f"Recorded runs: {len(history)}")  # noqa: T201
    print(f"Failed runs: {failed_count}")  # noqa: T201
    print()  # noqa: T201

    print("Trigger breakdown:")  # noqa: T201
    for sync_type, count in sorted(type_counts.items()):
        print(f"  {sync_type}: {count}")  # noqa: T201
    print()  # noqa: T201


def print_history_entry(entry: dict[str, Any]) -> None:
    """Print one sync run."""
    marker = "✅" if entry.get("success") else "❌"
    print(f"{marker} {entry.get('timestamp', 'unknown')} ({entry.get('type', 'unknown')})")  # noqa: T201
    print(f"   Issues: {entry.get('issue_count', 0)}  Duration: {entry.get('duration_ms', 0)} ms")  # noqa: T201

    if entry.get("error"):
        print(f"   Error: {entry['error']}")  # noqa: T201


def print_change(entry: dict[str, Any]) -> None:
    """Print one changelog entry."""
    change = entry.get("change_type", "unknown")
    line = f"  {entry.get('detected_at', '')}  {entry.get('issue_key', '?')}  {change}"
    if entry.get("old_value") is not None or entry.get("new_value") is not None:
        line += f": {entry.get('old_value')} -> {entry.get('new_value')}"
    print(line)  # noqa: T201


def main() -> None:
    """Run the sync status checker."""
    data_dir = get_data_dir()

    if len(sys.argv) < 2:
        print("Usage: python check-sync-status.py <command> [args]")  # noqa: T201
        print()  # noqa: T201
        print("Commands:")  # noqa: T201
        print("  summary                    - Show sync history summary")  # noqa: T201
        print("  failed                     - Show failed sync runs")  # noqa: T201
        print("  changes [limit]            - Show recent changelog entries")  # noqa: T201
        print("  all                        - Show every recorded run")  # noqa: T201
        print()  # noqa: T201
        print("Environment variables:")  # noqa: T201
        print(f"  JIRA_PULSE_DATA_DIR={data_dir.parent}")  # noqa: T201
        sys.exit(1)

    command = sys.argv[1].lower()

    try:
        meta = load_document(data_dir / "meta.json")

        if command == "summary":
            print_sync_summary(meta)

        elif command == "failed":
            failed = [e for e in meta.get("sync_history", []) if not e.get("success")]
            print(f"Found {len(failed)} failed sync runs:")  # noqa: T201
            print()  # noqa: T201
            for entry in failed:
                print_history_entry(entry)

        elif command == "changes":
            limit = int(sys.argv[2]) if len(sys.argv) > 2 else 20
            changelog = load_document(data_dir / "changelog.json")
            entries = changelog.get("entries", [])
            print(f"Showing {min(limit, len(entries))} of {len(entries)} changes:")  # noqa: T201
            for entry in entries[:limit]:
                print_change(entry)

        elif command == "all":
            print_sync_summary(meta)
            print("All sync runs:")  # noqa: T201
            print()  # noqa: T201
            for entry in meta.get("sync_history", []):
                print_history_entry(entry)

        else:
            print(f"❌ Unknown command: {command}")  # noqa: T201
            sys.exit(1)

    except (OSError, ValueError) as e:
        print(f"❌ Error: {e}")  # noqa: T201
        sys.exit(1)


if __name__ == "__main__":
    main()
