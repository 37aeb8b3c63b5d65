"""Command-line entry point for one roster sync run."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import default_config_path, load_config, write_config
from .errors import RosterSyncError
from .runner import RunSummary, SyncServices, run_sync
from .store import RosterStore


logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile race signups with the roster, form and calendar.")
    parser.add_argument("--config", type=Path, default=None, help="path to config.json")
    parser.add_argument("--force", action="store_true", help="forces the calendar to update")
    parser.add_argument("--verbose", action="store_true", help="log debug output")
    return parser.parse_args(argv)


def format_summary(summary: RunSummary) -> str:
    lines = [f"Races added: {summary.races_added}", f"Eligible users: {summary.eligible_users}"]
    for kind, result in summary.reconciled.items():
        outcomes = ", ".join(
            f"{outcome.value}={result.count(outcome)}"
            for outcome in sorted({item.outcome for item in result.actions}, key=lambda item: item.value)
        )
        lines.append(f"{kind}: {len(result.actions)} actions ({outcomes or 'none'})")
        lines.append(f"  options: {len(summary.published.get(kind, []))}")
    if summary.calendar is not None:
        lines.append(
            f"Calendar: {summary.calendar.created} created, {summary.calendar.updated} updated, "
            f"{summary.calendar.skipped} skipped"
        )
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    level_name = "DEBUG" if args.verbose else os.getenv("ROSTER_SYNC_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_path = args.config or default_config_path()
    try:
        config = load_config(config_path)
        store = RosterStore(config.db_file())
        services = SyncServices.from_config(config)
        summary = run_sync(config, store, services, force_calendar=args.force)
        write_config(config.with_last_run(summary.started_at), config_path)
    except RosterSyncError as exc:
        logger.error("Roster sync aborted: %s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(format_summary(summary))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
