"""Cron entry point: run one roster sync pass and exit non-zero on failure."""

from __future__ import annotations

from roster_core.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
