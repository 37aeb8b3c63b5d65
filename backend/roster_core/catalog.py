from __future__ import annotations

import csv
import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .errors import MalformedInputError
from .store import RosterStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogRow:
    name: str
    date: dt.date


def read_race_catalog(path: Path) -> List[CatalogRow]:
    """Read ``Name, Date`` rows from the race catalog CSV, skipping the header.

    A missing catalog file simply yields no rows.
    """

    if not path.exists():
        logger.info("Race catalog %s not found; no races to add", path)
        return []

    rows: List[CatalogRow] = []
    with path.open(newline="", encoding="utf-8-sig") as fh:
        reader = csv.reader(fh)
        next(reader, None)
        for line_number, record in enumerate(reader, start=2):
            if not record or not any(cell.strip() for cell in record):
                continue
            if len(record) < 2:
                raise MalformedInputError(f"{path}:{line_number}: expected Name and Date columns")
            name = record[0].strip()
            try:
                date = dt.date.fromisoformat(record[1].strip())
            except ValueError as exc:
                raise MalformedInputError(
                    f"{path}:{line_number}: invalid race date '{record[1]}' (expected YYYY-MM-DD)"
                ) from exc
            rows.append(CatalogRow(name=name, date=date))
    return rows


def ingest_race_catalog(store: RosterStore, path: Path) -> int:
    """Create any catalog race not yet in the store. Returns the number created."""

    created = 0
    for row in read_race_catalog(path):
        if store.find_race_by_key(row.name, row.date) is not None:
            continue
        logger.info("Record not found for %s, creating race on %s", row.name, row.date.isoformat())
        store.create_race(row.name, row.date)
        created += 1
    return created
