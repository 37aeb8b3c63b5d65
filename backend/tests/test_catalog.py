from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from roster_core.catalog import ingest_race_catalog, read_race_catalog
from roster_core.errors import MalformedInputError
from roster_core.store import RosterStore


def _write_catalog(path: Path, *rows: str) -> Path:
    path.write_text("\n".join(("Name,Date",) + rows) + "\n", encoding="utf-8")
    return path


def test_read_catalog_skips_header_and_blank_lines(tmp_path: Path) -> None:
    path = _write_catalog(tmp_path / "races.csv", "Spring Cup,2026-05-02", "", "Summer Series, 2026-06-06")

    rows = read_race_catalog(path)

    assert [(row.name, row.date) for row in rows] == [
        ("Spring Cup", dt.date(2026, 5, 2)),
        ("Summer Series", dt.date(2026, 6, 6)),
    ]


def test_missing_catalog_yields_nothing(tmp_path: Path) -> None:
    store = RosterStore(tmp_path / "roster.json")

    assert read_race_catalog(tmp_path / "races.csv") == []
    assert ingest_race_catalog(store, tmp_path / "races.csv") == 0


def test_bad_date_is_malformed(tmp_path: Path) -> None:
    path = _write_catalog(tmp_path / "races.csv", "Spring Cup,02/05/2026")

    with pytest.raises(MalformedInputError):
        read_race_catalog(path)


def test_short_row_is_malformed(tmp_path: Path) -> None:
    path = _write_catalog(tmp_path / "races.csv", "Spring Cup")

    with pytest.raises(MalformedInputError):
        read_race_catalog(path)


def test_ingest_twice_creates_no_duplicates(tmp_path: Path) -> None:
    path = _write_catalog(
        tmp_path / "races.csv",
        "Spring Cup,2026-05-02",
        "Twilight,2026-05-06",
        "Twilight,2026-05-13",
    )
    store = RosterStore(tmp_path / "roster.json")

    assert ingest_race_catalog(store, path) == 3
    assert ingest_race_catalog(store, path) == 0

    races = store.list_races()
    assert len(races) == 3
    assert len({race.id for race in races}) == 3
    assert store.find_race("Twilight").date == dt.date(2026, 5, 6)


def test_ingest_keeps_existing_rosters(tmp_path: Path) -> None:
    path = _write_catalog(tmp_path / "races.csv", "Spring Cup,2026-05-02")
    store = RosterStore(tmp_path / "roster.json")
    ingest_race_catalog(store, path)
    race = store.find_race("Spring Cup")
    store.write_roster(race, "rc", [store.find_or_create_user("alice@example.com")])

    ingest_race_catalog(store, path)

    assert [member.email for member in store.read_roster(store.find_race("Spring Cup"), "rc")] == [
        "alice@example.com"
    ]
