from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from .errors import MalformedInputError
from .google_api import SheetsClient
from .models import normalise_email
from .store import RosterStore


logger = logging.getLogger(__name__)

ELIGIBILITY_RANGE = "A:C"


@dataclass(frozen=True)
class UserEntry:
    email: str
    name: str


def parse_eligibility_rows(rows: Sequence[Sequence[Any]], membership_year: int) -> List[UserEntry]:
    """Turn ``emails, name, membership year`` sheet rows into unique user entries.

    The email cell may hold several addresses separated by ``;``. Rows whose
    membership year is older than ``membership_year`` are skipped, and the first
    row wins for an address listed twice.
    """

    users: Dict[str, UserEntry] = {}
    for row in rows:
        cells = [str(cell) for cell in row] + [""] * (3 - len(row))
        emails = cells[0].strip().lower()
        name = cells[1].strip()
        year_text = cells[2].strip()

        try:
            year = int(year_text)
        except ValueError as exc:
            raise MalformedInputError(f"Unable to convert membership year for {list(row)}") from exc

        if year < membership_year:
            logger.info("Skipping %s due to membership year %s < %s", name, year, membership_year)
            continue

        for email in emails.split(";"):
            email = normalise_email(email)
            if not email or not name:
                logger.info("User field empty for email '%s', '%s'", email, name)
            elif email not in users:
                users[email] = UserEntry(email=email, name=name)
            else:
                logger.info("Duplicate entry for email '%s' detected as '%s'", email, name)

    return list(users.values())


class SheetEligibilityFeed:
    """Eligible users read from the membership spreadsheet."""

    def __init__(self, sheets: SheetsClient, spreadsheet_id: str, membership_year: int) -> None:
        self.sheets = sheets
        self.spreadsheet_id = spreadsheet_id
        self.membership_year = membership_year

    def list_eligible_users(self) -> List[UserEntry]:
        if not self.spreadsheet_id:
            logger.info("No eligibility sheet configured; no eligible users loaded")
            return []
        rows = self.sheets.get_values(self.spreadsheet_id, ELIGIBILITY_RANGE)
        return parse_eligibility_rows(rows, self.membership_year)


def sync_eligible_users(store: RosterStore, entries: Sequence[UserEntry]) -> None:
    """Create every eligible user and make their stored name match the sheet."""

    for entry in entries:
        user = store.find_or_create_user(entry.email)
        user.name = entry.name
        store.save_user(user)
        logger.info("Found Email %s - %s", entry.email, entry.name)
