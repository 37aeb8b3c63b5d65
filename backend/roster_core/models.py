from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

from .errors import UnknownActionError


def normalise_email(value: str | None) -> str:
    return (value or "").strip().lower()


@dataclass
class User:
    """A person known to the roster store, keyed by normalised email."""

    email: str
    name: str = ""


@dataclass
class Race:
    """A race day from the catalog together with its per-kind rosters.

    ``event_id`` is assigned once the race has a calendar event and is never
    cleared afterwards. Roster lists hold each member at most once.
    """

    name: str
    date: dt.date
    id: str = ""
    event_id: Optional[str] = None
    rc: List[User] = field(default_factory=list)
    renters: List[User] = field(default_factory=list)

    def start_time(self, tz: dt.tzinfo) -> dt.datetime:
        """Midnight of the race day in the given time zone."""

        return dt.datetime.combine(self.date, dt.time.min, tzinfo=tz)

    def label(self) -> str:
        return f"{self.name} - {self.date.isoformat()}"


@dataclass(frozen=True)
class RosterKind:
    """One entry of the closed roster-kind table."""

    key: str
    label: str
    get_members: Callable[[Race], List[User]]
    set_members: Callable[[Race, List[User]], None]


def _set_rc(race: Race, members: List[User]) -> None:
    race.rc = members


def _set_renters(race: Race, members: List[User]) -> None:
    race.renters = members


# Order matters: calendar attendees and description lines follow it.
ROSTER_KINDS: Dict[str, RosterKind] = {
    "rc": RosterKind("rc", "RC", lambda race: race.rc, _set_rc),
    "renters": RosterKind("renters", "Renters", lambda race: race.renters, _set_renters),
}

RENTALS_KIND = "renters"


def roster_kind(key: str) -> RosterKind:
    try:
        return ROSTER_KINDS[key]
    except KeyError:
        known = ", ".join(ROSTER_KINDS)
        raise ValueError(f"Unknown roster kind '{key}' (expected one of: {known})") from None


class ActionKind(str, Enum):
    SIGNUP = "signup"
    CANCEL = "cancel"

    @classmethod
    def parse(cls, text: str | None) -> "ActionKind":
        value = (text or "").strip().lower()
        for member in cls:
            if member.value == value:
                return member
        raise UnknownActionError(f"Unknown action '{text}'")


@dataclass(frozen=True)
class RosterKindConfig:
    """Signup policy for one roster kind, bound to the form that feeds it."""

    form_code: str
    kind: str
    visibility_window: Optional[dt.timedelta] = None
    entry_limit: Optional[int] = None
    eligible_emails: Optional[FrozenSet[str]] = None

    @property
    def roster(self) -> RosterKind:
        return roster_kind(self.kind)

    @property
    def has_limit(self) -> bool:
        return self.entry_limit is not None and self.entry_limit >= 0

    def is_eligible(self, email: str) -> bool:
        if self.eligible_emails is None:
            return True
        return normalise_email(email) in self.eligible_emails

    def has_room(self, current_size: int) -> bool:
        if not self.has_limit:
            return True
        return current_size < self.entry_limit  # type: ignore[operator]


@dataclass(frozen=True)
class ActionEvent:
    """One signup/cancel intent for one user and one race fragment."""

    user_email: str
    user_name: str
    race_fragment: str
    action: ActionKind
    timestamp: dt.datetime
    response_id: str = ""

    @property
    def race_name(self) -> str:
        # Option labels look like "<Name> - <Date> (...)"; the name is everything before the first dash.
        return self.race_fragment.split("-", 1)[0].strip()
