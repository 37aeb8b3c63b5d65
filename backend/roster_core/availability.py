from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from .models import Race, RosterKindConfig
from .store import RosterStore


NO_RACES_LABEL = "No Races Available"


@dataclass(frozen=True)
class RaceOption:
    """A selectable form option. ``race`` is ``None`` only for the no-races sentinel."""

    race: Optional[Race]
    label: str


def option_label(race: Race, config: RosterKindConfig, member_count: int) -> str:
    if config.has_limit:
        return f"{race.label()} ({config.entry_limit - member_count} Remaining)"
    return f"{race.label()} ({member_count} So Far)"


def is_selectable(race: Race, config: RosterKindConfig, now: dt.datetime, tz: dt.tzinfo) -> bool:
    start = race.start_time(tz)
    if not start > now:
        return False
    if config.visibility_window is None:
        return True
    return now > start - config.visibility_window


def project_options(
    races: Iterable[Race],
    config: RosterKindConfig,
    now: dt.datetime,
    tz: dt.tzinfo,
) -> Iterator[RaceOption]:
    """Yield the races that can currently be picked for ``config``'s roster kind.

    Always yields at least one option: when nothing qualifies, a single
    ``"No Races Available"`` placeholder.
    """

    found = False
    for race in races:
        if not is_selectable(race, config, now, tz):
            continue
        found = True
        yield RaceOption(race=race, label=option_label(race, config, len(config.roster.get_members(race))))
    if not found:
        yield RaceOption(race=None, label=NO_RACES_LABEL)


class AvailabilityProjector:
    def __init__(self, store: RosterStore, tz: dt.tzinfo) -> None:
        self.store = store
        self.tz = tz

    def options(self, config: RosterKindConfig, now: dt.datetime) -> Iterator[RaceOption]:
        return project_options(self.store.list_races(), config, now, self.tz)

    def labels(self, config: RosterKindConfig, now: dt.datetime) -> List[str]:
        return [option.label for option in self.options(config, now)]
