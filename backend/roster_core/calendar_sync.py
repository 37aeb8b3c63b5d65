from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Collection, Dict, Iterable, List, Optional

from .config import ProgramConfig
from .google_api import CalendarClient
from .models import RENTALS_KIND, ROSTER_KINDS, Race
from .store import RosterStore


logger = logging.getLogger(__name__)


class CalendarAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


@dataclass
class EventPayload:
    summary: str
    start: dt.datetime
    end: dt.datetime
    description: str
    attendees: List[Dict[str, str]] = field(default_factory=list)
    location: str = ""
    time_zone: str = ""

    def _boundary(self, value: dt.datetime) -> Dict[str, str]:
        boundary = {"dateTime": value.isoformat()}
        if self.time_zone:
            boundary["timeZone"] = self.time_zone
        return boundary

    def apply_to(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Overwrite every field this sync owns on an event body."""

        body["summary"] = self.summary
        body["start"] = self._boundary(self.start)
        body["end"] = self._boundary(self.end)
        body["description"] = self.description
        body["attendees"] = [dict(attendee) for attendee in self.attendees]
        if self.location:
            body["location"] = self.location
        else:
            body.pop("location", None)
        return body

    def to_body(self) -> Dict[str, Any]:
        return self.apply_to({})


@dataclass
class CalendarPlan:
    race: Race
    action: CalendarAction
    payload: Optional[EventPayload] = None


@dataclass
class CalendarSyncSummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0


class CalendarSyncPlanner:
    """Decides which races need their calendar event written and builds the event body."""

    def __init__(self, config: ProgramConfig) -> None:
        self.config = config
        self.tz = config.timezone()

    def should_skip(self, race: Race, touched_races: Collection[str], force: bool) -> bool:
        return race.event_id is not None and race.name not in touched_races and not force

    def describe(self, race: Race) -> str:
        lines = []
        for kind in ROSTER_KINDS.values():
            names = [member.name or member.email for member in kind.get_members(race)]
            lines.append(f"{kind.label}: {', '.join(names)}" if names else f"No {kind.label}")
        remaining = self.config.allowed_renters_count - len(ROSTER_KINDS[RENTALS_KIND].get_members(race))
        lines.append(f"Rentals Remaining: {remaining}")
        return "\n".join(lines)

    def attendees(self, race: Race) -> List[Dict[str, str]]:
        by_email: Dict[str, Dict[str, str]] = {}
        for kind in ROSTER_KINDS.values():
            for member in kind.get_members(race):
                by_email[member.email] = {"email": member.email, "displayName": member.name}
        return list(by_email.values())

    def build_payload(self, race: Race) -> EventPayload:
        start = race.start_time(self.tz) + self.config.event_start_offset()
        return EventPayload(
            summary=race.name,
            start=start,
            end=start + self.config.event_duration(),
            description=self.describe(race),
            attendees=self.attendees(race),
            location=self.config.race_location,
            time_zone=self.config.time_zone,
        )

    def plan_race(self, race: Race, touched_races: Collection[str], force: bool = False) -> CalendarPlan:
        if self.should_skip(race, touched_races, force):
            return CalendarPlan(race=race, action=CalendarAction.SKIP)
        action = CalendarAction.CREATE if race.event_id is None else CalendarAction.UPDATE
        return CalendarPlan(race=race, action=action, payload=self.build_payload(race))

    def plan(self, races: Iterable[Race], touched_races: Collection[str], force: bool = False) -> List[CalendarPlan]:
        return [self.plan_race(race, touched_races, force) for race in races]


class CalendarSync:
    """Writes planned events to the calendar and records new event ids on their races."""

    def __init__(self, store: RosterStore, calendar: CalendarClient, calendar_id: str) -> None:
        self.store = store
        self.calendar = calendar
        self.calendar_id = calendar_id

    def apply(self, plans: Iterable[CalendarPlan]) -> CalendarSyncSummary:
        summary = CalendarSyncSummary()
        for plan in plans:
            if plan.action is CalendarAction.SKIP or plan.payload is None:
                summary.skipped += 1
                continue

            race = plan.race
            if plan.action is CalendarAction.CREATE or race.event_id is None:
                event_id = self.calendar.create_event(self.calendar_id, plan.payload.to_body())
                logger.info("Added calendar event for %s with id %s", race.name, event_id)
                if race.event_id is None:
                    race.event_id = event_id
                    self.store.save_race(race)
                summary.created += 1
            else:
                existing = self.calendar.get_event(self.calendar_id, race.event_id)
                self.calendar.update_event(self.calendar_id, race.event_id, plan.payload.apply_to(existing))
                logger.info("Updated event %s", race.name)
                summary.updated += 1
        return summary
