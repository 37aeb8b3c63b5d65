from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Set

from .errors import NotFoundError
from .models import ActionEvent, ActionKind, RosterKindConfig
from .store import RosterStore


logger = logging.getLogger(__name__)


class ActionOutcome(str, Enum):
    ADDED = "added"
    CANCELLED = "cancelled"
    DROPPED_FULL = "dropped_full"
    DROPPED_INELIGIBLE = "dropped_ineligible"
    SKIPPED_NO_RACE = "skipped_no_race"


@dataclass
class AppliedAction:
    event: ActionEvent
    outcome: ActionOutcome
    race_id: Optional[str] = None


@dataclass
class ReconcileResult:
    kind: str
    actions: List[AppliedAction] = field(default_factory=list)
    touched_races: Set[str] = field(default_factory=set)

    def count(self, outcome: ActionOutcome) -> int:
        return sum(1 for item in self.actions if item.outcome is outcome)


class ReconciliationEngine:
    """Applies signup/cancel events to the roster store for one roster kind at a time.

    Events must arrive in submission order: the outcome of a signup for the
    last open slot depends on every event applied before it. Lookup misses are
    reported as ``SKIPPED_NO_RACE``; every other error propagates.
    """

    def __init__(self, store: RosterStore) -> None:
        self.store = store

    def reconcile(self, events: Iterable[ActionEvent], config: RosterKindConfig) -> ReconcileResult:
        result = ReconcileResult(kind=config.kind)
        for event in events:
            applied = self.apply(event, config)
            result.actions.append(applied)
            if applied.outcome is not ActionOutcome.SKIPPED_NO_RACE:
                result.touched_races.add(event.race_name)
        return result

    def apply(self, event: ActionEvent, config: RosterKindConfig) -> AppliedAction:
        user = self.store.find_or_create_user(event.user_email)
        if event.user_name:
            user.name = event.user_name

        try:
            race = self.store.find_race(event.race_name)
        except NotFoundError:
            logger.warning("No record found for %s (from '%s')", event.race_name, event.race_fragment)
            self.store.save_user(user)
            return AppliedAction(event=event, outcome=ActionOutcome.SKIPPED_NO_RACE)

        members = [member for member in self.store.read_roster(race, config.kind) if member.email != user.email]

        if not config.is_eligible(user.email):
            # Ineligible users never stay on the roster, whatever they asked for.
            self.store.write_roster(race, config.kind, members)
            outcome = ActionOutcome.DROPPED_INELIGIBLE
        elif event.action is ActionKind.CANCEL:
            # A cancel empties the whole roster for this race, not just the acting user's slot.
            self.store.clear_roster(race, config.kind)
            outcome = ActionOutcome.CANCELLED
        elif config.has_room(len(members)):
            members.append(user)
            self.store.write_roster(race, config.kind, members)
            outcome = ActionOutcome.ADDED
        else:
            self.store.write_roster(race, config.kind, members)
            outcome = ActionOutcome.DROPPED_FULL

        logger.info(
            "%s %s for %s - %s (%s)",
            user.email,
            event.action.value,
            race.name,
            event.race_fragment,
            outcome.value,
        )
        self.store.save_user(user)
        return AppliedAction(event=event, outcome=outcome, race_id=race.id)
