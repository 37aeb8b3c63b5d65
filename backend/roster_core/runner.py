from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Set

from .actions import FormActionSource
from .availability import AvailabilityProjector
from .calendar_sync import CalendarSync, CalendarSyncPlanner, CalendarSyncSummary
from .catalog import ingest_race_catalog
from .config import ProgramConfig
from .eligibility import SheetEligibilityFeed, UserEntry, sync_eligible_users
from .google_api import CalendarClient, FormsClient, GoogleSession, OAuthCredentials, SheetsClient
from .models import ActionEvent
from .reconcile import ReconcileResult, ReconciliationEngine
from .store import RosterStore


logger = logging.getLogger(__name__)


class ActionSource(Protocol):
    def list_actions_since(self, form_code: str, since: dt.datetime) -> List[ActionEvent]: ...

    def publish_options(self, form_code: str, labels: Sequence[str]) -> None: ...


class EligibilityFeed(Protocol):
    def list_eligible_users(self) -> List[UserEntry]: ...


@dataclass
class SyncServices:
    """External collaborators used by one run."""

    actions: ActionSource
    eligibility: EligibilityFeed
    calendar: Optional[CalendarClient] = None

    @classmethod
    def from_config(cls, config: ProgramConfig) -> "SyncServices":
        credentials = OAuthCredentials.from_files(config.credentials_file(), config.token_file())
        session = GoogleSession(credentials)
        return cls(
            actions=FormActionSource(FormsClient(session)),
            eligibility=SheetEligibilityFeed(
                SheetsClient(session),
                config.allowed_users_sheet_id,
                config.rental_membership_year,
            ),
            calendar=CalendarClient(session),
        )


@dataclass
class RunSummary:
    started_at: dt.datetime
    races_added: int = 0
    eligible_users: int = 0
    reconciled: Dict[str, ReconcileResult] = field(default_factory=dict)
    published: Dict[str, List[str]] = field(default_factory=dict)
    touched_races: Set[str] = field(default_factory=set)
    calendar: Optional[CalendarSyncSummary] = None


@contextmanager
def _step(name: str) -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        logger.error("Roster sync failed during %s: %s", name, exc)
        raise


def run_sync(
    config: ProgramConfig,
    store: RosterStore,
    services: SyncServices,
    *,
    force_calendar: bool = False,
    now: dt.datetime | None = None,
) -> RunSummary:
    """Run one batch pass.

    Order is fixed: race catalog, eligible users, then reconcile → project →
    publish for each configured roster kind, then the calendar pass. Any error
    other than a missing race aborts the run; the store keeps whatever was
    written before the failure.
    """

    started_at = now or dt.datetime.now(dt.UTC).replace(microsecond=0)
    summary = RunSummary(started_at=started_at)
    logger.info("Last Run: %s", config.last_run.isoformat())

    with _step(f"race catalog ingestion ({config.races_file()})"):
        summary.races_added = ingest_race_catalog(store, config.races_file())

    with _step("eligible user sync"):
        entries = services.eligibility.list_eligible_users()
        sync_eligible_users(store, entries)
        summary.eligible_users = len(entries)

    engine = ReconciliationEngine(store)
    projector = AvailabilityProjector(store, config.timezone())

    for kind_config in config.roster_kind_configs(entry.email for entry in entries):
        with _step(f"reconciliation of {kind_config.kind} (form {kind_config.form_code})"):
            events = services.actions.list_actions_since(kind_config.form_code, config.last_run)
            result = engine.reconcile(events, kind_config)
            summary.reconciled[kind_config.kind] = result
            summary.touched_races.update(result.touched_races)

        with _step(f"option publishing for {kind_config.kind} (form {kind_config.form_code})"):
            labels = projector.labels(kind_config, started_at)
            services.actions.publish_options(kind_config.form_code, labels)
            summary.published[kind_config.kind] = labels

    if not config.calendar_code or services.calendar is None:
        logger.info("No calendar configured; skipping calendar sync")
        return summary

    with _step(f"calendar sync ({config.calendar_code})"):
        planner = CalendarSyncPlanner(config)
        plans = planner.plan(store.list_races(), summary.touched_races, force_calendar)
        summary.calendar = CalendarSync(store, services.calendar, config.calendar_code).apply(plans)

    return summary
