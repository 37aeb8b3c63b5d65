from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List

import pytest

from roster_core.config import ProgramConfig, RosterFormSettings
from roster_core.eligibility import UserEntry
from roster_core.errors import ExternalServiceError
from roster_core.models import ActionEvent, ActionKind
from roster_core.reconcile import ActionOutcome
from roster_core.runner import SyncServices, run_sync
from roster_core.store import RosterStore


NOW = dt.datetime(2026, 4, 28, 12, 0, tzinfo=dt.UTC)
LAST_RUN = dt.datetime(2026, 4, 1, tzinfo=dt.UTC)


class FakeActions:
    def __init__(self, events: Dict[str, List[ActionEvent]] | None = None) -> None:
        self.events = events or {}
        self.since: List[tuple[str, dt.datetime]] = []
        self.published: Dict[str, List[str]] = {}

    def list_actions_since(self, form_code: str, since: dt.datetime) -> List[ActionEvent]:
        self.since.append((form_code, since))
        return list(self.events.get(form_code, []))

    def publish_options(self, form_code: str, labels) -> None:
        self.published[form_code] = list(labels)


class FakeEligibility:
    def __init__(self, entries: List[UserEntry] | None = None, error: Exception | None = None) -> None:
        self.entries = entries or []
        self.error = error

    def list_eligible_users(self) -> List[UserEntry]:
        if self.error is not None:
            raise self.error
        return list(self.entries)


class FakeCalendar:
    def __init__(self) -> None:
        self.created: List[Dict[str, Any]] = []
        self.updated: List[str] = []

    def create_event(self, calendar_id: str, body: Dict[str, Any]) -> str:
        self.created.append(body)
        return f"evt-{len(self.created)}"

    def get_event(self, calendar_id: str, event_id: str) -> Dict[str, Any]:
        return {"id": event_id}

    def update_event(self, calendar_id: str, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        self.updated.append(event_id)
        return body


def _event(email: str, minute: int = 0) -> ActionEvent:
    return ActionEvent(
        user_email=email,
        user_name=email.split("@", 1)[0].title(),
        race_fragment="Spring Cup - 2026-05-02 (7 Remaining)",
        action=ActionKind.SIGNUP,
        timestamp=dt.datetime(2026, 4, 20, 9, minute, tzinfo=dt.UTC),
    )


@pytest.fixture
def config(tmp_path: Path) -> ProgramConfig:
    (tmp_path / "races.csv").write_text("Name,Date\nSpring Cup,2026-05-02\n", encoding="utf-8")
    return ProgramConfig(
        last_run=LAST_RUN,
        data_folder=str(tmp_path),
        calendar_code="club-calendar",
        form_rc=RosterFormSettings(form_code="rc-form", roster_kind="rc", prelookup_days=30),
        form_rentals=RosterFormSettings(
            form_code="rent-form",
            roster_kind="renters",
            prelookup_days=6,
            entry_limit=1,
            restrict_to_eligible=True,
        ),
    )


def test_full_run_reconciles_publishes_and_syncs_calendar(config: ProgramConfig) -> None:
    store = RosterStore(config.db_file())
    actions = FakeActions(
        {
            "rc-form": [_event("carol@example.com")],
            "rent-form": [_event("bob@example.com"), _event("alice@example.com", minute=1)],
        }
    )
    calendar = FakeCalendar()
    services = SyncServices(
        actions=actions,
        eligibility=FakeEligibility([UserEntry(email="alice@example.com", name="Alice Smith")]),
        calendar=calendar,
    )

    summary = run_sync(config, store, services, now=NOW)

    assert summary.started_at == NOW
    assert summary.races_added == 1
    assert summary.eligible_users == 1
    assert actions.since == [("rc-form", LAST_RUN), ("rent-form", LAST_RUN)]
    assert [item.outcome for item in summary.reconciled["renters"].actions] == [
        ActionOutcome.DROPPED_INELIGIBLE,
        ActionOutcome.ADDED,
    ]
    assert actions.published == {
        "rc-form": ["Spring Cup - 2026-05-02 (1 So Far)"],
        "rent-form": ["Spring Cup - 2026-05-02 (0 Remaining)"],
    }
    assert summary.calendar is not None and summary.calendar.created == 1
    assert calendar.created[0]["description"] == "RC: Carol\nRenters: Alice\nRentals Remaining: 6"

    reloaded = RosterStore(config.db_file())
    assert reloaded.find_race("Spring Cup").event_id == "evt-1"


def test_quiet_rerun_skips_calendar_unless_forced(config: ProgramConfig) -> None:
    store = RosterStore(config.db_file())
    calendar = FakeCalendar()
    services = SyncServices(actions=FakeActions(), eligibility=FakeEligibility(), calendar=calendar)

    run_sync(config, store, services, now=NOW)
    quiet = run_sync(config, store, services, now=NOW)
    forced = run_sync(config, store, services, force_calendar=True, now=NOW)

    assert quiet.races_added == 0
    assert quiet.calendar is not None and quiet.calendar.skipped == 1
    assert forced.calendar is not None and forced.calendar.updated == 1
    assert calendar.updated == ["evt-1"]


def test_no_calendar_code_skips_calendar_pass(config: ProgramConfig) -> None:
    config = config.model_copy(update={"calendar_code": ""})
    calendar = FakeCalendar()
    services = SyncServices(actions=FakeActions(), eligibility=FakeEligibility(), calendar=calendar)

    summary = run_sync(config, RosterStore(config.db_file()), services, now=NOW)

    assert summary.calendar is None
    assert calendar.created == []


def test_nothing_open_publishes_placeholder(config: ProgramConfig) -> None:
    actions = FakeActions()
    services = SyncServices(actions=actions, eligibility=FakeEligibility())
    later = dt.datetime(2026, 6, 1, tzinfo=dt.UTC)

    run_sync(config, RosterStore(config.db_file()), services, now=later)

    assert actions.published == {"rc-form": ["No Races Available"], "rent-form": ["No Races Available"]}


def test_failure_aborts_but_keeps_earlier_writes(config: ProgramConfig) -> None:
    actions = FakeActions()
    services = SyncServices(
        actions=actions,
        eligibility=FakeEligibility(error=ExternalServiceError("sheet unavailable", status_code=503)),
    )

    with pytest.raises(ExternalServiceError):
        run_sync(config, RosterStore(config.db_file()), services, now=NOW)

    assert actions.since == []
    assert [race.name for race in RosterStore(config.db_file()).list_races()] == ["Spring Cup"]
