from __future__ import annotations

import datetime as dt
from zoneinfo import ZoneInfo

import pytest

from roster_core.errors import UnknownActionError
from roster_core.models import (
    ROSTER_KINDS,
    ActionEvent,
    ActionKind,
    Race,
    RosterKindConfig,
    User,
    roster_kind,
)


def _event(fragment: str) -> ActionEvent:
    return ActionEvent(
        user_email="alice@example.com",
        user_name="Alice",
        race_fragment=fragment,
        action=ActionKind.SIGNUP,
        timestamp=dt.datetime(2026, 4, 1, 12, 0, tzinfo=dt.UTC),
    )


def test_race_name_is_text_before_first_dash() -> None:
    assert _event("Spring Cup - 2026-05-02 (3 Remaining)").race_name == "Spring Cup"
    assert _event("  Twilight  ").race_name == "Twilight"
    assert _event("Round-the-Island - 2026-07-01").race_name == "Round"


def test_action_kind_parse_is_case_insensitive() -> None:
    assert ActionKind.parse("Signup") is ActionKind.SIGNUP
    assert ActionKind.parse(" CANCEL ") is ActionKind.CANCEL

    with pytest.raises(UnknownActionError):
        ActionKind.parse("Maybe")
    with pytest.raises(UnknownActionError):
        ActionKind.parse(None)


def test_roster_kind_table_is_closed_and_ordered() -> None:
    assert list(ROSTER_KINDS) == ["rc", "renters"]
    assert roster_kind("rc").label == "RC"

    with pytest.raises(ValueError):
        roster_kind("crew")


def test_roster_kind_accessors_touch_only_their_list() -> None:
    race = Race(name="Spring Cup", date=dt.date(2026, 5, 2))
    alice = User(email="alice@example.com", name="Alice")

    roster_kind("renters").set_members(race, [alice])

    assert roster_kind("renters").get_members(race) == [alice]
    assert roster_kind("rc").get_members(race) == []


def test_race_start_time_is_midnight_in_zone() -> None:
    race = Race(name="Spring Cup", date=dt.date(2026, 5, 2))
    start = race.start_time(ZoneInfo("America/New_York"))

    assert start.astimezone(dt.UTC) == dt.datetime(2026, 5, 2, 4, 0, tzinfo=dt.UTC)
    assert race.label() == "Spring Cup - 2026-05-02"


def test_roster_kind_config_limits_and_eligibility() -> None:
    unlimited = RosterKindConfig(form_code="f", kind="rc")
    limited = RosterKindConfig(
        form_code="f",
        kind="renters",
        entry_limit=2,
        eligible_emails=frozenset({"alice@example.com"}),
    )

    assert not unlimited.has_limit
    assert unlimited.has_room(500)
    assert unlimited.is_eligible("anyone@example.com")

    assert limited.has_room(1)
    assert not limited.has_room(2)
    assert limited.is_eligible(" Alice@Example.com ")
    assert not limited.is_eligible("bob@example.com")


def test_zero_entry_limit_never_has_room() -> None:
    closed = RosterKindConfig(form_code="f", kind="renters", entry_limit=0)

    assert closed.has_limit
    assert not closed.has_room(0)
