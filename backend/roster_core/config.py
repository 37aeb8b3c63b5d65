from __future__ import annotations

import datetime as dt
import json
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .models import RosterKindConfig, normalise_email
from .models import roster_kind as lookup_roster_kind


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"


def default_config_path() -> Path:
    return Path(os.getenv("ROSTER_SYNC_CONFIG", DEFAULT_CONFIG_PATH))


class RosterFormSettings(BaseModel):
    """Form binding and signup policy for one roster kind."""

    form_code: str = Field(default="", alias="formCode")
    roster_kind: str = Field(alias="rosterKind")
    prelookup_days: int = Field(default=0, alias="prelookupDays")
    entry_limit: int = Field(default=-1, alias="entryLimit")
    restrict_to_eligible: bool = Field(default=False, alias="restrictToEligible")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("roster_kind")
    @classmethod
    def _known_kind(cls, value: str) -> str:
        return lookup_roster_kind(value.strip()).key

    def visibility_window(self) -> Optional[dt.timedelta]:
        if self.prelookup_days > 0:
            return dt.timedelta(days=self.prelookup_days)
        return None

    def to_roster_kind_config(self, eligible_emails: Iterable[str] | None = None) -> RosterKindConfig:
        allowed = None
        if self.restrict_to_eligible:
            allowed = frozenset(normalise_email(email) for email in (eligible_emails or []) if email)
        return RosterKindConfig(
            form_code=self.form_code,
            kind=self.roster_kind,
            visibility_window=self.visibility_window(),
            entry_limit=self.entry_limit if self.entry_limit >= 0 else None,
            eligible_emails=allowed,
        )


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC).replace(microsecond=0)


class ProgramConfig(BaseModel):
    """Immutable run configuration, persisted as ``config.json``."""

    last_run: dt.datetime = Field(default_factory=_utc_now, alias="lastRun")
    data_folder: str = Field(default="data", alias="dataFolder")
    form_rc: RosterFormSettings = Field(
        default_factory=lambda: RosterFormSettings(roster_kind="rc", prelookup_days=30, entry_limit=-1),
        alias="formRC",
    )
    form_rentals: RosterFormSettings = Field(
        default_factory=lambda: RosterFormSettings(
            roster_kind="renters",
            prelookup_days=6,
            entry_limit=7,
            restrict_to_eligible=True,
        ),
        alias="formRentals",
    )
    calendar_code: str = Field(default="", alias="calendarCode")
    race_event_duration: int = Field(default=4, alias="raceEventDuration")
    race_event_start_offset: int = Field(default=10, alias="raceEventStartOffset")
    time_zone: str = Field(default="UTC", alias="timeZone")
    allowed_renters_count: int = Field(default=7, alias="allowedRentersCount")
    allowed_users_sheet_id: str = Field(default="", alias="allowedUsersSheetId")
    race_location: str = Field(default="", alias="raceLocation")
    rental_membership_year: int = Field(default=0, alias="rentalMembershipYear")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("last_run")
    @classmethod
    def _aware_last_run(cls, value: dt.datetime) -> dt.datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value

    def timezone(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.time_zone or "UTC")
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unable to get time zone '{self.time_zone}'") from exc

    def event_duration(self) -> dt.timedelta:
        return dt.timedelta(hours=self.race_event_duration)

    def event_start_offset(self) -> dt.timedelta:
        return dt.timedelta(hours=self.race_event_start_offset)

    def data_path(self) -> Path:
        return Path(self.data_folder)

    def db_file(self) -> Path:
        return self.data_path() / "roster.json"

    def races_file(self) -> Path:
        return self.data_path() / "races.csv"

    def credentials_file(self) -> Path:
        return self.data_path() / "credentials.json"

    def token_file(self) -> Path:
        return self.data_path() / "token.json"

    def roster_forms(self) -> List[RosterFormSettings]:
        """Configured forms in run order; forms without a code are left out."""

        return [form for form in (self.form_rc, self.form_rentals) if form.form_code]

    def roster_kind_configs(self, eligible_emails: Iterable[str] | None = None) -> List[RosterKindConfig]:
        emails = list(eligible_emails or [])
        return [form.to_roster_kind_config(emails) for form in self.roster_forms()]

    def with_last_run(self, value: dt.datetime) -> "ProgramConfig":
        return self.model_copy(update={"last_run": value})


def load_config(path: Path | None = None) -> ProgramConfig:
    """Read the program config.

    A missing file is replaced with a default config and the run is aborted so
    the operator can fill it in. An existing file that fails to parse is never
    overwritten.
    """

    config_path = path or default_config_path()
    if not config_path.exists():
        write_config(ProgramConfig(), config_path)
        raise ConfigError(f"Config file {config_path} not found - new config file written")

    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
        return ProgramConfig.model_validate(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise ConfigError(
            f"Unable to read config file {config_path} - will not override existing file: {exc}"
        ) from exc


def write_config(config: ProgramConfig, path: Path | None = None) -> None:
    config_path = path or default_config_path()
    payload = config.model_dump(by_alias=True, mode="json")
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with config_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True)
    except OSError as exc:
        raise ConfigError(f"Failed to write config file {config_path}") from exc
    logger.debug("Wrote config file %s", config_path)
