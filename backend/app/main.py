from __future__ import annotations

import datetime as dt
import logging
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from roster_core import AvailabilityProjector, ProgramConfig, RosterStore, load_config
from roster_core.errors import ConfigError, StoreError
from roster_core.models import ROSTER_KINDS, Race

app = FastAPI(title="Race Roster Sync API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

logger = logging.getLogger(__name__)


class MemberModel(BaseModel):
    email: str
    name: str


class RaceModel(BaseModel):
    id: str
    name: str
    date: str
    event_id: Optional[str] = Field(default=None, alias="eventId")
    rosters: Dict[str, List[MemberModel]]

    model_config = ConfigDict(populate_by_name=True)


class RaceListResponse(BaseModel):
    races: List[RaceModel]


class OptionModel(BaseModel):
    label: str
    race_id: Optional[str] = Field(default=None, alias="raceId")

    model_config = ConfigDict(populate_by_name=True)


class OptionsResponse(BaseModel):
    kind: str
    form_code: str = Field(alias="formCode")
    options: List[OptionModel]

    model_config = ConfigDict(populate_by_name=True)


@lru_cache(maxsize=1)
def program_config() -> ProgramConfig:
    return load_config()


def get_config() -> ProgramConfig:
    try:
        return program_config()
    except ConfigError as exc:
        logger.error("Unable to load roster sync config: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_store(config: ProgramConfig = Depends(get_config)) -> RosterStore:
    # Opened per request so each response reflects the last completed write.
    try:
        return RosterStore(config.db_file())
    except StoreError as exc:
        logger.error("Unable to open roster store: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def _race_model(race: Race) -> RaceModel:
    return RaceModel(
        id=race.id,
        name=race.name,
        date=race.date.isoformat(),
        eventId=race.event_id,
        rosters={
            key: [MemberModel(email=member.email, name=member.name) for member in kind.get_members(race)]
            for key, kind in ROSTER_KINDS.items()
        },
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/races", response_model=RaceListResponse)
def list_races(
    includePast: bool = Query(default=False, alias="includePast"),
    config: ProgramConfig = Depends(get_config),
    store: RosterStore = Depends(get_store),
):
    today = dt.datetime.now(config.timezone()).date()
    races = [race for race in store.list_races() if includePast or race.date >= today]
    races.sort(key=lambda race: (race.date, race.name))
    return RaceListResponse(races=[_race_model(race) for race in races])


@app.get("/rosters/{kind}/options", response_model=OptionsResponse)
def roster_options(
    kind: str,
    config: ProgramConfig = Depends(get_config),
    store: RosterStore = Depends(get_store),
):
    form = next((item for item in config.roster_forms() if item.roster_kind == kind), None)
    if form is None:
        raise HTTPException(status_code=404, detail=f"No form configured for roster kind '{kind}'")

    kind_config = form.to_roster_kind_config()
    projector = AvailabilityProjector(store, config.timezone())
    now = dt.datetime.now(dt.UTC)
    options = [
        OptionModel(label=option.label, raceId=option.race.id if option.race else None)
        for option in projector.options(kind_config, now)
    ]
    return OptionsResponse(kind=kind, formCode=form.form_code, options=options)
