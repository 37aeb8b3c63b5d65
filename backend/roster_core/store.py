from __future__ import annotations

import datetime as dt
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import NotFoundError, StoreError
from .models import ROSTER_KINDS, Race, User, normalise_email, roster_kind


logger = logging.getLogger(__name__)


class RosterStore:
    """Races, users and per-kind rosters persisted to a local JSON file.

    Every mutating call flushes the whole store to disk before it returns, so a
    later step of the same run always reads what an earlier step wrote.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._users: Dict[str, User] = {}
        self._races: List[Race] = []
        self._load()

    # ------------------------------------------------------------------
    # Users

    def find_or_create_user(self, email: str) -> User:
        key = normalise_email(email)
        if not key:
            raise ValueError("User email must not be empty")
        user = self._users.get(key)
        if user is None:
            user = User(email=key)
            self._users[key] = user
            logger.debug("Created user %s", key)
            self._flush()
        return user

    def find_user(self, email: str) -> User:
        user = self._users.get(normalise_email(email))
        if user is None:
            raise NotFoundError(f"No user found for {email}")
        return user

    def save_user(self, user: User) -> None:
        user.email = normalise_email(user.email)
        existing = self._users.get(user.email)
        if existing is not None and existing is not user:
            existing.name = user.name
        else:
            self._users[user.email] = user
        self._flush()

    def list_users(self) -> List[User]:
        return sorted(self._users.values(), key=lambda item: item.email)

    # ------------------------------------------------------------------
    # Races

    def find_race(self, name: str) -> Race:
        """Return the first race with exactly this name, in store order."""

        for race in self._races:
            if race.name == name:
                return race
        raise NotFoundError(f"No record found for {name}")

    def find_race_by_key(self, name: str, date: dt.date) -> Optional[Race]:
        for race in self._races:
            if race.name == name and race.date == date:
                return race
        return None

    def create_race(self, name: str, date: dt.date) -> Race:
        race = Race(name=name, date=date, id=str(uuid.uuid4()))
        self._races.append(race)
        self._flush()
        return race

    def save_race(self, race: Race) -> None:
        if not race.id:
            race.id = str(uuid.uuid4())
        if all(existing is not race for existing in self._races):
            for index, existing in enumerate(self._races):
                if existing.id == race.id:
                    self._races[index] = race
                    break
            else:
                self._races.append(race)
        self._flush()

    def list_races(self) -> List[Race]:
        return list(self._races)

    # ------------------------------------------------------------------
    # Rosters

    def read_roster(self, race: Race, kind: str) -> List[User]:
        return list(roster_kind(kind).get_members(race))

    def write_roster(self, race: Race, kind: str, members: List[User]) -> None:
        unique: Dict[str, User] = {}
        for member in members:
            key = normalise_email(member.email)
            if key and key not in unique:
                unique[key] = self._users.get(key, member)
        roster_kind(kind).set_members(race, list(unique.values()))
        self.save_race(race)

    def clear_roster(self, race: Race, kind: str) -> None:
        self.write_roster(race, kind, [])

    # ------------------------------------------------------------------
    # Persistence

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Failed to read roster store {self.path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise StoreError(f"Roster store {self.path} does not contain an object")

        for row in raw.get("users") or []:
            if not isinstance(row, dict):
                continue
            email = normalise_email(row.get("email"))
            if email:
                self._users[email] = User(email=email, name=str(row.get("name") or ""))

        for row in raw.get("races") or []:
            if isinstance(row, dict):
                self._races.append(self._race_from_row(row))

    def _race_from_row(self, row: Dict[str, Any]) -> Race:
        try:
            race_date = dt.date.fromisoformat(str(row.get("date") or "")[:10])
        except ValueError as exc:
            raise StoreError(f"Race {row.get('name')!r} has an invalid date") from exc

        race = Race(
            name=str(row.get("name") or ""),
            date=race_date,
            id=str(row.get("id") or uuid.uuid4()),
            event_id=row.get("event_id") or None,
        )
        rosters = row.get("rosters") if isinstance(row.get("rosters"), dict) else {}
        for key, kind in ROSTER_KINDS.items():
            members: List[User] = []
            for email in rosters.get(key) or []:
                normalised = normalise_email(email)
                if not normalised:
                    continue
                user = self._users.setdefault(normalised, User(email=normalised))
                if user not in members:
                    members.append(user)
            kind.set_members(race, members)
        return race

    def _race_to_row(self, race: Race) -> Dict[str, Any]:
        return {
            "id": race.id,
            "name": race.name,
            "date": race.date.isoformat(),
            "event_id": race.event_id,
            "rosters": {
                key: [member.email for member in kind.get_members(race)]
                for key, kind in ROSTER_KINDS.items()
            },
        }

    def _flush(self) -> None:
        data = {
            "users": [{"email": user.email, "name": user.name} for user in self.list_users()],
            "races": [self._race_to_row(race) for race in self._races],
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StoreError(f"Failed to write roster store {self.path}") from exc
