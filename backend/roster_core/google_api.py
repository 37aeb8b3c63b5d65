"""Thin synchronous clients for the Google Forms, Calendar and Sheets REST APIs.

Authentication uses a stored OAuth refresh token: the access token is fetched
from the Google token endpoint on first use and cached until shortly before it
expires. Every failure surfaces as :class:`ExternalServiceError`; nothing here
retries except the single re-authentication after an HTTP 401.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .errors import ExternalServiceError


logger = logging.getLogger(__name__)

GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
FORMS_API_BASE_URL = "https://forms.googleapis.com/v1"
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
SHEETS_API_BASE_URL = "https://sheets.googleapis.com/v4"


@dataclass(frozen=True)
class OAuthCredentials:
    client_id: str
    client_secret: str
    refresh_token: str

    @classmethod
    def from_files(cls, credentials_file: Path, token_file: Path) -> "OAuthCredentials":
        """Load the OAuth client from ``credentials.json`` and the refresh token from ``token.json``."""

        client = _read_json(credentials_file, "credentials")
        token = _read_json(token_file, "token")

        client_id = _credential_value(client, "client_id") or token.get("client_id")
        client_secret = _credential_value(client, "client_secret") or token.get("client_secret")
        refresh_token = token.get("refresh_token")

        missing = [
            name
            for name, value in (
                ("client_id", client_id),
                ("client_secret", client_secret),
                ("refresh_token", refresh_token),
            )
            if not isinstance(value, str) or not value.strip()
        ]
        if missing:
            raise ExternalServiceError(f"Google credentials are missing: {', '.join(missing)}")

        return cls(client_id=client_id.strip(), client_secret=client_secret.strip(), refresh_token=refresh_token.strip())


def _read_json(path: Path, label: str) -> Dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ExternalServiceError(f"Google {label} file not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ExternalServiceError(f"Unable to read Google {label} file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ExternalServiceError(f"Google {label} file {path} must contain a JSON object")
    return payload


def _credential_value(payload: Dict[str, Any], key: str) -> Any:
    if key in payload:
        return payload[key]
    for nested_key in ("installed", "web"):
        nested = payload.get(nested_key)
        if isinstance(nested, dict) and key in nested:
            return nested[key]
    return None


def _google_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return " ".join(message.split())[:200]
        if isinstance(error_payload, str) and error_payload.strip():
            return " ".join(error_payload.split())[:200]

    raw_text = (response.text or "").strip()
    if raw_text:
        return " ".join(raw_text.split())[:200]
    return "Request failed without an error payload"


class GoogleSession:
    """Authenticated JSON requests against Google REST endpoints."""

    def __init__(
        self,
        credentials: OAuthCredentials | None = None,
        *,
        access_token: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        if credentials is None and not access_token:
            raise ValueError("GoogleSession needs OAuth credentials or an access token")
        self._credentials = credentials
        self._access_token = access_token
        self._expires_at: dt.datetime | None = None
        self.timeout = timeout

    def access_token(self, force_refresh: bool = False) -> str:
        if self._access_token and not force_refresh and self._token_is_fresh():
            return self._access_token
        if self._credentials is None:
            if self._access_token:
                return self._access_token
            raise ExternalServiceError("No Google credentials available to refresh the access token")
        return self._refresh_access_token(self._credentials)

    def _token_is_fresh(self) -> bool:
        if self._expires_at is None:
            return self._credentials is None
        return dt.datetime.now(dt.UTC) < self._expires_at

    def _refresh_access_token(self, credentials: OAuthCredentials) -> str:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    GOOGLE_OAUTH_TOKEN_URL,
                    data={
                        "client_id": credentials.client_id,
                        "client_secret": credentials.client_secret,
                        "refresh_token": credentials.refresh_token,
                        "grant_type": "refresh_token",
                    },
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Google OAuth token refresh request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise ExternalServiceError(
                f"Google OAuth token refresh failed: {_google_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalServiceError("Google OAuth token endpoint returned invalid JSON") from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token.strip():
            raise ExternalServiceError("Google OAuth token response is missing an access_token")

        expires_in = payload.get("expires_in")
        seconds = int(expires_in) if isinstance(expires_in, (int, float)) and expires_in > 0 else 3600
        # Refresh a minute early.
        self._access_token = access_token.strip()
        self._expires_at = dt.datetime.now(dt.UTC) + dt.timedelta(seconds=max(seconds - 60, 30))
        return self._access_token

    def request_json(
        self,
        method: str,
        url: str,
        *,
        params: Dict[str, Any] | None = None,
        json_body: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        response = self._send(method, url, params=params, json_body=json_body, force_refresh=False)
        if response.status_code == 401 and self._credentials is not None:
            response = self._send(method, url, params=params, json_body=json_body, force_refresh=True)

        if response.status_code < 200 or response.status_code >= 300:
            raise ExternalServiceError(
                f"{method} {url} failed ({response.status_code}): {_google_error_message(response)}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalServiceError(f"{method} {url} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise ExternalServiceError(f"{method} {url} returned an unexpected payload: {type(payload)}")
        return payload

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: Dict[str, Any] | None,
        json_body: Dict[str, Any] | None,
        force_refresh: bool,
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.access_token(force_refresh=force_refresh)}",
            "Accept": "application/json",
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                return client.request(method, url, params=params, json=json_body, headers=headers)
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"{method} {url} failed: {exc}") from exc


class FormsClient:
    def __init__(self, session: GoogleSession) -> None:
        self.session = session

    def _form_url(self, form_code: str) -> str:
        return f"{FORMS_API_BASE_URL}/forms/{quote(form_code, safe='')}"

    def get_form(self, form_code: str) -> Dict[str, Any]:
        return self.session.request_json("GET", self._form_url(form_code))

    def list_responses(self, form_code: str, filter_text: str | None = None) -> List[Dict[str, Any]]:
        """Return every response matching the filter, following pagination."""

        responses: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {}
            if filter_text:
                params["filter"] = filter_text
            if page_token:
                params["pageToken"] = page_token
            payload = self.session.request_json("GET", f"{self._form_url(form_code)}/responses", params=params)
            for item in payload.get("responses") or []:
                if isinstance(item, dict):
                    responses.append(item)
            page_token = payload.get("nextPageToken")
            if not page_token:
                return responses

    def batch_update(self, form_code: str, requests: List[Dict[str, Any]]) -> Dict[str, Any]:
        body = {"includeFormInResponse": False, "requests": requests}
        return self.session.request_json("POST", f"{self._form_url(form_code)}:batchUpdate", json_body=body)


class CalendarClient:
    def __init__(self, session: GoogleSession) -> None:
        self.session = session

    def _events_url(self, calendar_id: str) -> str:
        return f"{CALENDAR_API_BASE_URL}/calendars/{quote(calendar_id, safe='')}/events"

    def get_event(self, calendar_id: str, event_id: str) -> Dict[str, Any]:
        return self.session.request_json("GET", f"{self._events_url(calendar_id)}/{quote(event_id, safe='')}")

    def create_event(self, calendar_id: str, body: Dict[str, Any]) -> str:
        payload = self.session.request_json("POST", self._events_url(calendar_id), json_body=body)
        event_id = payload.get("id")
        if not isinstance(event_id, str) or not event_id:
            raise ExternalServiceError("Google Calendar create returned no event id")
        return event_id

    def update_event(self, calendar_id: str, event_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self.session.request_json(
            "PUT",
            f"{self._events_url(calendar_id)}/{quote(event_id, safe='')}",
            json_body=body,
        )


class SheetsClient:
    def __init__(self, session: GoogleSession) -> None:
        self.session = session

    def get_values(self, spreadsheet_id: str, value_range: str) -> List[List[Any]]:
        url = f"{SHEETS_API_BASE_URL}/spreadsheets/{quote(spreadsheet_id, safe='')}/values/{quote(value_range, safe=':!')}"
        payload = self.session.request_json("GET", url)
        rows = payload.get("values") or []
        return [row for row in rows if isinstance(row, list)]
