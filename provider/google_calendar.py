"""Google Calendar REST API v3 provider."""
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from provider.base import CalendarEvent, CalendarHandle, CalendarProvider
from reconciler.errors import ProviderFault

logger = logging.getLogger(__name__)

GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"


def to_rfc3339(value: datetime) -> str:
    normalized = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    return normalized.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_event_boundary(payload: Dict[str, Any], tz: ZoneInfo) -> datetime:
    """
    Parse an event's start or end object.

    Timed events carry ``dateTime``; all-day events carry ``date``, which
    is taken as local midnight in the calendar's time zone.

    Args:
        payload: The ``start`` or ``end`` object of an event resource
        tz: Time zone of the owning calendar

    Returns:
        Timezone-aware datetime
    """
    date_time = payload.get("dateTime")
    if date_time:
        if date_time.endswith("Z"):
            date_time = f"{date_time[:-1]}+00:00"
        parsed = datetime.fromisoformat(date_time)
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=tz)

    date_value = payload.get("date")
    if date_value:
        day = date.fromisoformat(date_value)
        return datetime(day.year, day.month, day.day, tzinfo=tz)

    raise ProviderFault("Google Calendar event is missing start/end dateTime or date values")


@dataclass(frozen=True)
class GoogleOAuthCredentials:
    """OAuth client and refresh token for the Calendar API."""
    client_id: str
    client_secret: str
    refresh_token: str


class GoogleOAuthClient:
    """Refresh-token OAuth helper with access-token caching."""

    def __init__(self, credentials: GoogleOAuthCredentials, session: requests.Session,
                 timeout: int = 30):
        self.credentials = credentials
        self.session = session
        self.timeout = timeout
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def get_access_token(self, force_refresh: bool = False) -> str:
        if force_refresh or not self._token_is_fresh():
            self._refresh_access_token()
        return self._access_token

    def _token_is_fresh(self) -> bool:
        if self._access_token is None or self._expires_at is None:
            return False
        return datetime.now(timezone.utc) < self._expires_at

    def _refresh_access_token(self) -> None:
        try:
            response = self.session.post(
                GOOGLE_OAUTH_TOKEN_URL,
                data={
                    "client_id": self.credentials.client_id,
                    "client_secret": self.credentials.client_secret,
                    "refresh_token": self.credentials.refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ProviderFault(f"Google OAuth token refresh request failed: {e}") from e

        if not response.ok:
            raise ProviderFault(
                f"Google OAuth token refresh failed ({response.status_code})",
                status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderFault("Google OAuth token endpoint returned invalid JSON") from e

        access_token = payload.get("access_token")
        if not access_token:
            raise ProviderFault("Google OAuth token response is missing access_token")

        expires_in = int(payload.get("expires_in", 3600))
        # Refresh a minute early to avoid edge-of-expiry failures
        self._access_token = access_token
        self._expires_at = datetime.now(timezone.utc) + timedelta(
            seconds=max(expires_in - 60, 30)
        )
        logger.debug("Refreshed Google OAuth access token")


class GoogleCalendarEvent(CalendarEvent):
    """Event resource; tags are kept in ``extendedProperties.private``."""

    def __init__(self, calendar: "GoogleCalendar", payload: Dict[str, Any]):
        self._calendar = calendar
        self._payload = payload
        self._start_time = parse_event_boundary(payload.get("start", {}), calendar.tz)
        self._end_time = parse_event_boundary(payload.get("end", {}), calendar.tz)

    @property
    def id(self) -> str:
        return self._payload["id"]

    @property
    def title(self) -> str:
        return self._payload.get("summary", "")

    @property
    def start_time(self) -> datetime:
        return self._start_time

    @property
    def end_time(self) -> datetime:
        return self._end_time

    def _private_properties(self) -> Dict[str, str]:
        return (self._payload.get("extendedProperties") or {}).get("private") or {}

    def get_tag(self, key: str) -> Optional[str]:
        return self._private_properties().get(key)

    def set_tag(self, key: str, value: str) -> None:
        private = dict(self._private_properties())
        if private.get(key) == value:
            return
        private[key] = value

        updated = self._calendar.provider.request(
            "PATCH",
            f"{self._calendar.path}/events/{quote(self.id, safe='')}",
            json_body={"extendedProperties": {"private": private}}
        )
        self._payload.setdefault("extendedProperties", {})["private"] = (
            (updated.get("extendedProperties") or {}).get("private") or private
        )

    def delete(self) -> None:
        self._calendar.provider.request(
            "DELETE",
            f"{self._calendar.path}/events/{quote(self.id, safe='')}",
            missing_ok=True
        )


class GoogleCalendar(CalendarHandle):
    """A resolved Google calendar."""

    PAGE_SIZE = 250

    def __init__(self, provider: "GoogleCalendarProvider", calendar_id: str,
                 time_zone: Optional[str] = None):
        self.provider = provider
        self._id = calendar_id
        self.path = f"/calendars/{quote(calendar_id, safe='')}"
        try:
            self.tz = ZoneInfo(time_zone) if time_zone else timezone.utc
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown time zone {time_zone} for calendar {calendar_id}, using UTC")
            self.tz = timezone.utc

    @property
    def id(self) -> str:
        return self._id

    def get_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        params = {
            "timeMin": to_rfc3339(start),
            "timeMax": to_rfc3339(end),
            "singleEvents": "true",
            "showDeleted": "false",
            "maxResults": self.PAGE_SIZE,
        }
        events: List[CalendarEvent] = []

        while True:
            payload = self.provider.request("GET", f"{self.path}/events", params=params)
            for item in payload.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                events.append(GoogleCalendarEvent(self, item))

            page_token = payload.get("nextPageToken")
            if not page_token:
                break
            params = dict(params, pageToken=page_token)

        return events

    def create_event(self, title: str, start: datetime, end: datetime) -> CalendarEvent:
        payload = self.provider.request(
            "POST",
            f"{self.path}/events",
            json_body={
                "summary": title,
                "start": {"dateTime": to_rfc3339(start)},
                "end": {"dateTime": to_rfc3339(end)},
            }
        )
        return GoogleCalendarEvent(self, payload)


class GoogleCalendarProvider(CalendarProvider):
    """Calendar provider backed by the Google Calendar REST API."""

    RETRY_STATUS_CODES = (429, 500, 503)
    # A 5xx on insert may still have created the event
    NON_IDEMPOTENT_RETRY_STATUS_CODES = (429,)
    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(self, credentials: GoogleOAuthCredentials, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        """
        Initialize the provider.

        Args:
            credentials: OAuth credentials with calendar scope
            timeout: HTTP request timeout in seconds (default: 30)
            session: Optional requests session to reuse
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.oauth = GoogleOAuthClient(credentials, self.session, timeout=timeout)

    def get_calendar(self, calendar_id: str) -> Optional[CalendarHandle]:
        payload = self.request(
            "GET",
            f"/calendars/{quote(calendar_id, safe='')}",
            missing_ok=True
        )
        if not payload:
            logger.warning(f"Calendar {calendar_id} not found")
            return None
        return GoogleCalendar(self, calendar_id, payload.get("timeZone"))

    def request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                json_body: Optional[Dict[str, Any]] = None,
                missing_ok: bool = False) -> Dict[str, Any]:
        """
        Send an authorized request with retry logic.

        A 401 forces one token refresh. Rate limits and server errors are
        retried with exponential backoff, honouring ``Retry-After`` on 429.
        POST is only retried on 429, so an insert is never sent twice.

        Args:
            method: HTTP method
            path: Path below the Calendar API base URL
            params: Query parameters
            json_body: JSON request body
            missing_ok: Return an empty dict on 404/410 instead of failing

        Returns:
            Decoded JSON body, or an empty dict for empty responses

        Raises:
            ProviderFault: If the request fails after all retry attempts
        """
        url = f"{GOOGLE_CALENDAR_API_BASE_URL}{path}"
        retry_status_codes = (
            self.NON_IDEMPOTENT_RETRY_STATUS_CODES if method == "POST"
            else self.RETRY_STATUS_CODES
        )

        response = self._send(method, url, params, json_body, force_refresh=False)
        if response.status_code == 401:
            response = self._send(method, url, params, json_body, force_refresh=True)

        for attempt in range(self.MAX_RETRIES - 1):
            if response.status_code not in retry_status_codes:
                break
            delay = self._retry_delay(response, attempt)
            logger.warning(
                f"Calendar API request failed with status {response.status_code} "
                f"(attempt {attempt + 1}/{self.MAX_RETRIES}). Retrying in {delay} seconds..."
            )
            time.sleep(delay)
            response = self._send(method, url, params, json_body, force_refresh=False)

        if missing_ok and response.status_code in (404, 410):
            logger.debug(f"{method} {path} returned {response.status_code}; treating as missing")
            return {}

        if not response.ok:
            logger.error(f"{method} {path} failed with status {response.status_code}")
            raise ProviderFault(
                f"Google Calendar {method} {path} failed ({response.status_code}): "
                f"{response.text[:200]}",
                status_code=response.status_code
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise ProviderFault("Google Calendar API returned invalid JSON") from e

    def _send(self, method: str, url: str, params: Optional[Dict[str, Any]],
              json_body: Optional[Dict[str, Any]], force_refresh: bool) -> requests.Response:
        access_token = self.oauth.get_access_token(force_refresh=force_refresh)
        try:
            return self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ProviderFault(f"Google Calendar request failed: {e}") from e

    def _retry_delay(self, response: requests.Response, attempt: int) -> float:
        delay = self.BASE_DELAY * (2 ** attempt)
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after is not None:
                try:
                    delay = float(retry_after)
                except ValueError:
                    pass
        return delay
