"""
Google Calendar gateway over the REST API.

Obtaining the bearer token (service account, OAuth refresh) is the
caller's job; this client only spends it.
"""

import logging
from typing import Any, Callable, Optional, Union
from urllib.parse import quote

import httpx

from turnero.config import CalendarConfig
from turnero.errors import UpstreamError
from turnero.schemas.booking_schema import TimeRange

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str]


def _isoformat_utc(value) -> str:
    return value.isoformat().replace("+00:00", "Z")


class GoogleCalendarGateway:
    """``AvailabilityGateway`` backed by one Google calendar."""

    def __init__(
        self,
        calendar_id: str,
        access_token: Union[str, TokenProvider],
        api_base: str = "https://www.googleapis.com/calendar/v3",
        event_time_zone: str = "America/Argentina/Buenos_Aires",
        reminder_minutes: int = 10,
        timeout_sec: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not calendar_id:
            raise ValueError("calendar_id is required")
        self._calendar_id = calendar_id
        self._token_provider: TokenProvider = (
            access_token if callable(access_token) else (lambda: access_token)
        )
        self._api_base = api_base.rstrip("/")
        self._event_time_zone = event_time_zone
        self._reminder_minutes = reminder_minutes
        self._timeout_sec = timeout_sec
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: CalendarConfig,
        access_token: Optional[Union[str, TokenProvider]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "GoogleCalendarGateway":
        return cls(
            calendar_id=config.calendar_id,
            access_token=access_token or config.access_token,
            api_base=config.api_base,
            event_time_zone=config.event_time_zone,
            reminder_minutes=config.reminder_minutes,
            timeout_sec=config.timeout_sec,
            transport=transport,
        )

    async def is_available(self, time_range: TimeRange) -> bool:
        """Free when the calendar reports no busy block inside ``time_range``."""
        body = {
            "timeMin": _isoformat_utc(time_range.start),
            "timeMax": _isoformat_utc(time_range.end),
            "items": [{"id": self._calendar_id}],
        }
        data = await self._post("/freeBusy", body)
        calendar_data = (data.get("calendars") or {}).get(self._calendar_id)
        if not calendar_data or not calendar_data.get("busy"):
            return True
        logger.info(
            "Calendar busy between %s and %s (%d block(s))",
            body["timeMin"], body["timeMax"], len(calendar_data["busy"]),
        )
        return False

    async def create_event(
        self, title: str, time_range: TimeRange, attendee_emails: list[str]
    ) -> str:
        """Insert the event and return Google's event id verbatim.

        Service accounts cannot send invitations, so attendees are listed
        in the description and mailed separately by the workflow.
        """
        event: dict[str, Any] = {
            "summary": title,
            "start": {
                "dateTime": _isoformat_utc(time_range.start),
                "timeZone": self._event_time_zone,
            },
            "end": {
                "dateTime": _isoformat_utc(time_range.end),
                "timeZone": self._event_time_zone,
            },
            "reminders": {
                "useDefault": False,
                "overrides": [{"method": "popup", "minutes": self._reminder_minutes}],
            },
        }
        if attendee_emails:
            lines = "\n".join(f"- {email}" for email in attendee_emails)
            event["description"] = f"Emails de contacto:\n{lines}"

        data = await self._post(
            f"/calendars/{quote(self._calendar_id, safe='@')}/events",
            event,
            params={"sendUpdates": "none"},
        )
        event_id = data.get("id")
        if not event_id:
            raise UpstreamError("calendar accepted the event but returned no id")
        logger.info("Google Calendar event created: %s", event_id)
        return event_id

    async def _post(
        self, path: str, body: dict[str, Any], params: Optional[dict[str, str]] = None
    ) -> dict[str, Any]:
        url = f"{self._api_base}{path}"
        headers = {"Authorization": f"Bearer {self._token_provider()}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout_sec, transport=self._transport) as client:
                response = await client.post(url, json=body, params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Calendar request to %s failed: %s", path, exc)
            raise UpstreamError(f"calendar request failed: {exc}") from exc

        if response.status_code not in (200, 201):
            logger.error("Calendar request to %s returned %d: %s", path, response.status_code, response.text[:200])
            raise UpstreamError(f"calendar returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("calendar returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise UpstreamError("calendar returned an unexpected JSON shape")
        return data
