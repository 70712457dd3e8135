"""
Microsoft Graph calendar client.

Uses the OAuth2 client-credentials flow against the Microsoft identity
platform and caches the access token until shortly before it expires.
"""
from __future__ import annotations

import asyncio
import time
from datetime import date, datetime, time as dt_time, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

import httpx

from application.ports.calendar import BusyInterval, CalendarEvent
from core.config import CalendarSettings
from core.logging_config import get_logger
from domain.common.exceptions import UpstreamServiceException
from infrastructure.external.api_clients.base import APIError, BaseAPIClient


logger = get_logger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
# Refresh the token this many seconds before it expires
TOKEN_EXPIRY_MARGIN = 60
MAX_PAGES = 5


class TokenUnavailableError(APIError):
    transient = True


def _parse_graph_datetime(value: str) -> datetime:
    # Graph returns 7 fractional digits ("2024-05-01T10:00:00.0000000")
    return datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")


class MicrosoftIdentityClient(BaseAPIClient):
    """Client-credentials token provider."""

    def __init__(self, config: CalendarSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(
            base_url=config.authority_url,
            timeout=config.timeout_seconds,
            max_retries=1,
            transport=transport,
        )
        self._config = config
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def access_token(self) -> str:
        async with self._lock:
            if self._token and time.monotonic() < self._expires_at:
                return self._token
            response = await self.post(
                f"/{self._config.tenant_id}/oauth2/v2.0/token",
                data={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
            )
            data = response.data if isinstance(response.data, dict) else {}
            token = data.get("access_token")
            if not token:
                raise TokenUnavailableError("Identity platform returned no access token", status_code=response.status_code)
            expires_in = int(data.get("expires_in") or 3600)
            self._token = token
            self._expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
            logger.info("graph_token_acquired", expires_in=expires_in)
            return token


class GraphCalendarClient(BaseAPIClient):
    def __init__(
        self,
        config: CalendarSettings,
        *,
        identity: Optional[MicrosoftIdentityClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url=config.graph_url,
            timeout=config.timeout_seconds,
            max_retries=1,
            transport=transport,
        )
        self._config = config
        self._identity = identity or MicrosoftIdentityClient(config, transport=transport)
        self.timezone = config.timezone

    async def aclose(self) -> None:
        await self._identity.close()
        await self.close()

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._identity.access_token()
        return {
            "Authorization": f"Bearer {token}",
            "Prefer": f'outlook.timezone="{self.timezone}"',
        }

    async def list_busy(self, day: date) -> list[BusyInterval]:
        try:
            busy = await self._load_busy(day)
        except APIError as exc:
            logger.warning("graph_busy_failed", day=day.isoformat(), status_code=exc.status_code)
            raise UpstreamServiceException("microsoft_graph", "Calendar lookup failed", status_code=exc.status_code) from exc
        logger.info("graph_busy_loaded", day=day.isoformat(), events=len(busy))
        return busy

    async def _load_busy(self, day: date) -> list[BusyInterval]:
        tz = ZoneInfo(self.timezone)
        start = datetime.combine(day, dt_time.min, tzinfo=tz)
        end = start + timedelta(days=1)
        headers = await self._auth_headers()

        endpoint = f"/users/{self._config.calendar_id}/calendar/calendarView"
        params: Optional[dict[str, Any]] = {
            "startDateTime": start.isoformat(),
            "endDateTime": end.isoformat(),
            "$select": "start,end,subject,showAs",
            "$top": 100,
        }
        busy: list[BusyInterval] = []
        for _ in range(MAX_PAGES):
            response = await self.get(endpoint, params=params, headers=headers)
            data = response.data if isinstance(response.data, dict) else {}
            for event in data.get("value", []):
                if event.get("showAs") == "free":
                    continue
                try:
                    busy.append(BusyInterval(
                        start=_parse_graph_datetime(event["start"]["dateTime"]),
                        end=_parse_graph_datetime(event["end"]["dateTime"]),
                    ))
                except (KeyError, TypeError, ValueError):
                    logger.warning("graph_event_unparseable", subject=event.get("subject"))
            next_link = data.get("@odata.nextLink")
            if not next_link:
                break
            endpoint, params = next_link, None
        return busy

    async def create_event(self, event: CalendarEvent) -> str:
        payload = {
            "subject": event.subject,
            "body": {"contentType": "HTML", "content": event.html_body},
            "start": {"dateTime": event.start.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": self.timezone},
            "end": {"dateTime": event.end.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": self.timezone},
            "location": {"displayName": self._config.location},
            "attendees": [
                {
                    "emailAddress": {"address": event.attendee_email, "name": event.attendee_name},
                    "type": "required",
                }
            ],
        }
        try:
            headers = await self._auth_headers()
            response = await self.post(
                f"/users/{self._config.calendar_id}/calendar/events",
                json_data=payload,
                headers=headers,
            )
        except APIError as exc:
            logger.warning("graph_event_failed", status_code=exc.status_code)
            raise UpstreamServiceException("microsoft_graph", "Calendar event creation failed", status_code=exc.status_code) from exc

        data = response.data if isinstance(response.data, dict) else {}
        event_id = str(data.get("id") or "")
        logger.info("graph_event_created", event_id=event_id)
        return event_id
