"""
Calendar port used by the scheduling service.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class CalendarEvent:
    subject: str
    html_body: str
    start: datetime  # naive local time in the calendar time zone
    end: datetime
    attendee_email: str
    attendee_name: str


@runtime_checkable
class CalendarPort(Protocol):
    timezone: str

    async def list_busy(self, day: date) -> list[BusyInterval]:
        """Busy intervals of ``day`` as naive local datetimes in ``timezone``."""
        ...

    async def create_event(self, event: CalendarEvent) -> str:
        """Create the event and return its id."""
        ...

    async def aclose(self) -> None: ...
