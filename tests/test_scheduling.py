import json
from datetime import date, datetime

import httpx
import pytest
from pydantic import ValidationError

from application.dtos.scheduling import AppointmentRequest, TimeSlot
from application.ports.calendar import BusyInterval
from application.services.scheduling_service import SchedulingService, compute_slots
from core.config import CalendarSettings
from domain.common.exceptions import SlotUnavailableException, UpstreamServiceException
from infrastructure.external.calendar import GraphCalendarClient


DAY = date(2025, 3, 14)


def _busy(start_hour, end_hour, day=DAY):
    return BusyInterval(
        start=datetime(day.year, day.month, day.day, start_hour),
        end=datetime(day.year, day.month, day.day, end_hour),
    )


def _calendar_settings(**overrides):
    values = {
        "tenant_id": "tenant-1",
        "client_id": "client-1",
        "client_secret": "client-secret",
        "calendar_id": "studio@example.com",
    }
    values.update(overrides)
    return CalendarSettings(**values)


def _appointment(**overrides):
    data = {
        "name": "Ana Pérez",
        "email": "ana@example.com",
        "phone": "+56911111111",
        "date": DAY.isoformat(),
        "timeSlot": {"start": "14:00", "end": "16:00"},
        "deposit": "Abono sesión",
        "photoAuth": True,
    }
    data.update(overrides)
    return AppointmentRequest.model_validate(data)


def test_compute_slots_full_day():
    slots = compute_slots(DAY, [], work_start_hour=10, work_end_hour=18, slot_hours=2)
    assert [s.start for s in slots] == ["10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]
    assert slots[0].end == "12:00"
    assert slots[0].display == "10:00 - 12:00"


def test_compute_slots_skips_overlapping_windows():
    slots = compute_slots(DAY, [_busy(12, 13)], work_start_hour=10, work_end_hour=18, slot_hours=2)
    # 10-12 ends exactly when the busy block starts
    assert [s.start for s in slots] == ["10:00", "13:00", "14:00", "15:00", "16:00"]


def test_compute_slots_busy_all_day():
    assert compute_slots(DAY, [_busy(0, 23)], work_start_hour=10, work_end_hour=18, slot_hours=2) == []


def test_time_slot_validation():
    assert TimeSlot(start="09:00", end="11:00").display == "9:00 - 11:00"
    with pytest.raises(ValidationError):
        TimeSlot(start="9", end="11:00")
    with pytest.raises(ValidationError):
        TimeSlot(start="12:00", end="10:00")


@pytest.mark.asyncio
async def test_available_slots_uses_calendar(make_calendar):
    service = SchedulingService(make_calendar([_busy(10, 11), _busy(15, 16, date(2025, 3, 15))]), _calendar_settings())
    slots = await service.available_slots(DAY)
    assert [s.start for s in slots] == ["11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]


@pytest.mark.asyncio
async def test_create_appointment_creates_event(make_calendar):
    calendar = make_calendar()
    service = SchedulingService(calendar, _calendar_settings())

    result = await service.create_appointment(_appointment(comments="<b>hola</b>"))

    assert result.event_id == "evt-1"
    event = calendar.events[0]
    assert event.subject == "Cita de tatuaje - Ana Pérez"
    assert event.start == datetime(2025, 3, 14, 14)
    assert event.end == datetime(2025, 3, 14, 16)
    assert event.attendee_email == "ana@example.com"
    assert "&lt;b&gt;hola&lt;/b&gt;" in event.html_body
    assert "Sí" in event.html_body


@pytest.mark.asyncio
async def test_create_appointment_rejects_taken_slot(make_calendar):
    calendar = make_calendar([_busy(15, 17)])
    service = SchedulingService(calendar, _calendar_settings())

    with pytest.raises(SlotUnavailableException):
        await service.create_appointment(_appointment())
    assert calendar.events == []


class GraphStub:
    def __init__(self, events=None, *, event_status=201):
        self.events = events or []
        self.event_status = event_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "login.microsoftonline.com":
            return httpx.Response(200, json={"access_token": "graph-token", "expires_in": 3600})
        if request.url.path.endswith("/calendarView"):
            return httpx.Response(200, json={"value": self.events})
        if request.url.path.endswith("/calendar/events"):
            if self.event_status >= 400:
                return httpx.Response(self.event_status, json={"error": {"message": "denied"}})
            return httpx.Response(self.event_status, json={"id": "AAMk-event"})
        return httpx.Response(404)

    def token_requests(self):
        return [r for r in self.requests if r.url.host == "login.microsoftonline.com"]


@pytest.mark.asyncio
async def test_graph_list_busy_parses_events_and_caches_token():
    stub = GraphStub([
        {"subject": "Sesión", "showAs": "busy",
         "start": {"dateTime": "2025-03-14T12:00:00.0000000"}, "end": {"dateTime": "2025-03-14T13:30:00.0000000"}},
        {"subject": "Libre", "showAs": "free",
         "start": {"dateTime": "2025-03-14T15:00:00.0000000"}, "end": {"dateTime": "2025-03-14T16:00:00.0000000"}},
    ])
    client = GraphCalendarClient(_calendar_settings(), transport=httpx.MockTransport(stub))
    try:
        busy = await client.list_busy(DAY)
        await client.list_busy(DAY)
    finally:
        await client.aclose()

    assert busy == [BusyInterval(start=datetime(2025, 3, 14, 12), end=datetime(2025, 3, 14, 13, 30))]
    assert len(stub.token_requests()) == 1
    token_form = stub.token_requests()[0].content.decode()
    assert "grant_type=client_credentials" in token_form

    view = [r for r in stub.requests if r.url.path.endswith("/calendarView")][0]
    assert view.url.path == "/v1.0/users/studio@example.com/calendar/calendarView"
    assert view.headers["Authorization"] == "Bearer graph-token"
    assert view.headers["Prefer"] == 'outlook.timezone="America/Santiago"'
    assert view.url.params["startDateTime"].startswith("2025-03-14T00:00:00")


@pytest.mark.asyncio
async def test_graph_create_event_payload():
    stub = GraphStub()
    client = GraphCalendarClient(_calendar_settings(), transport=httpx.MockTransport(stub))
    service = SchedulingService(client, _calendar_settings())
    try:
        result = await service.create_appointment(_appointment())
    finally:
        await client.aclose()

    assert result.event_id == "AAMk-event"
    created = [r for r in stub.requests if r.url.path.endswith("/calendar/events")][0]
    payload = json.loads(created.content)
    assert payload["start"] == {"dateTime": "2025-03-14T14:00:00", "timeZone": "America/Santiago"}
    assert payload["attendees"][0]["emailAddress"]["address"] == "ana@example.com"
    assert payload["body"]["contentType"] == "HTML"


@pytest.mark.asyncio
async def test_graph_errors_become_upstream_errors():
    stub = GraphStub(event_status=403)
    client = GraphCalendarClient(_calendar_settings(), transport=httpx.MockTransport(stub))
    try:
        with pytest.raises(UpstreamServiceException) as exc_info:
            await client.create_event(_appointment_event())
    finally:
        await client.aclose()
    assert exc_info.value.details == {"service": "microsoft_graph", "status_code": 403}


def _appointment_event():
    from application.ports.calendar import CalendarEvent

    return CalendarEvent(
        subject="Cita de tatuaje - Ana",
        html_body="<p>hola</p>",
        start=datetime(2025, 3, 14, 10),
        end=datetime(2025, 3, 14, 12),
        attendee_email="ana@example.com",
        attendee_name="Ana",
    )
