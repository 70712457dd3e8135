"""
Appointment scheduling against the studio calendar.

Slots are fixed-length windows inside the working day; a slot is offered
only when it does not overlap any busy calendar interval.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable

from application.dtos.scheduling import AppointmentRequest, AppointmentResult, TimeSlot
from application.ports.calendar import BusyInterval, CalendarEvent, CalendarPort
from application.services import email_templates
from core.config import CalendarSettings
from core.logging_config import get_logger
from domain.common.exceptions import SlotUnavailableException


logger = get_logger(__name__)


def _overlaps(start: datetime, end: datetime, busy: BusyInterval) -> bool:
    return start < busy.end and busy.start < end


def compute_slots(
    day: date,
    busy: Iterable[BusyInterval],
    *,
    work_start_hour: int,
    work_end_hour: int,
    slot_hours: int,
) -> list[TimeSlot]:
    """按整点起始生成候选时段，剔除与忙碌区间重叠的时段"""
    busy = list(busy)
    slots: list[TimeSlot] = []
    for hour in range(work_start_hour, work_end_hour - slot_hours + 1):
        start = datetime.combine(day, time(hour))
        end = start + timedelta(hours=slot_hours)
        if any(_overlaps(start, end, b) for b in busy):
            continue
        slots.append(TimeSlot(
            start=f"{hour:02d}:00",
            end=f"{hour + slot_hours:02d}:00",
            display=f"{hour}:00 - {hour + slot_hours}:00",
        ))
    return slots


class SchedulingService:
    def __init__(self, calendar: CalendarPort, config: CalendarSettings) -> None:
        self._calendar = calendar
        self._config = config

    async def available_slots(self, day: date) -> list[TimeSlot]:
        busy = await self._calendar.list_busy(day)
        slots = compute_slots(
            day,
            busy,
            work_start_hour=self._config.work_start_hour,
            work_end_hour=self._config.work_end_hour,
            slot_hours=self._config.slot_hours,
        )
        logger.info("slots_computed", day=day.isoformat(), busy=len(busy), available=len(slots))
        return slots

    async def create_appointment(self, req: AppointmentRequest) -> AppointmentResult:
        start = datetime.combine(req.date, time.fromisoformat(req.time_slot.start))
        end = datetime.combine(req.date, time.fromisoformat(req.time_slot.end))

        # 提交前再次确认时段空闲
        busy = await self._calendar.list_busy(req.date)
        if any(_overlaps(start, end, b) for b in busy):
            logger.info("appointment_slot_taken", day=req.date.isoformat(), start=req.time_slot.start)
            raise SlotUnavailableException(req.date.isoformat(), req.time_slot.start)

        body = email_templates.appointment_body([
            ("Cliente", req.name),
            ("Email", req.email),
            ("Teléfono", req.phone),
            ("Abono seleccionado", req.deposit),
            ("Género", req.gender),
            ("Comentarios", req.comments or "Ninguno"),
            ("Autorización de fotos", "Sí" if req.photo_auth else "No"),
            ("Fecha", req.date.isoformat()),
            ("Horario", req.time_slot.display),
        ])
        event_id = await self._calendar.create_event(CalendarEvent(
            subject=f"Cita de tatuaje - {req.name}",
            html_body=body,
            start=start,
            end=end,
            attendee_email=str(req.email),
            attendee_name=req.name,
        ))
        logger.info("appointment_created", event_id=event_id, day=req.date.isoformat(), start=req.time_slot.start)
        return AppointmentResult(event_id=event_id)
