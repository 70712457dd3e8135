"""
Appointment scheduling routes (mounted only when the calendar is configured).
"""
from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_scheduling_service
from application.dtos.scheduling import AppointmentRequest, AvailableSlots
from application.services.scheduling_service import SchedulingService


router = APIRouter(tags=["Scheduling"])


@router.get("/available-slots", summary="Free appointment slots for a day")
async def available_slots(
    date: dt.date = Query(..., description="Day to check, YYYY-MM-DD"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    slots = await service.available_slots(date)
    return AvailableSlots(date=date, slots=slots).model_dump(mode="json")


@router.post("/create-appointment", summary="Book an appointment in the studio calendar")
async def create_appointment(
    payload: AppointmentRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    result = await service.create_appointment(payload)
    return result.model_dump(by_alias=True)
