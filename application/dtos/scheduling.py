"""
Scheduling DTOs: available slots and appointment requests.
"""
from __future__ import annotations

import re
import datetime as dt
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class TimeSlot(BaseModel):
    start: str
    end: str
    display: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        v = v.strip()
        if not _HHMM.match(v):
            raise ValueError("time must use HH:MM")
        return v

    @model_validator(mode="after")
    def _ordered(self) -> "TimeSlot":
        if self.end <= self.start:
            raise ValueError("slot end must be after its start")
        if not self.display:
            self.display = f"{int(self.start[:2])}:{self.start[3:]} - {int(self.end[:2])}:{self.end[3:]}"
        return self


class AvailableSlots(BaseModel):
    success: bool = True
    date: dt.date
    slots: list[TimeSlot]


class AppointmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(min_length=1, max_length=50)
    date: dt.date
    time_slot: TimeSlot = Field(validation_alias=AliasChoices("timeSlot", "time_slot"))
    deposit: Optional[str] = Field(default=None, max_length=200)
    gender: Optional[str] = Field(default=None, max_length=50)
    comments: Optional[str] = Field(default=None, max_length=2000)
    photo_auth: bool = Field(default=False, validation_alias=AliasChoices("photoAuth", "photo_auth"))


class AppointmentResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    event_id: str = Field(serialization_alias="eventId")
    message: str = "Appointment created successfully"
