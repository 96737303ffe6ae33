"""Pydantic schemas for the time slots API."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class TimeSlotPayload(BaseModel):
    # HH:MM, checked by the scheduler.
    start: str
    end: str


class TimeSlotsResponse(BaseModel):
    scholium_id: str
    items: List[TimeSlotPayload]


class ReplaceSlotsRequest(BaseModel):
    items: List[TimeSlotPayload]


class EditSlotRequest(BaseModel):
    field: str = Field(..., pattern="^(start|end)$")
    value: str
