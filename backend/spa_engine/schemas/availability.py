"""Availability response schemas."""
from datetime import date
from typing import List

from pydantic import Field

from .base import StandardizedModel


class AvailableSlotsResponse(StandardizedModel):
    branch_service_id: str
    date: date
    slots: List[str] = Field(default_factory=list, description="Local start times, HH:MM")
    is_fully_booked: bool
    service_duration: int = Field(description="Appointment length in minutes")
