"""Time slot domain exports."""

from .models import DEFAULT_SLOTS, TimeSlot
from .service import TimeSlotScheduler

__all__ = ["DEFAULT_SLOTS", "TimeSlot", "TimeSlotScheduler"]
