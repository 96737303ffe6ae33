"""Time slot values and list arithmetic for a scholium's class grid."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence

MIN_SLOTS = 4
MAX_SLOTS = 10

BREAK_MINUTES = 15
LESSON_MINUTES = 45
FIRST_START = "07:00"
FIRST_END = "07:45"

LAST_MINUTE = 23 * 60 + 59

SLOT_FIELDS = ("start", "end")

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def is_valid_time(value: Any) -> bool:
    return isinstance(value, str) and bool(_TIME_RE.match(value))


def to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def from_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


@dataclass(frozen=True, slots=True)
class TimeSlot:
    start: str
    end: str

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end)

    def with_field(self, field: str, value: str) -> "TimeSlot":
        if field == "start":
            return TimeSlot(start=value, end=self.end)
        return TimeSlot(start=self.start, end=value)

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


DEFAULT_SLOTS: tuple[TimeSlot, ...] = (
    TimeSlot("07:00", "08:30"),
    TimeSlot("08:45", "10:15"),
    TimeSlot("10:30", "12:00"),
    TimeSlot("13:00", "14:30"),
    TimeSlot("14:45", "16:15"),
    TimeSlot("16:30", "18:00"),
)


def default_slots() -> List[TimeSlot]:
    return list(DEFAULT_SLOTS)


def coerce_slots(raw: Any) -> Optional[List[TimeSlot]]:
    """Read a stored slot list; None when it is missing, empty or not well formed."""
    if not isinstance(raw, (list, tuple)) or not raw:
        return None
    slots: List[TimeSlot] = []
    for item in raw:
        if isinstance(item, TimeSlot):
            slots.append(item)
            continue
        if not isinstance(item, dict):
            return None
        start, end = item.get("start"), item.get("end")
        if not (is_valid_time(start) and is_valid_time(end)):
            return None
        slots.append(TimeSlot(start=start, end=end))
    return slots


def next_slot(slots: Sequence[TimeSlot]) -> TimeSlot:
    """The slot appended after `slots`: a short break, then one lesson."""
    if not slots:
        return TimeSlot(FIRST_START, FIRST_END)
    start = slots[-1].end_minutes + BREAK_MINUTES
    return TimeSlot(from_minutes(start), from_minutes(start + LESSON_MINUTES))


def serialise(slots: Iterable[TimeSlot]) -> List[dict]:
    return [slot.to_dict() for slot in slots]
