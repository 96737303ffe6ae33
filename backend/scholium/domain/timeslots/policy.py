"""Validation rules for time slot edits."""

from __future__ import annotations

from typing import Sequence

from scholium.domain.common.errors import (
	InvalidOrdering,
	InvalidSlotCount,
	InvalidTimeFormat,
	InvalidTimeRange,
	NotFound,
	ScholiumError,
)
from scholium.domain.timeslots import models


def ensure_count(count: int) -> None:
	if count < models.MIN_SLOTS or count > models.MAX_SLOTS:
		raise InvalidSlotCount(
			"invalid_slot_count",
			message=f"time slots must be between {models.MIN_SLOTS} and {models.MAX_SLOTS}",
		)


def ensure_time(value: object) -> str:
	if not models.is_valid_time(value):
		raise InvalidTimeFormat("invalid_time_format", message=f"expected HH:MM, got {value!r}")
	return str(value)


def ensure_field(field: str) -> str:
	if field not in models.SLOT_FIELDS:
		raise ScholiumError("invalid_slot_field", status_code=422)
	return field


def ensure_index(slots: Sequence[models.TimeSlot], index: int) -> None:
	if index < 0 or index >= len(slots):
		raise NotFound("slot_not_found")


def ensure_range(slot: models.TimeSlot) -> None:
	if slot.end_minutes <= slot.start_minutes:
		raise InvalidTimeRange("end_not_after_start")


def ensure_neighbours(slots: Sequence[models.TimeSlot], index: int) -> None:
	"""Check slot `index` against its immediate neighbours only."""
	slot = slots[index]
	if index > 0 and slot.start_minutes < slots[index - 1].end_minutes:
		raise InvalidOrdering("overlaps_previous")
	if index + 1 < len(slots) and slot.end_minutes > slots[index + 1].start_minutes:
		raise InvalidOrdering("overlaps_next")


def ensure_valid_list(slots: Sequence[models.TimeSlot]) -> None:
	ensure_count(len(slots))
	for slot in slots:
		ensure_time(slot.start)
		ensure_time(slot.end)
	for slot in slots:
		ensure_range(slot)
	for index in range(1, len(slots)):
		if slots[index].start_minutes < slots[index - 1].end_minutes:
			raise InvalidOrdering("slots_not_ordered")


def ensure_can_remove(slots: Sequence[models.TimeSlot]) -> None:
	if len(slots) <= models.MIN_SLOTS:
		raise InvalidSlotCount("min_slots_reached", message=f"at least {models.MIN_SLOTS} time slots are required")


def ensure_fits_day(slot: models.TimeSlot) -> None:
	if slot.end_minutes > models.LAST_MINUTE:
		raise InvalidTimeRange("slot_past_midnight")
