import pytest

from scholium.domain.common.errors import InvalidOrdering, InvalidSlotCount, InvalidTimeFormat, InvalidTimeRange
from scholium.domain.timeslots import models, policy
from scholium.domain.timeslots.models import TimeSlot


@pytest.mark.parametrize("value", ["00:00", "07:05", "19:59", "23:59"])
def test_valid_times(value):
	assert models.is_valid_time(value)


@pytest.mark.parametrize("value", ["24:00", "7:00", "07:60", "0700", "07:00:00", "", None, 700])
def test_invalid_times(value):
	assert not models.is_valid_time(value)


def test_default_grid_has_six_ordered_slots():
	slots = models.default_slots()
	assert len(slots) == 6
	assert slots[0] == TimeSlot("07:00", "08:30")
	assert slots[-1] == TimeSlot("16:30", "18:00")
	policy.ensure_valid_list(slots)


def test_default_slots_returns_fresh_list():
	first = models.default_slots()
	first.pop()
	assert len(models.default_slots()) == 6


def test_next_slot_on_empty_list():
	assert models.next_slot([]) == TimeSlot("07:00", "07:45")


def test_next_slot_follows_last_end_with_break():
	slots = [TimeSlot("08:00", "08:45"), TimeSlot("09:00", "09:45")]
	assert models.next_slot(slots) == TimeSlot("10:00", "10:45")


@pytest.mark.parametrize(
	"raw",
	[None, [], "07:00-08:00", [{"start": "07:00"}], [{"start": "7", "end": "08:00"}], ["07:00"]],
)
def test_coerce_slots_rejects_malformed(raw):
	assert models.coerce_slots(raw) is None


def test_coerce_slots_reads_stored_dicts():
	raw = [{"start": "07:00", "end": "07:45"}]
	assert models.coerce_slots(raw) == [TimeSlot("07:00", "07:45")]


def test_ensure_count_bounds():
	policy.ensure_count(4)
	policy.ensure_count(10)
	with pytest.raises(InvalidSlotCount):
		policy.ensure_count(3)
	with pytest.raises(InvalidSlotCount):
		policy.ensure_count(11)


def test_ensure_neighbours_checks_only_adjacent_slots():
	slots = [TimeSlot("07:00", "08:00"), TimeSlot("07:30", "08:30"), TimeSlot("09:00", "10:00")]
	with pytest.raises(InvalidOrdering) as exc:
		policy.ensure_neighbours(slots, 1)
	assert exc.value.code == "overlaps_previous"
	# Slot 2 is fine against its own neighbour even though slot 1 overlaps slot 0.
	policy.ensure_neighbours(slots, 2)


def test_ensure_neighbours_next_overlap():
	slots = [TimeSlot("07:00", "09:30"), TimeSlot("09:00", "10:00")]
	with pytest.raises(InvalidOrdering) as exc:
		policy.ensure_neighbours(slots, 0)
	assert exc.value.code == "overlaps_next"


def test_touching_slots_are_allowed():
	policy.ensure_neighbours([TimeSlot("07:00", "08:00"), TimeSlot("08:00", "09:00")], 1)


def test_ensure_valid_list_reports_format_before_range():
	slots = [TimeSlot("07:00", "bad")] + [TimeSlot("09:00", "08:00")] * 3
	with pytest.raises(InvalidTimeFormat):
		policy.ensure_valid_list(slots)


def test_ensure_valid_list_rejects_unsorted():
	slots = [
		TimeSlot("09:00", "09:45"),
		TimeSlot("07:00", "07:45"),
		TimeSlot("10:00", "10:45"),
		TimeSlot("11:00", "11:45"),
	]
	with pytest.raises(InvalidOrdering):
		policy.ensure_valid_list(slots)


def test_ensure_range_rejects_zero_length():
	with pytest.raises(InvalidTimeRange):
		policy.ensure_range(TimeSlot("08:00", "08:00"))
