"""Time slot scheduler: host-only edits of a scholium's ordered class grid."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from scholium.domain.common.errors import NotFound, PermissionDenied, SlotValidationError
from scholium.domain.realtime.events import ChangeKind
from scholium.domain.realtime.notifier import ChangeNotifier
from scholium.domain.scholiums import policy as scholium_policy
from scholium.domain.scholiums.models import RoleCapability
from scholium.domain.scholiums.repository import ScholiumRepository
from scholium.domain.timeslots import models, policy
from scholium.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

SlotCompute = Callable[[List[models.TimeSlot]], Optional[List[models.TimeSlot]]]


class TimeSlotScheduler:
	"""Validates, persists and announces time slot edits.

	Every mutation runs read-validate-write, host check included, under the
	repository's per-scholium lock; a rejected edit leaves the stored list
	untouched and publishes nothing.
	Concurrent edits by the host are last-write-wins.
	"""

	def __init__(self, notifier: ChangeNotifier, repository: ScholiumRepository | None = None) -> None:
		self._notifier = notifier
		self._repo = repository or ScholiumRepository()

	async def get_slots(self, scholium_id: str) -> List[models.TimeSlot]:
		"""Stored slots, or the default grid when none (or garbage) is stored."""
		scholium = await self._repo.get_scholium(scholium_id)
		slots = models.coerce_slots(scholium.time_slots) if scholium is not None else None
		return slots or models.default_slots()

	async def replace_slots(
		self, scholium_id: str, new_slots: Sequence[models.TimeSlot], acting_user_id: str
	) -> List[models.TimeSlot]:
		candidate = list(new_slots)

		def compute(_current: List[models.TimeSlot]) -> List[models.TimeSlot]:
			policy.ensure_valid_list(candidate)
			return candidate

		return await self._apply("replace", scholium_id, acting_user_id, compute)

	async def edit_slot(
		self, scholium_id: str, index: int, field: str, value: str, acting_user_id: str
	) -> List[models.TimeSlot]:
		def prepare() -> None:
			policy.ensure_field(field)
			policy.ensure_time(value)

		def compute(current: List[models.TimeSlot]) -> List[models.TimeSlot]:
			policy.ensure_index(current, index)
			updated = list(current)
			updated[index] = current[index].with_field(field, value)
			policy.ensure_range(updated[index])
			policy.ensure_neighbours(updated, index)
			return updated

		return await self._apply("edit", scholium_id, acting_user_id, compute, prepare=prepare)

	async def add_slot(self, scholium_id: str, acting_user_id: str) -> List[models.TimeSlot]:
		def compute(current: List[models.TimeSlot]) -> Optional[List[models.TimeSlot]]:
			if len(current) >= models.MAX_SLOTS:
				return None
			appended = models.next_slot(current)
			policy.ensure_fits_day(appended)
			return [*current, appended]

		return await self._apply("add", scholium_id, acting_user_id, compute)

	async def remove_slot(self, scholium_id: str, index: int, acting_user_id: str) -> List[models.TimeSlot]:
		def compute(current: List[models.TimeSlot]) -> List[models.TimeSlot]:
			policy.ensure_can_remove(current)
			policy.ensure_index(current, index)
			return [slot for position, slot in enumerate(current) if position != index]

		return await self._apply("remove", scholium_id, acting_user_id, compute)

	async def _apply(
		self,
		op: str,
		scholium_id: str,
		acting_user_id: str,
		compute: SlotCompute,
		*,
		prepare: Optional[Callable[[], None]] = None,
	) -> List[models.TimeSlot]:
		changed = False

		def mutate(raw: Optional[List[dict]]) -> Optional[List[dict]]:
			nonlocal changed
			current = models.coerce_slots(raw) or models.default_slots()
			updated = compute(current)
			if updated is None:
				return None
			changed = True
			return models.serialise(updated)

		try:
			await self._ensure_host(scholium_id, acting_user_id)
			if prepare is not None:
				prepare()
			stored = await self._repo.update_time_slots(scholium_id, mutate, acting_user_id=acting_user_id)
		except PermissionDenied:
			obs_metrics.inc_timeslot(op, "denied")
			raise
		except SlotValidationError as exc:
			obs_metrics.inc_timeslot(op, "rejected")
			logger.info("timeslots.rejected", extra={"scholium_id": scholium_id, "op": op, "code": exc.code})
			raise
		except NotFound:
			obs_metrics.inc_timeslot(op, "not_found")
			raise

		slots = models.coerce_slots(stored) or models.default_slots()
		if not changed:
			obs_metrics.inc_timeslot(op, "noop")
			return slots
		obs_metrics.inc_timeslot(op, "ok")
		logger.info("timeslots.updated", extra={"scholium_id": scholium_id, "op": op, "count": len(slots)})
		await self._notifier.publish(scholium_id, ChangeKind.TIMESLOTS)
		return slots

	async def _ensure_host(self, scholium_id: str, user_id: str) -> None:
		member = await self._repo.get_member(scholium_id, user_id)
		scholium_policy.ensure_host(RoleCapability.for_member(member))
