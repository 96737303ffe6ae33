"""View-side editors that write through `optimistic_update`."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from scholium.client.http import ScholiumApiClient
from scholium.client.optimistic import OptimisticResult, optimistic_update
from scholium.domain.common.errors import ScholiumError
from scholium.domain.timeslots import models, policy
from scholium.domain.timeslots.models import TimeSlot

logger = logging.getLogger(__name__)

PERMISSION_FIELDS = ("can_add_homework", "can_create_subject")


class TimeSlotDraftEditor:
	"""Local copy of a scholium's slots; rejected edits never reach the server."""

	def __init__(self, api: ScholiumApiClient, scholium_id: str) -> None:
		self._api = api
		self.scholium_id = scholium_id
		self.slots: List[TimeSlot] = []
		self.last_error: Optional[str] = None

	async def load(self) -> List[TimeSlot]:
		self.slots = await self._api.get_slots(self.scholium_id)
		return self.slots

	def _rejected(self, exc: ScholiumError) -> OptimisticResult[List[TimeSlot]]:
		self.last_error = exc.message
		return OptimisticResult(ok=False, error=exc.code, message=exc.message)

	async def _write(
		self, draft: List[TimeSlot], commit: Callable
	) -> OptimisticResult[List[TimeSlot]]:
		previous = list(self.slots)

		def apply() -> None:
			self.slots = draft

		def revert() -> None:
			self.slots = previous

		def reconcile(server_slots: List[TimeSlot]) -> None:
			self.slots = list(server_slots)

		result = await optimistic_update(apply, commit, revert, reconcile)
		self.last_error = None if result.ok else result.message
		return result

	async def edit(self, index: int, field: str, value: str) -> OptimisticResult[List[TimeSlot]]:
		try:
			policy.ensure_field(field)
			policy.ensure_index(self.slots, index)
			policy.ensure_time(value)
			draft = list(self.slots)
			draft[index] = draft[index].with_field(field, value)
			policy.ensure_range(draft[index])
			policy.ensure_neighbours(draft, index)
		except ScholiumError as exc:
			return self._rejected(exc)
		return await self._write(draft, lambda: self._api.edit_slot(self.scholium_id, index, field, value))

	async def add(self) -> OptimisticResult[List[TimeSlot]]:
		if len(self.slots) >= models.MAX_SLOTS:
			return OptimisticResult(ok=True, value=list(self.slots))
		slot = models.next_slot(self.slots)
		try:
			policy.ensure_fits_day(slot)
		except ScholiumError as exc:
			return self._rejected(exc)
		return await self._write([*self.slots, slot], lambda: self._api.add_slot(self.scholium_id))

	async def remove(self, index: int) -> OptimisticResult[List[TimeSlot]]:
		try:
			policy.ensure_can_remove(self.slots)
			policy.ensure_index(self.slots, index)
		except ScholiumError as exc:
			return self._rejected(exc)
		draft = [slot for position, slot in enumerate(self.slots) if position != index]
		return await self._write(draft, lambda: self._api.remove_slot(self.scholium_id, index))


class PermissionsEditor:
	"""Member list with optimistic permission toggles."""

	def __init__(self, api: ScholiumApiClient, scholium_id: str) -> None:
		self._api = api
		self.scholium_id = scholium_id
		self.members: Dict[str, dict] = {}
		self.last_error: Optional[str] = None

	async def load(self) -> Dict[str, dict]:
		items = await self._api.list_members(self.scholium_id)
		self.members = {item["id"]: dict(item) for item in items}
		return self.members

	async def toggle(self, member_id: str, field: str) -> OptimisticResult[dict]:
		if field not in PERMISSION_FIELDS:
			raise ValueError(f"unknown permission: {field}")
		member = self.members.get(member_id)
		if member is None:
			self.last_error = "member_not_found"
			return OptimisticResult(ok=False, error="member_not_found", message="member_not_found")
		previous = dict(member)
		updated = dict(member, **{field: not member.get(field, False)})

		def apply() -> None:
			self.members[member_id] = updated

		def revert() -> None:
			self.members[member_id] = previous

		def reconcile(server_member: dict) -> None:
			self.members[member_id] = dict(server_member)

		async def commit() -> dict:
			return await self._api.update_permissions(
				self.scholium_id,
				member_id,
				can_add_homework=bool(updated.get("can_add_homework")),
				can_create_subject=bool(updated.get("can_create_subject")),
			)

		result = await optimistic_update(apply, commit, revert, reconcile)
		self.last_error = None if result.ok else result.message
		return result


__all__ = ["PERMISSION_FIELDS", "PermissionsEditor", "TimeSlotDraftEditor"]
