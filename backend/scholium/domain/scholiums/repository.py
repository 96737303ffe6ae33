"""Scholium persistence: asyncpg when a pool is available, in-process store otherwise."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import asyncpg

from scholium.domain.common.errors import NotFound
from scholium.domain.scholiums import models, policy
from scholium.infra.postgres import get_pool

SlotMutation = Callable[[Optional[List[dict]]], Optional[List[dict]]]


def _now() -> datetime:
	return datetime.now(timezone.utc)


def _member_order(member: models.ScholiumMember) -> tuple:
	return (not member.is_host, not member.is_cohost, member.joined_at)


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.scholiums: Dict[str, models.Scholium] = {}
		self.members: Dict[str, Dict[str, models.ScholiumMember]] = {}

	def _snapshot(self, scholium: models.Scholium) -> models.Scholium:
		return replace(
			scholium,
			time_slots=[dict(slot) for slot in scholium.time_slots] if scholium.time_slots is not None else None,
			members_count=len(self.members.get(scholium.id, {})),
		)

	async def create(self, scholium: models.Scholium, host: models.ScholiumMember) -> None:
		async with self._lock:
			self.scholiums[scholium.id] = scholium
			self.members[scholium.id] = {host.user_id: host}

	async def get(self, scholium_id: str) -> Optional[models.Scholium]:
		async with self._lock:
			scholium = self.scholiums.get(scholium_id)
			return self._snapshot(scholium) if scholium else None

	async def find_by_digest(self, digest: str) -> Optional[models.Scholium]:
		async with self._lock:
			for scholium in self.scholiums.values():
				if scholium.access_id_digest == digest:
					return self._snapshot(scholium)
			return None

	async def list_for_user(self, user_id: str) -> List[models.Scholium]:
		async with self._lock:
			result = [
				self._snapshot(scholium)
				for scholium in self.scholiums.values()
				if user_id in self.members.get(scholium.id, {})
			]
		result.sort(key=lambda item: item.updated_at, reverse=True)
		return result

	async def get_member(self, scholium_id: str, user_id: str) -> Optional[models.ScholiumMember]:
		async with self._lock:
			member = self.members.get(scholium_id, {}).get(user_id)
			return replace(member) if member else None

	async def get_member_by_id(self, member_id: str) -> Optional[models.ScholiumMember]:
		async with self._lock:
			for members in self.members.values():
				for member in members.values():
					if member.id == member_id:
						return replace(member)
			return None

	async def list_members(self, scholium_id: str) -> List[models.ScholiumMember]:
		async with self._lock:
			members = [replace(member) for member in self.members.get(scholium_id, {}).values()]
		members.sort(key=_member_order)
		return members

	async def add_member(self, member: models.ScholiumMember) -> bool:
		async with self._lock:
			if member.scholium_id not in self.scholiums:
				raise NotFound("scholium_not_found")
			members = self.members.setdefault(member.scholium_id, {})
			if member.user_id in members:
				return False
			members[member.user_id] = member
			return True

	async def update_member(self, member: models.ScholiumMember) -> bool:
		async with self._lock:
			members = self.members.get(member.scholium_id, {})
			if member.user_id not in members:
				return False
			stored = members[member.user_id]
			members[member.user_id] = replace(
				stored,
				is_cohost=member.is_cohost,
				can_add_homework=member.can_add_homework,
				can_create_subject=member.can_create_subject,
			)
			return True

	async def remove_member(self, scholium_id: str, user_id: str) -> bool:
		async with self._lock:
			return self.members.get(scholium_id, {}).pop(user_id, None) is not None

	async def transfer_host(self, scholium_id: str, old_user_id: str, new_user_id: str) -> None:
		async with self._lock:
			members = self.members.get(scholium_id, {})
			old, new = members.get(old_user_id), members.get(new_user_id)
			if old is None or new is None:
				raise NotFound("member_not_found")
			members[old_user_id] = replace(old, is_host=False, is_cohost=False)
			members[new_user_id] = replace(
				new, is_host=True, is_cohost=False, can_add_homework=True, can_create_subject=True
			)
			scholium = self.scholiums[scholium_id]
			scholium.host_user_id = new_user_id
			scholium.updated_at = _now()

	async def update_access_id(self, scholium_id: str, encrypted: str, digest: str) -> bool:
		async with self._lock:
			scholium = self.scholiums.get(scholium_id)
			if scholium is None:
				return False
			scholium.encrypted_access_id = encrypted
			scholium.access_id_digest = digest
			scholium.updated_at = _now()
			return True

	async def delete(self, scholium_id: str) -> bool:
		async with self._lock:
			self.members.pop(scholium_id, None)
			return self.scholiums.pop(scholium_id, None) is not None

	async def update_time_slots(
		self, scholium_id: str, mutate: SlotMutation, acting_user_id: Optional[str] = None
	) -> Optional[List[dict]]:
		async with self._lock:
			scholium = self.scholiums.get(scholium_id)
			if scholium is None:
				raise NotFound("scholium_not_found")
			if acting_user_id is not None:
				member = self.members.get(scholium_id, {}).get(acting_user_id)
				policy.ensure_host(models.RoleCapability.for_member(member))
			current = [dict(slot) for slot in scholium.time_slots] if scholium.time_slots is not None else None
			updated = mutate(current)
			if updated is None:
				return current
			scholium.time_slots = [dict(slot) for slot in updated]
			scholium.updated_at = _now()
			return [dict(slot) for slot in updated]


_MEMORY = _MemoryStore()


class ScholiumRepository:
	def __init__(self) -> None:
		self._pool_checked = False
		self._pool_instance: Optional[asyncpg.Pool] = None

	async def _get_pool(self) -> Optional[asyncpg.Pool]:
		if self._pool_checked:
			return self._pool_instance
		self._pool_checked = True
		try:
			pool = await get_pool()
		except Exception:
			pool = None
		self._pool_instance = pool
		return pool

	async def create_scholium(self, scholium: models.Scholium, host: models.ScholiumMember) -> models.Scholium:
		pool = await self._get_pool()
		if pool is None:
			await _MEMORY.create(scholium, host)
			scholium.members_count = 1
			return scholium
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute(
					"""
					INSERT INTO scholiums (id, name, host_user_id, encrypted_access_id, access_id_digest, time_slots, created_at, updated_at)
					VALUES ($1,$2,$3,$4,$5,$6::jsonb,$7,$7)
					""",
					scholium.id,
					scholium.name,
					scholium.host_user_id,
					scholium.encrypted_access_id,
					scholium.access_id_digest,
					json.dumps(scholium.time_slots) if scholium.time_slots is not None else None,
					scholium.created_at,
				)
				await conn.execute(
					"""
					INSERT INTO scholium_members (id, scholium_id, user_id, is_host, is_cohost, can_add_homework, can_create_subject, joined_at)
					VALUES ($1,$2,$3,TRUE,FALSE,TRUE,TRUE,$4)
					""",
					host.id,
					scholium.id,
					host.user_id,
					host.joined_at,
				)
		scholium.members_count = 1
		return scholium

	async def get_scholium(self, scholium_id: str) -> Optional[models.Scholium]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.get(scholium_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT s.*, (SELECT COUNT(*) FROM scholium_members WHERE scholium_id = s.id) AS members_count
				FROM scholiums s
				WHERE s.id = $1
				""",
				scholium_id,
			)
			return _row_to_scholium(row) if row else None

	async def find_by_access_digest(self, digest: str) -> Optional[models.Scholium]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.find_by_digest(digest)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT s.*, (SELECT COUNT(*) FROM scholium_members WHERE scholium_id = s.id) AS members_count
				FROM scholiums s
				WHERE s.access_id_digest = $1
				""",
				digest,
			)
			return _row_to_scholium(row) if row else None

	async def list_for_user(self, user_id: str) -> List[models.Scholium]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.list_for_user(user_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT s.*, COUNT(m2.id) AS members_count
				FROM scholiums s
				JOIN scholium_members m ON m.scholium_id = s.id AND m.user_id = $1
				LEFT JOIN scholium_members m2 ON m2.scholium_id = s.id
				GROUP BY s.id
				ORDER BY s.updated_at DESC
				""",
				user_id,
			)
			return [_row_to_scholium(row) for row in rows]

	async def get_member(self, scholium_id: str, user_id: str) -> Optional[models.ScholiumMember]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.get_member(scholium_id, user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"SELECT * FROM scholium_members WHERE scholium_id=$1 AND user_id=$2",
				scholium_id,
				user_id,
			)
			return _row_to_member(row) if row else None

	async def get_member_by_id(self, member_id: str) -> Optional[models.ScholiumMember]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.get_member_by_id(member_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM scholium_members WHERE id=$1", member_id)
			return _row_to_member(row) if row else None

	async def is_member(self, scholium_id: str, user_id: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.get_member(scholium_id, user_id) is not None
		async with pool.acquire() as conn:
			found = await conn.fetchval(
				"SELECT 1 FROM scholium_members WHERE scholium_id=$1 AND user_id=$2",
				scholium_id,
				user_id,
			)
			return found is not None

	async def list_members(self, scholium_id: str) -> List[models.ScholiumMember]:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.list_members(scholium_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM scholium_members
				WHERE scholium_id=$1
				ORDER BY is_host DESC, is_cohost DESC, joined_at ASC
				""",
				scholium_id,
			)
			return [_row_to_member(row) for row in rows]

	async def add_member(self, member: models.ScholiumMember) -> bool:
		"""Insert `member`; False when the user already belongs to the scholium."""
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.add_member(member)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO scholium_members (id, scholium_id, user_id, is_host, is_cohost, can_add_homework, can_create_subject, joined_at)
				VALUES ($1,$2,$3,$4,$5,$6,$7,$8)
				ON CONFLICT (scholium_id, user_id) DO NOTHING
				RETURNING id
				""",
				member.id,
				member.scholium_id,
				member.user_id,
				member.is_host,
				member.is_cohost,
				member.can_add_homework,
				member.can_create_subject,
				member.joined_at,
			)
			return row is not None

	async def update_member(self, member: models.ScholiumMember) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.update_member(member)
		async with pool.acquire() as conn:
			status = await conn.execute(
				"""
				UPDATE scholium_members
				SET is_cohost=$3, can_add_homework=$4, can_create_subject=$5
				WHERE scholium_id=$1 AND user_id=$2
				""",
				member.scholium_id,
				member.user_id,
				member.is_cohost,
				member.can_add_homework,
				member.can_create_subject,
			)
			return not status.endswith(" 0")

	async def remove_member(self, scholium_id: str, user_id: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.remove_member(scholium_id, user_id)
		async with pool.acquire() as conn:
			status = await conn.execute(
				"DELETE FROM scholium_members WHERE scholium_id=$1 AND user_id=$2",
				scholium_id,
				user_id,
			)
			return not status.endswith(" 0")

	async def transfer_host(self, scholium_id: str, old_user_id: str, new_user_id: str) -> None:
		pool = await self._get_pool()
		if pool is None:
			await _MEMORY.transfer_host(scholium_id, old_user_id, new_user_id)
			return
		async with pool.acquire() as conn:
			async with conn.transaction():
				# Takes the scholium row lock that slot edits hold.
				await conn.execute("SELECT 1 FROM scholiums WHERE id=$1 FOR UPDATE", scholium_id)
				await conn.execute(
					"""
					UPDATE scholium_members SET is_host=FALSE, is_cohost=FALSE
					WHERE scholium_id=$1 AND user_id=$2
					""",
					scholium_id,
					old_user_id,
				)
				status = await conn.execute(
					"""
					UPDATE scholium_members
					SET is_host=TRUE, is_cohost=FALSE, can_add_homework=TRUE, can_create_subject=TRUE
					WHERE scholium_id=$1 AND user_id=$2
					""",
					scholium_id,
					new_user_id,
				)
				if status.endswith(" 0"):
					raise NotFound("member_not_found")
				await conn.execute(
					"UPDATE scholiums SET host_user_id=$2, updated_at=NOW() WHERE id=$1",
					scholium_id,
					new_user_id,
				)

	async def update_access_id(self, scholium_id: str, encrypted: str, digest: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.update_access_id(scholium_id, encrypted, digest)
		async with pool.acquire() as conn:
			status = await conn.execute(
				"""
				UPDATE scholiums
				SET encrypted_access_id=$2, access_id_digest=$3, updated_at=NOW()
				WHERE id=$1
				""",
				scholium_id,
				encrypted,
				digest,
			)
			return not status.endswith(" 0")

	async def delete_scholium(self, scholium_id: str) -> bool:
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.delete(scholium_id)
		async with pool.acquire() as conn:
			status = await conn.execute("DELETE FROM scholiums WHERE id=$1", scholium_id)
			return not status.endswith(" 0")

	async def update_time_slots(
		self, scholium_id: str, mutate: SlotMutation, *, acting_user_id: Optional[str] = None
	) -> Optional[List[dict]]:
		"""Read, mutate and write the slot list under one per-scholium lock.

		`mutate` receives the stored list (or None) and returns the list to persist,
		or None to leave the row untouched. Errors raised by `mutate` abort the write.
		When `acting_user_id` is given, that user must be host at the moment of the
		write; the check shares the lock with `transfer_host`.
		"""
		pool = await self._get_pool()
		if pool is None:
			return await _MEMORY.update_time_slots(scholium_id, mutate, acting_user_id)
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					"SELECT time_slots FROM scholiums WHERE id=$1 FOR UPDATE",
					scholium_id,
				)
				if row is None:
					raise NotFound("scholium_not_found")
				if acting_user_id is not None:
					member_row = await conn.fetchrow(
						"SELECT * FROM scholium_members WHERE scholium_id=$1 AND user_id=$2 FOR SHARE",
						scholium_id,
						acting_user_id,
					)
					member = _row_to_member(member_row) if member_row else None
					policy.ensure_host(models.RoleCapability.for_member(member))
				current = _decode_slots(row["time_slots"])
				updated = mutate(current)
				if updated is None:
					return current
				await conn.execute(
					"UPDATE scholiums SET time_slots=$2::jsonb, updated_at=NOW() WHERE id=$1",
					scholium_id,
					json.dumps(updated),
				)
				return updated


def _decode_slots(value: Any) -> Optional[List[dict]]:
	if value is None:
		return None
	if isinstance(value, str):
		try:
			value = json.loads(value)
		except ValueError:
			return None
	return value if isinstance(value, list) else None


def _row_to_scholium(row: asyncpg.Record) -> models.Scholium:
	return models.Scholium(
		id=str(row["id"]),
		name=row["name"],
		host_user_id=str(row["host_user_id"]),
		encrypted_access_id=row["encrypted_access_id"],
		access_id_digest=row["access_id_digest"],
		created_at=row["created_at"],
		updated_at=row["updated_at"],
		time_slots=_decode_slots(row["time_slots"]),
		members_count=int(row.get("members_count", 0)),
	)


def _row_to_member(row: asyncpg.Record) -> models.ScholiumMember:
	return models.ScholiumMember(
		id=str(row["id"]),
		scholium_id=str(row["scholium_id"]),
		user_id=str(row["user_id"]),
		is_host=bool(row["is_host"]),
		is_cohost=bool(row["is_cohost"]),
		can_add_homework=bool(row["can_add_homework"]),
		can_create_subject=bool(row["can_create_subject"]),
		joined_at=row["joined_at"],
	)


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:  # type: ignore[attr-defined]
		_MEMORY.scholiums.clear()
		_MEMORY.members.clear()
	# A fresh lock binds to whichever event loop runs next.
	_MEMORY._lock = asyncio.Lock()
