"""Client sync session: one mounted view of one scholium."""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from scholium.client.guard import MembershipCheck, MembershipGuard
from scholium.client.sources import ChangeSource
from scholium.domain.realtime.events import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[Optional[ChangeEvent]], Union[None, Awaitable[None]]]
RedirectCallback = Callable[[str], Union[None, Awaitable[None]]]


async def _call(callback, *args) -> None:
	result = callback(*args)
	if inspect.isawaitable(result):
		await result


class ClientSyncSession:
	"""Mounts a change source for one scholium and routes events.

	Each session owns its source subscription and its guard, so two sessions
	on the same scholium (two tabs) evict independently.
	"""

	def __init__(
		self,
		scholium_id: str,
		user_id: str,
		*,
		source: ChangeSource,
		check: MembershipCheck,
		refresh: RefreshCallback,
		redirect: RedirectCallback,
	) -> None:
		self.scholium_id = scholium_id
		self.user_id = user_id
		self._source = source
		self._refresh = refresh
		self._redirect = redirect
		self.guard = MembershipGuard(scholium_id, user_id, check, self._on_evict)
		self.mounted = False
		self.refreshes = 0

	async def mount(self) -> None:
		if self.mounted:
			return
		self.mounted = True
		await self._source.open(self.scholium_id, self._on_change)
		await self.guard.initial_check()

	async def unmount(self) -> None:
		if not self.mounted:
			return
		self.mounted = False
		await self._source.close()

	async def _on_change(self, event: Optional[ChangeEvent]) -> None:
		if not self.mounted or self.guard.evicted:
			return
		if event is not None and event.scholium_id != self.scholium_id:
			return
		await self.guard.handle(event)
		if self.guard.evicted or (event is not None and event.kind is ChangeKind.DELETED):
			return
		self.refreshes += 1
		try:
			await _call(self._refresh, event)
		except Exception:
			logger.warning("sync.refresh_failed", extra={"scholium_id": self.scholium_id}, exc_info=True)

	async def _on_evict(self, reason: str) -> None:
		await _call(self._redirect, reason)
		await self.unmount()


__all__ = ["ClientSyncSession"]
