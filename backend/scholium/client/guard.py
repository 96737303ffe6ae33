"""Membership guard for a mounted scholium view."""

from __future__ import annotations

import enum
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from scholium.domain.realtime.events import MEMBERSHIP_KINDS, ChangeEvent, ChangeKind
from scholium.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MembershipCheck = Callable[[], Awaitable[bool]]
EvictCallback = Callable[[str], Union[None, Awaitable[None]]]


class GuardState(str, enum.Enum):
	MEMBER = "member"
	EVICTED = "evicted"


class MembershipGuard:
	"""Evicts the viewer at most once when the server stops listing them as a member.

	`check` asks the server whether the viewer is still a member. Errors from
	`check` are treated as "unknown" and leave the viewer in place.
	"""

	def __init__(self, scholium_id: str, user_id: str, check: MembershipCheck, on_evict: EvictCallback) -> None:
		self.scholium_id = scholium_id
		self.user_id = user_id
		self._check = check
		self._on_evict = on_evict
		self.state = GuardState.MEMBER
		self.reason: Optional[str] = None

	@property
	def evicted(self) -> bool:
		return self.state is GuardState.EVICTED

	async def initial_check(self) -> bool:
		"""Run once on mount; returns True while the viewer is still a member."""
		await self._recheck("not_member")
		return not self.evicted

	async def handle(self, event: Optional[ChangeEvent]) -> None:
		if self.evicted:
			return
		if event is None:
			await self._recheck("not_member")
		elif event.kind is ChangeKind.DELETED:
			await self.evict("scholium_deleted")
		elif event.kind in MEMBERSHIP_KINDS:
			await self._recheck("removed")

	async def _recheck(self, reason: str) -> None:
		try:
			still_member = await self._check()
		except Exception:
			logger.warning(
				"sync.membership_check_failed",
				extra={"scholium_id": self.scholium_id, "user_id": self.user_id},
				exc_info=True,
			)
			return
		if not still_member:
			await self.evict(reason)

	async def evict(self, reason: str) -> bool:
		"""Latch into the evicted state; only the first call fires `on_evict`."""
		if self.evicted:
			return False
		self.state = GuardState.EVICTED
		self.reason = reason
		obs_metrics.inc_eviction(reason)
		logger.info(
			"sync.evicted",
			extra={"scholium_id": self.scholium_id, "user_id": self.user_id, "reason": reason},
		)
		result = self._on_evict(reason)
		if inspect.isawaitable(result):
			await result
		return True


__all__ = ["GuardState", "MembershipGuard"]
