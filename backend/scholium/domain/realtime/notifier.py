"""Change notifier: per-scholium subscriber registry plus transport hooks.

Every transport shares the same local fan-out. A transport only decides how a
published event travels before it reaches `dispatch` in each process.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import threading
from typing import Awaitable, Callable, Dict, Optional, Set, Union

from scholium.domain.common.errors import TransportFailure
from scholium.domain.realtime.events import ChangeEvent, ChangeKind, coerce_kind
from scholium.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class _Subscription:
	__slots__ = ("token", "scholium_id", "handler", "active")

	def __init__(self, token: int, scholium_id: str, handler: ChangeHandler) -> None:
		self.token = token
		self.scholium_id = scholium_id
		self.handler = handler
		self.active = True


class ChangeNotifier:
	"""Base notifier; subclasses implement `_send` for their transport."""

	transport = "base"

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._subscribers: Dict[str, Dict[int, _Subscription]] = {}
		self._tokens = itertools.count(1)
		self._pending: Set[asyncio.Future] = set()
		self.healthy = True

	def subscribe(self, scholium_id: str, handler: ChangeHandler) -> Unsubscribe:
		"""Register `handler` for events of `scholium_id` and return an idempotent unsubscribe.

		Sync handlers run inline during dispatch and must only hand the event off
		(queue it, set a flag). Anything that awaits I/O belongs in an async
		handler, which is scheduled as a task and never awaited by `publish`.
		"""
		key = str(scholium_id)
		subscription = _Subscription(next(self._tokens), key, handler)
		with self._lock:
			self._subscribers.setdefault(key, {})[subscription.token] = subscription
			total = self._count_locked()
		obs_metrics.realtime_subscribers(total)

		def unsubscribe() -> None:
			if not subscription.active:
				return
			subscription.active = False
			with self._lock:
				bucket = self._subscribers.get(key)
				if bucket is not None:
					bucket.pop(subscription.token, None)
					if not bucket:
						self._subscribers.pop(key, None)
				remaining = self._count_locked()
			obs_metrics.realtime_subscribers(remaining)

		return unsubscribe

	async def publish(self, scholium_id: str, kind: ChangeKind | str) -> None:
		"""Signal every subscriber of `scholium_id`. Failures are logged, never raised."""
		resolved = coerce_kind(kind)
		if resolved is None:
			logger.warning("realtime.publish_unknown_kind", extra={"kind": str(kind)})
			return
		event = ChangeEvent.create(scholium_id, resolved)
		try:
			await self._send(event)
		except TransportFailure as exc:
			obs_metrics.realtime_failure(self.transport, "publish")
			logger.warning(
				"realtime.publish_degraded",
				extra={"transport": self.transport, "scholium_id": event.scholium_id, "reason": exc.code},
				exc_info=True,
			)
			# Same-process subscribers still see the committed change.
			self.dispatch(event)
			return
		except Exception:
			obs_metrics.realtime_failure(self.transport, "publish")
			logger.warning(
				"realtime.publish_failed",
				extra={"transport": self.transport, "scholium_id": event.scholium_id, "kind": resolved.value},
				exc_info=True,
			)
			return
		obs_metrics.realtime_published(self.transport, resolved.value)

	async def _send(self, event: ChangeEvent) -> None:
		raise NotImplementedError

	def dispatch(self, event: ChangeEvent) -> int:
		"""Hand `event` to local subscribers; async handlers are scheduled, not awaited."""
		with self._lock:
			targets = list(self._subscribers.get(event.scholium_id, {}).values())
		delivered = 0
		for subscription in targets:
			if not subscription.active:
				continue
			try:
				result = subscription.handler(event)
			except Exception:
				logger.exception(
					"realtime.handler_failed",
					extra={"scholium_id": event.scholium_id, "kind": event.kind.value},
				)
				continue
			delivered += 1
			if inspect.isawaitable(result):
				future = asyncio.ensure_future(result)
				self._pending.add(future)
				future.add_done_callback(self._handler_done)
		obs_metrics.realtime_delivered(event.kind.value, delivered)
		return delivered

	def resync_all(self) -> int:
		"""Dispatch a `member` change to every locally watched scholium.

		Transports call this after re-attaching, so sessions re-fetch whatever was
		published while they were deaf.
		"""
		with self._lock:
			scholium_ids = list(self._subscribers)
		for scholium_id in scholium_ids:
			self.dispatch(ChangeEvent.create(scholium_id, ChangeKind.MEMBER))
		if scholium_ids:
			logger.info("realtime.resync", extra={"transport": self.transport, "scholiums": len(scholium_ids)})
		return len(scholium_ids)

	def _handler_done(self, future: asyncio.Future) -> None:
		self._pending.discard(future)
		if future.cancelled():
			return
		exc = future.exception()
		if exc is not None:
			logger.error("realtime.handler_failed", exc_info=(type(exc), exc, exc.__traceback__))

	async def drain(self) -> None:
		"""Wait for scheduled async handlers to finish."""
		while self._pending:
			await asyncio.gather(*list(self._pending), return_exceptions=True)

	def subscriber_count(self, scholium_id: Optional[str] = None) -> int:
		with self._lock:
			if scholium_id is None:
				return self._count_locked()
			return len(self._subscribers.get(str(scholium_id), {}))

	def _count_locked(self) -> int:
		return sum(len(bucket) for bucket in self._subscribers.values())

	async def start(self) -> None:
		return None

	async def stop(self) -> None:
		pending = list(self._pending)
		for future in pending:
			future.cancel()
		if pending:
			await asyncio.gather(*pending, return_exceptions=True)
		self._pending.clear()


class InMemoryNotifier(ChangeNotifier):
	"""Process-local broadcast bus; correct for a single worker process."""

	transport = "memory"

	async def _send(self, event: ChangeEvent) -> None:
		self.dispatch(event)


__all__ = ["ChangeHandler", "ChangeNotifier", "InMemoryNotifier", "Unsubscribe"]
