"""Change sources feeding a client sync session.

A source calls `on_change(event)` for each change it observes. `on_change(None)`
means "something may have changed": callers re-fetch everything and re-verify
membership. Polling ticks and stream reconnects produce it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from scholium.client.http import ScholiumApiClient
from scholium.domain.common.errors import NotFound, PermissionDenied
from scholium.domain.realtime.events import ChangeEvent, SSEFrameParser
from scholium.domain.realtime.notifier import ChangeNotifier, Unsubscribe
from scholium.settings import settings

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Optional[ChangeEvent]], Union[None, Awaitable[None]]]


async def _cancel(task: Optional[asyncio.Task]) -> None:
	if task is None:
		return
	task.cancel()
	if task is asyncio.current_task():
		# Closed from inside its own callback; cancellation lands at the next await.
		return
	try:
		await task
	except asyncio.CancelledError:
		pass


async def _deliver(callback: ChangeCallback, event: Optional[ChangeEvent]) -> None:
	result = callback(event)
	if inspect.isawaitable(result):
		await result


class ChangeSource:
	async def open(self, scholium_id: str, on_change: ChangeCallback) -> None:
		raise NotImplementedError

	async def close(self) -> None:
		raise NotImplementedError


class NotifierSource(ChangeSource):
	"""Subscribes directly to an in-process notifier."""

	def __init__(self, notifier: ChangeNotifier) -> None:
		self._notifier = notifier
		self._unsubscribe: Optional[Unsubscribe] = None

	async def open(self, scholium_id: str, on_change: ChangeCallback) -> None:
		async def forward(event: ChangeEvent) -> None:
			await _deliver(on_change, event)

		self._unsubscribe = self._notifier.subscribe(scholium_id, forward)

	async def close(self) -> None:
		if self._unsubscribe is not None:
			self._unsubscribe()
			self._unsubscribe = None


class PollingSource(ChangeSource):
	"""Fallback: a resync tick every interval, paused while the view is hidden."""

	def __init__(self, interval_ms: Optional[int] = None) -> None:
		self._interval = (interval_ms if interval_ms is not None else settings.realtime_poll_interval_ms) / 1000
		self._on_change: Optional[ChangeCallback] = None
		self._task: Optional[asyncio.Task] = None
		self._visible = asyncio.Event()
		self._visible.set()
		self._wake = asyncio.Event()

	@property
	def visible(self) -> bool:
		return self._visible.is_set()

	async def open(self, scholium_id: str, on_change: ChangeCallback) -> None:
		self._on_change = on_change
		if self._task is None:
			self._task = asyncio.create_task(self._run(), name=f"scholium-poll-{scholium_id}")

	async def set_visible(self, visible: bool) -> None:
		"""Hide pauses ticks; showing again refreshes immediately."""
		if visible == self.visible:
			return
		if not visible:
			self._visible.clear()
			return
		self._visible.set()
		self._wake.set()
		if self._on_change is not None:
			await _deliver(self._on_change, None)

	async def _run(self) -> None:
		while True:
			try:
				await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
			except asyncio.TimeoutError:
				pass
			await self._visible.wait()
			if self._wake.is_set():
				# Woken by a visibility change that already refreshed.
				self._wake.clear()
				continue
			if self._on_change is None:
				continue
			try:
				await _deliver(self._on_change, None)
			except Exception:
				logger.warning("sync.poll_callback_failed", exc_info=True)

	async def close(self) -> None:
		task, self._task = self._task, None
		self._on_change = None
		await _cancel(task)


class SSESource(ChangeSource):
	"""Reads `/realtime/events`; reconnects with backoff and degrades to polling."""

	def __init__(
		self,
		api: ScholiumApiClient,
		*,
		max_failures: int = 3,
		backoff_base: float = 1.0,
		backoff_max: float = 30.0,
		fallback: Optional[PollingSource] = None,
	) -> None:
		self._api = api
		self._max_failures = max_failures
		self._backoff_base = backoff_base
		self._backoff_max = backoff_max
		self._fallback = fallback or PollingSource()
		self._task: Optional[asyncio.Task] = None
		self.degraded = False
		self.connections = 0

	async def open(self, scholium_id: str, on_change: ChangeCallback) -> None:
		if self._task is None:
			self._task = asyncio.create_task(self._run(scholium_id, on_change), name=f"scholium-sse-{scholium_id}")

	async def _run(self, scholium_id: str, on_change: ChangeCallback) -> None:
		failures = 0
		while failures < self._max_failures:
			try:
				async with self._api.stream_events(scholium_id) as lines:
					parser = SSEFrameParser()
					async for line in lines:
						payload = parser.feed(line)
						if payload is None:
							continue
						if payload.get("type") == "connected":
							failures = 0
							self.connections += 1
							if self.connections > 1:
								# Events may have been missed while disconnected.
								await _deliver(on_change, None)
							continue
						event = ChangeEvent.from_wire(payload)
						if event is not None:
							await _deliver(on_change, event)
			except asyncio.CancelledError:
				raise
			except (PermissionDenied, NotFound):
				# The caller lost access; a resync lets the guard evict.
				await _deliver(on_change, None)
				return
			except Exception:
				logger.warning("sync.stream_failed", extra={"scholium_id": scholium_id}, exc_info=True)
			failures += 1
			if failures < self._max_failures:
				await asyncio.sleep(min(self._backoff_base * 2 ** (failures - 1), self._backoff_max))
		logger.warning("sync.stream_degraded", extra={"scholium_id": scholium_id})
		self.degraded = True
		await self._fallback.open(scholium_id, on_change)

	async def set_visible(self, visible: bool) -> None:
		if self.degraded:
			await self._fallback.set_visible(visible)

	async def close(self) -> None:
		task, self._task = self._task, None
		await _cancel(task)
		await self._fallback.close()


__all__ = ["ChangeCallback", "ChangeSource", "NotifierSource", "PollingSource", "SSESource"]
