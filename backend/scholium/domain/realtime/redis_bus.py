"""Redis pub/sub transport so every worker process sees every change."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from scholium.domain.common.errors import TransportFailure
from scholium.domain.realtime.events import ChangeEvent
from scholium.domain.realtime.notifier import ChangeNotifier
from scholium.infra.redis import redis_client
from scholium.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_RETRY_BASE_SECONDS = 0.5
_RETRY_MAX_SECONDS = 15.0


class RedisNotifier(ChangeNotifier):
	"""Publishes to `{prefix}:{scholium_id}:changes` and relays the pattern locally."""

	transport = "redis"

	def __init__(self, *, prefix: str = "scholium", redis: Any = None) -> None:
		super().__init__()
		self._prefix = prefix
		self._redis = redis if redis is not None else redis_client
		self._pubsub: Any = None
		self._listener: Optional[asyncio.Task] = None
		self._ready = asyncio.Event()
		self._resync_pending = False

	def channel_for(self, scholium_id: str) -> str:
		return f"{self._prefix}:{scholium_id}:changes"

	@property
	def pattern(self) -> str:
		return f"{self._prefix}:*:changes"

	async def _send(self, event: ChangeEvent) -> None:
		payload = json.dumps(event.to_wire(), separators=(",", ":"))
		try:
			await self._redis.publish(self.channel_for(event.scholium_id), payload)
		except Exception as exc:
			self.healthy = False
			raise TransportFailure("redis_publish_failed") from exc

	async def start(self) -> None:
		if self._listener is not None:
			return
		try:
			await self._subscribe()
		except Exception:
			self.healthy = False
			obs_metrics.realtime_failure(self.transport, "subscribe")
			self._resync_pending = True
			logger.warning("realtime.redis_subscribe_failed", exc_info=True)
		self._listener = asyncio.create_task(self._listen(), name="scholium-redis-notifier")

	async def stop(self) -> None:
		if self._listener is not None:
			self._listener.cancel()
			try:
				await self._listener
			except asyncio.CancelledError:
				pass
			self._listener = None
		await self._close_pubsub()
		await super().stop()

	async def _subscribe(self) -> None:
		self._pubsub = self._redis.pubsub()
		await self._pubsub.psubscribe(self.pattern)
		self.healthy = True
		self._ready.set()
		if self._resync_pending:
			# Publishes made while unsubscribed were never relayed here.
			self._resync_pending = False
			self.resync_all()

	async def _close_pubsub(self) -> None:
		pubsub, self._pubsub = self._pubsub, None
		self._ready.clear()
		if pubsub is None:
			return
		try:
			await pubsub.punsubscribe()
			await pubsub.aclose()
		except Exception:
			logger.debug("realtime.redis_close_failed", exc_info=True)

	async def _listen(self) -> None:
		delay = _RETRY_BASE_SECONDS
		while True:
			try:
				if self._pubsub is None:
					await self._subscribe()
				message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
				delay = _RETRY_BASE_SECONDS
				if message:
					self._relay(message)
			except asyncio.CancelledError:
				raise
			except Exception:
				self.healthy = False
				obs_metrics.realtime_failure(self.transport, "listen")
				logger.warning("realtime.redis_listen_failed", extra={"retry_in": delay}, exc_info=True)
				self._resync_pending = True
				await self._close_pubsub()
				await asyncio.sleep(delay)
				delay = min(delay * 2, _RETRY_MAX_SECONDS)

	def _relay(self, message: dict) -> None:
		data = message.get("data")
		if isinstance(data, bytes):
			data = data.decode("utf-8", errors="replace")
		try:
			payload = json.loads(data)
		except (TypeError, ValueError):
			logger.debug("realtime.redis_malformed", extra={"channel": str(message.get("channel"))})
			return
		if not isinstance(payload, dict):
			return
		event = ChangeEvent.from_wire(payload)
		if event is not None:
			self.dispatch(event)

	async def wait_ready(self, timeout: float = 5.0) -> None:
		await asyncio.wait_for(self._ready.wait(), timeout)


__all__ = ["RedisNotifier"]
