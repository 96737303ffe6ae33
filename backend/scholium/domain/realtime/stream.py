"""Server-sent event stream for one scholium."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from scholium.domain.realtime.events import (
	KEEPALIVE_FRAME,
	ChangeEvent,
	connected_frame,
	event_frame,
)
from scholium.domain.realtime.notifier import ChangeNotifier
from scholium.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

SSE_HEADERS = {
	"Cache-Control": "no-cache, no-transform",
	"Connection": "keep-alive",
	"X-Accel-Buffering": "no",
}

DisconnectProbe = Callable[[], Awaitable[bool]]


async def event_stream(
	notifier: ChangeNotifier,
	scholium_id: str,
	*,
	keepalive_seconds: float = 30.0,
	queue_size: int = 256,
	is_disconnected: Optional[DisconnectProbe] = None,
) -> AsyncIterator[str]:
	"""Yield the connected frame, then one frame per change and a comment keepalive when idle.

	The subscription is released when the consumer stops iterating, whatever the cause.
	"""
	queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=max(1, queue_size))

	def enqueue(event: ChangeEvent) -> None:
		try:
			queue.put_nowait(event)
		except asyncio.QueueFull:
			# A queued event already forces a refetch on the client.
			logger.debug("realtime.stream_queue_full", extra={"scholium_id": scholium_id})

	unsubscribe = notifier.subscribe(scholium_id, enqueue)
	obs_metrics.stream_opened()
	logger.info("realtime.stream_opened", extra={"scholium_id": scholium_id})
	try:
		yield connected_frame(scholium_id)
		while True:
			if is_disconnected is not None and await is_disconnected():
				break
			try:
				event = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
			except asyncio.TimeoutError:
				yield KEEPALIVE_FRAME
				continue
			yield event_frame(event)
	finally:
		unsubscribe()
		obs_metrics.stream_closed()
		logger.info("realtime.stream_closed", extra={"scholium_id": scholium_id})


__all__ = ["SSE_HEADERS", "event_stream"]
