import asyncio
from contextlib import asynccontextmanager

import httpx
import pytest

from scholium.client.sources import NotifierSource, PollingSource, SSESource
from scholium.domain.common.errors import PermissionDenied
from scholium.domain.realtime.events import ChangeEvent, ChangeKind, connected_frame, event_frame
from scholium.domain.realtime.notifier import InMemoryNotifier


async def _wait_for(predicate, timeout=2.0):
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while not predicate():
		if loop.time() > deadline:
			raise AssertionError("condition not met in time")
		await asyncio.sleep(0.01)


class FakeStreamApi:
	"""Serves scripted SSE sessions; an exception in the script fails that attempt."""

	def __init__(self, sessions):
		self._sessions = list(sessions)
		self.attempts = 0
		self.hold = asyncio.Event()

	@asynccontextmanager
	async def stream_events(self, scholium_id):
		self.attempts += 1
		script = self._sessions.pop(0) if self._sessions else ConnectionError("gone")
		if isinstance(script, Exception):
			raise script

		async def lines():
			for frame in script:
				for line in frame.split("\n"):
					yield line
			await self.hold.wait()

		yield lines()


@pytest.mark.asyncio
async def test_notifier_source_forwards_and_closes():
	notifier = InMemoryNotifier()
	source = NotifierSource(notifier)
	seen = []
	await source.open("s-1", seen.append)
	await notifier.publish("s-1", ChangeKind.HOMEWORK)
	await notifier.drain()
	await source.close()
	await source.close()
	assert [event.kind for event in seen] == [ChangeKind.HOMEWORK]
	assert notifier.subscriber_count() == 0


@pytest.mark.asyncio
async def test_polling_source_ticks_and_pauses_while_hidden():
	source = PollingSource(interval_ms=20)
	ticks = []
	await source.open("s-1", ticks.append)
	await _wait_for(lambda: len(ticks) >= 2)
	assert all(tick is None for tick in ticks)

	await source.set_visible(False)
	await asyncio.sleep(0.05)
	paused_at = len(ticks)
	await asyncio.sleep(0.1)
	assert len(ticks) <= paused_at + 1

	before_resume = len(ticks)
	await source.set_visible(True)
	assert len(ticks) == before_resume + 1
	await source.close()


@pytest.mark.asyncio
async def test_polling_source_uses_configured_interval():
	source = PollingSource()
	assert source._interval == 3.0


@pytest.mark.asyncio
async def test_sse_source_relays_events_and_resyncs_after_reconnect():
	first = [connected_frame("s-1"), event_frame(ChangeEvent("s-1", ChangeKind.MEMBER, 1))]
	second = [connected_frame("s-1"), event_frame(ChangeEvent("s-1", ChangeKind.SUBJECT, 2))]
	api = FakeStreamApi([first, ConnectionError("reset"), second])
	api.hold.set()
	source = SSESource(api, backoff_base=0, max_failures=5)
	seen = []
	await source.open("s-1", seen.append)
	await _wait_for(lambda: len(seen) >= 3)
	await source.close()

	assert seen[0].kind is ChangeKind.MEMBER
	assert seen[1] is None
	assert seen[2].kind is ChangeKind.SUBJECT
	assert source.connections == 2


@pytest.mark.asyncio
async def test_sse_source_degrades_to_polling_after_repeated_failures():
	api = FakeStreamApi([httpx.ConnectError("refused")] * 3)
	fallback = PollingSource(interval_ms=20)
	source = SSESource(api, backoff_base=0, max_failures=3, fallback=fallback)
	ticks = []
	await source.open("s-1", ticks.append)
	await _wait_for(lambda: source.degraded and len(ticks) >= 1)
	await source.close()
	assert api.attempts == 3
	assert ticks[0] is None


@pytest.mark.asyncio
async def test_sse_source_stops_on_lost_access():
	api = FakeStreamApi([PermissionDenied("not_member", status_code=403)])
	source = SSESource(api, backoff_base=0)
	seen = []
	await source.open("s-1", seen.append)
	await _wait_for(lambda: seen == [None])
	await asyncio.sleep(0.02)
	assert api.attempts == 1
	assert not source.degraded
	await source.close()
