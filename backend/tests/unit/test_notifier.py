import asyncio
from unittest.mock import AsyncMock

import pytest

from scholium.domain.realtime import redis_bus
from scholium.domain.realtime.events import ChangeEvent, ChangeKind
from scholium.domain.realtime.factory import build_notifier
from scholium.domain.realtime.notifier import InMemoryNotifier
from scholium.domain.realtime.redis_bus import RedisNotifier
from scholium.settings import Settings


@pytest.mark.asyncio
async def test_publish_without_subscribers_does_not_raise():
	notifier = InMemoryNotifier()
	await notifier.publish("s-1", ChangeKind.HOMEWORK)
	assert notifier.subscriber_count() == 0


@pytest.mark.asyncio
async def test_each_subscriber_of_the_scholium_gets_one_call():
	notifier = InMemoryNotifier()
	first, second, other = [], [], []
	notifier.subscribe("s-1", first.append)
	notifier.subscribe("s-1", second.append)
	notifier.subscribe("s-2", other.append)

	await notifier.publish("s-1", "member")

	assert len(first) == 1 and len(second) == 1
	assert other == []
	assert first[0].kind is ChangeKind.MEMBER
	assert first[0].scholium_id == "s-1"


@pytest.mark.asyncio
async def test_unsubscribe_is_idempotent_and_immediate():
	notifier = InMemoryNotifier()
	seen = []
	unsubscribe = notifier.subscribe("s-1", seen.append)
	unsubscribe()
	unsubscribe()
	await notifier.publish("s-1", ChangeKind.SUBJECT)
	assert seen == []
	assert notifier.subscriber_count("s-1") == 0


@pytest.mark.asyncio
async def test_unknown_kind_is_dropped():
	notifier = InMemoryNotifier()
	seen = []
	notifier.subscribe("s-1", seen.append)
	await notifier.publish("s-1", "not-a-kind")
	assert seen == []


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others():
	notifier = InMemoryNotifier()
	seen = []

	def broken(event):
		raise RuntimeError("boom")

	notifier.subscribe("s-1", broken)
	notifier.subscribe("s-1", seen.append)
	await notifier.publish("s-1", ChangeKind.HOMEWORK)
	assert len(seen) == 1


@pytest.mark.asyncio
async def test_async_handlers_are_scheduled_and_drained():
	notifier = InMemoryNotifier()
	handler = AsyncMock()
	notifier.subscribe("s-1", handler)
	await notifier.publish("s-1", ChangeKind.TIMESLOTS)
	await notifier.drain()
	handler.assert_awaited_once()
	assert handler.await_args.args[0].kind is ChangeKind.TIMESLOTS


@pytest.mark.asyncio
async def test_transport_failure_is_swallowed():
	class BrokenNotifier(InMemoryNotifier):
		async def _send(self, event):
			raise ConnectionError("down")

	notifier = BrokenNotifier()
	await notifier.publish("s-1", ChangeKind.MEMBER)


@pytest.mark.asyncio
async def test_redis_notifier_relays_published_events(fake_redis):
	notifier = RedisNotifier(prefix="test", redis=fake_redis)
	seen = []
	notifier.subscribe("s-1", seen.append)
	await notifier.start()
	try:
		await notifier.wait_ready()
		await notifier.publish("s-1", ChangeKind.HOMEWORK)
		for _ in range(50):
			if seen:
				break
			await asyncio.sleep(0.05)
	finally:
		await notifier.stop()
	assert [event.kind for event in seen] == [ChangeKind.HOMEWORK]


@pytest.mark.asyncio
async def test_redis_publish_failure_falls_back_to_local_delivery():
	redis = AsyncMock()
	redis.publish.side_effect = ConnectionError("redis down")
	notifier = RedisNotifier(redis=redis)
	seen = []
	notifier.subscribe("s-1", seen.append)

	await notifier.publish("s-1", ChangeKind.PERMISSIONS)

	assert [event.kind for event in seen] == [ChangeKind.PERMISSIONS]
	assert notifier.healthy is False


def test_redis_channel_names():
	notifier = RedisNotifier(prefix="scholium", redis=AsyncMock())
	assert notifier.channel_for("abc") == "scholium:abc:changes"
	assert notifier.pattern == "scholium:*:changes"


def test_redis_relay_ignores_malformed_messages():
	notifier = RedisNotifier(redis=AsyncMock())
	seen = []
	notifier.subscribe("s-1", seen.append)
	notifier._relay({"channel": "scholium:s-1:changes", "data": "not json"})
	notifier._relay({"channel": "scholium:s-1:changes", "data": '{"type":"connected","scholiumId":"s-1"}'})
	notifier._relay({"channel": "scholium:s-1:changes", "data": b'{"type":"subject","scholiumId":"s-1","timestamp":5}'})
	assert seen == [ChangeEvent("s-1", ChangeKind.SUBJECT, 5)]


@pytest.mark.parametrize(
	"transport,expected",
	[("memory", "memory"), ("redis", "redis"), ("postgres", "postgres"), ("REDIS", "redis")],
)
def test_build_notifier_selects_transport(transport, expected):
	config = Settings(REALTIME_TRANSPORT=transport)
	assert build_notifier(config).transport == expected


def test_unknown_transport_is_rejected():
	with pytest.raises(ValueError):
		Settings(REALTIME_TRANSPORT="carrier-pigeon")


@pytest.mark.asyncio
async def test_publish_does_not_wait_for_async_handlers():
	notifier = InMemoryNotifier()
	release = asyncio.Event()
	finished = []

	async def slow(event):
		await release.wait()
		finished.append(event)

	notifier.subscribe("s-1", slow)
	await asyncio.wait_for(notifier.publish("s-1", ChangeKind.HOMEWORK), timeout=1.0)
	assert finished == []

	release.set()
	await notifier.drain()
	assert [event.kind for event in finished] == [ChangeKind.HOMEWORK]


def test_resync_all_signals_every_watched_scholium():
	notifier = InMemoryNotifier()
	seen = []
	notifier.subscribe("s-1", seen.append)
	notifier.subscribe("s-2", seen.append)
	assert notifier.resync_all() == 2
	assert sorted((event.scholium_id, event.kind) for event in seen) == [
		("s-1", ChangeKind.MEMBER),
		("s-2", ChangeKind.MEMBER),
	]


@pytest.mark.asyncio
async def test_redis_resubscribe_resyncs_local_subscribers(fake_redis, monkeypatch):
	monkeypatch.setattr(redis_bus, "_RETRY_BASE_SECONDS", 0.01)
	notifier = RedisNotifier(prefix="test", redis=fake_redis)
	seen = []
	notifier.subscribe("s-1", seen.append)
	await notifier.start()
	try:
		await notifier.wait_ready()
		assert seen == []
		# The next read on the live subscription fails like a dropped connection.
		notifier._pubsub.get_message = AsyncMock(side_effect=ConnectionError("connection reset"))
		for _ in range(50):
			if seen:
				break
			await asyncio.sleep(0.05)
		await notifier.wait_ready()
	finally:
		await notifier.stop()
	assert [(event.scholium_id, event.kind) for event in seen] == [("s-1", ChangeKind.MEMBER)]
