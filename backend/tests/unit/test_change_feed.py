import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from scholium.domain.realtime import change_feed
from scholium.domain.realtime.change_feed import ChangeFeedNotifier, map_row_change, parse_notification
from scholium.domain.realtime.events import ChangeKind


@pytest.mark.parametrize(
	"table,op,slots,expected",
	[
		("scholium_members", "INSERT", False, ChangeKind.MEMBER),
		("scholium_members", "DELETE", False, ChangeKind.MEMBER),
		("scholium_members", "UPDATE", False, ChangeKind.PERMISSIONS),
		("scholiums", "DELETE", False, ChangeKind.DELETED),
		("scholiums", "UPDATE", True, ChangeKind.TIMESLOTS),
		("scholiums", "UPDATE", False, ChangeKind.SCHOLIUM),
		("scholiums", "INSERT", False, None),
		("homework", "INSERT", False, ChangeKind.HOMEWORK),
		("subjects", "DELETE", False, ChangeKind.SUBJECT),
		("homework_completion", "UPDATE", False, ChangeKind.COMPLETION),
		("users", "UPDATE", False, None),
	],
)
def test_map_row_change(table, op, slots, expected):
	assert map_row_change(table, op, timeslots_changed=slots) is expected


def test_parse_trigger_payload():
	payload = json.dumps({"table": "scholium_members", "op": "DELETE", "scholium_id": "s-1"})
	event = parse_notification(payload)
	assert event.scholium_id == "s-1"
	assert event.kind is ChangeKind.MEMBER


def test_parse_wire_payload():
	payload = json.dumps({"type": "homework", "scholiumId": "s-2", "timestamp": 42})
	event = parse_notification(payload)
	assert (event.scholium_id, event.kind, event.timestamp) == ("s-2", ChangeKind.HOMEWORK, 42)


@pytest.mark.parametrize("payload", ["", "nope", "[]", json.dumps({"table": "scholiums", "op": "UPDATE"})])
def test_parse_rejects_unusable_payloads(payload):
	assert parse_notification(payload) is None


def _pool_with_connection():
	conn = MagicMock()
	conn.add_listener = AsyncMock()
	conn.remove_listener = AsyncMock()
	conn.execute = AsyncMock()
	pool = MagicMock()
	pool.acquire = AsyncMock(return_value=conn)
	pool.release = AsyncMock()
	return pool, conn


@pytest.mark.asyncio
async def test_change_feed_attaches_listener_and_relays_notifications():
	pool, conn = _pool_with_connection()
	notifier = ChangeFeedNotifier(channel="scholium_changes", pool_provider=AsyncMock(return_value=pool))
	seen = []
	notifier.subscribe("s-1", seen.append)

	await notifier.start()
	assert notifier.listening and notifier.healthy
	conn.add_listener.assert_awaited_once_with("scholium_changes", notifier._on_notify)

	notifier._on_notify(conn, 1, "scholium_changes", json.dumps({"table": "scholiums", "op": "DELETE", "scholium_id": "s-1"}))
	assert [event.kind for event in seen] == [ChangeKind.DELETED]

	await notifier.stop()
	pool.release.assert_awaited_once_with(conn)
	assert not notifier.listening


@pytest.mark.asyncio
async def test_trigger_covered_kinds_are_not_double_published():
	pool, conn = _pool_with_connection()
	notifier = ChangeFeedNotifier(pool_provider=AsyncMock(return_value=pool))
	await notifier.start()
	try:
		await notifier.publish("s-1", ChangeKind.MEMBER)
		await notifier.publish("s-1", "timeslots")
		conn.execute.assert_not_called()
	finally:
		await notifier.stop()


@pytest.mark.asyncio
async def test_application_kinds_use_pg_notify():
	pool, conn = _pool_with_connection()
	acquired = MagicMock()
	acquired.execute = AsyncMock()
	context = MagicMock()
	context.__aenter__ = AsyncMock(return_value=acquired)
	context.__aexit__ = AsyncMock(return_value=False)
	notifier = ChangeFeedNotifier(channel="chan", pool_provider=AsyncMock(return_value=pool))
	await notifier.start()
	pool.acquire = MagicMock(return_value=context)
	try:
		await notifier.publish("s-1", ChangeKind.HOMEWORK)
	finally:
		pool.acquire = AsyncMock(return_value=conn)
		await notifier.stop()
	sql, channel, payload = acquired.execute.await_args.args
	assert sql == "SELECT pg_notify($1, $2)"
	assert channel == "chan"
	assert json.loads(payload)["type"] == "homework"


@pytest.mark.asyncio
async def test_without_listener_events_are_delivered_locally():
	notifier = ChangeFeedNotifier(pool_provider=AsyncMock(side_effect=OSError("no database")))
	seen = []
	notifier.subscribe("s-1", seen.append)
	await notifier.publish("s-1", ChangeKind.MEMBER)
	assert [event.kind for event in seen] == [ChangeKind.MEMBER]
	assert notifier.healthy is False


@pytest.mark.asyncio
async def test_failed_pg_notify_degrades_to_local_dispatch():
	pool, conn = _pool_with_connection()
	context = MagicMock()
	context.__aenter__ = AsyncMock(side_effect=ConnectionError("pool closed"))
	context.__aexit__ = AsyncMock(return_value=False)
	notifier = ChangeFeedNotifier(pool_provider=AsyncMock(return_value=pool))
	seen = []
	notifier.subscribe("s-1", seen.append)
	await notifier.start()
	pool.acquire = MagicMock(return_value=context)
	try:
		await notifier.publish("s-1", ChangeKind.SUBJECT)
	finally:
		pool.acquire = AsyncMock(return_value=conn)
		await notifier.stop()
	assert [event.kind for event in seen] == [ChangeKind.SUBJECT]


@pytest.mark.asyncio
async def test_reattach_after_termination_resyncs_local_subscribers(monkeypatch):
	monkeypatch.setattr(change_feed, "_RETRY_BASE_SECONDS", 0.01)
	pool, conn = _pool_with_connection()
	notifier = ChangeFeedNotifier(pool_provider=AsyncMock(return_value=pool))
	seen = []
	notifier.subscribe("s-1", seen.append)
	await notifier.start()
	try:
		notifier._on_terminate(conn)
		assert not notifier.listening
		await notifier._reconnect_task
		assert notifier.listening
	finally:
		await notifier.stop()
	assert [(event.scholium_id, event.kind) for event in seen] == [("s-1", ChangeKind.MEMBER)]
