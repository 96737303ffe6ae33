"""Postgres LISTEN/NOTIFY transport.

Row triggers on the core tables (see `infra/migrations/0002_change_feed.sql`)
announce committed changes themselves, so service-level publishes for those
kinds are skipped while the listener is attached. Kinds owned by tables outside
this schema are sent with an explicit `pg_notify`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from scholium.domain.common.errors import TransportFailure
from scholium.domain.realtime.events import ChangeEvent, ChangeKind, coerce_kind
from scholium.domain.realtime.notifier import ChangeNotifier
from scholium.infra import postgres
from scholium.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

TRIGGER_KINDS = frozenset(
	{
		ChangeKind.MEMBER,
		ChangeKind.PERMISSIONS,
		ChangeKind.TIMESLOTS,
		ChangeKind.SCHOLIUM,
		ChangeKind.DELETED,
	}
)

_TABLE_KINDS = {
	"homework": ChangeKind.HOMEWORK,
	"subjects": ChangeKind.SUBJECT,
	"homework_completion": ChangeKind.COMPLETION,
}

_RETRY_BASE_SECONDS = 1.0
_RETRY_MAX_SECONDS = 30.0


def map_row_change(table: str, op: str, *, timeslots_changed: bool = False) -> Optional[ChangeKind]:
	"""Translate a (table, operation) pair from the change feed into a change kind."""
	table = (table or "").lower()
	op = (op or "").upper()
	if table in _TABLE_KINDS:
		return _TABLE_KINDS[table]
	if table == "scholium_members":
		if op in ("INSERT", "DELETE"):
			return ChangeKind.MEMBER
		if op == "UPDATE":
			return ChangeKind.PERMISSIONS
		return None
	if table == "scholiums":
		if op == "DELETE":
			return ChangeKind.DELETED
		if op == "UPDATE":
			return ChangeKind.TIMESLOTS if timeslots_changed else ChangeKind.SCHOLIUM
	return None


def parse_notification(payload: str) -> Optional[ChangeEvent]:
	try:
		data = json.loads(payload)
	except (TypeError, ValueError):
		logger.debug("realtime.change_feed_malformed")
		return None
	if not isinstance(data, Mapping):
		return None
	if "table" in data:
		scholium_id = data.get("scholium_id")
		kind = map_row_change(
			str(data.get("table")),
			str(data.get("op")),
			timeslots_changed=bool(data.get("timeslots_changed")),
		)
		if kind is None or not scholium_id:
			return None
		return ChangeEvent.create(str(scholium_id), kind)
	return ChangeEvent.from_wire(data)


class ChangeFeedNotifier(ChangeNotifier):
	transport = "postgres"

	def __init__(
		self,
		*,
		channel: str = "scholium_changes",
		pool_provider: Callable[[], Awaitable[Any]] = postgres.get_pool,
	) -> None:
		super().__init__()
		self._channel = channel
		self._pool_provider = pool_provider
		self._conn: Any = None
		self._pool: Any = None
		self._reconnect_task: Optional[asyncio.Task] = None
		self._stopping = False
		self.healthy = False

	@property
	def listening(self) -> bool:
		return self._conn is not None

	async def publish(self, scholium_id: str, kind: ChangeKind | str) -> None:
		resolved = coerce_kind(kind)
		if self.listening and resolved in TRIGGER_KINDS:
			logger.debug(
				"realtime.change_feed_publish_skipped",
				extra={"scholium_id": str(scholium_id), "kind": resolved.value},
			)
			return
		await super().publish(scholium_id, kind)

	async def _send(self, event: ChangeEvent) -> None:
		if not self.listening:
			self.dispatch(event)
			return
		payload = json.dumps(event.to_wire(), separators=(",", ":"))
		try:
			async with self._pool.acquire() as conn:
				await conn.execute("SELECT pg_notify($1, $2)", self._channel, payload)
		except Exception as exc:
			raise TransportFailure("pg_notify_failed") from exc

	def _on_notify(self, connection: Any, pid: int, channel: str, payload: str) -> None:
		event = parse_notification(payload)
		if event is not None:
			self.dispatch(event)

	def _on_terminate(self, connection: Any) -> None:
		logger.warning("realtime.change_feed_terminated", extra={"channel": self._channel})
		self._conn = None
		self.healthy = False
		obs_metrics.realtime_failure(self.transport, "listen")
		if not self._stopping:
			self._schedule_reconnect()

	async def start(self) -> None:
		self._stopping = False
		try:
			await self._attach()
		except Exception:
			obs_metrics.realtime_failure(self.transport, "subscribe")
			logger.warning("realtime.change_feed_attach_failed", exc_info=True)
			self._schedule_reconnect()

	async def _attach(self) -> None:
		self._pool = await self._pool_provider()
		conn = await self._pool.acquire()
		try:
			await conn.add_listener(self._channel, self._on_notify)
			conn.add_termination_listener(self._on_terminate)
		except Exception:
			await self._pool.release(conn)
			raise
		self._conn = conn
		self.healthy = True
		logger.info("realtime.change_feed_listening", extra={"channel": self._channel})

	def _schedule_reconnect(self) -> None:
		if self._reconnect_task is not None and not self._reconnect_task.done():
			return
		self._reconnect_task = asyncio.ensure_future(self._reconnect())

	async def _reconnect(self) -> None:
		delay = _RETRY_BASE_SECONDS
		while not self._stopping and self._conn is None:
			await asyncio.sleep(delay)
			try:
				await self._attach()
			except Exception:
				obs_metrics.realtime_failure(self.transport, "subscribe")
				logger.warning("realtime.change_feed_retry_failed", extra={"retry_in": delay}, exc_info=True)
				delay = min(delay * 2, _RETRY_MAX_SECONDS)
				continue
			# Trigger notifications sent while detached are gone.
			self.resync_all()

	async def stop(self) -> None:
		self._stopping = True
		if self._reconnect_task is not None:
			self._reconnect_task.cancel()
			try:
				await self._reconnect_task
			except asyncio.CancelledError:
				pass
			self._reconnect_task = None
		conn, self._conn = self._conn, None
		if conn is not None:
			try:
				conn.remove_termination_listener(self._on_terminate)
				await conn.remove_listener(self._channel, self._on_notify)
			finally:
				await self._pool.release(conn)
		self.healthy = False
		await super().stop()


__all__ = ["ChangeFeedNotifier", "TRIGGER_KINDS", "map_row_change", "parse_notification"]
