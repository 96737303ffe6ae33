"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"scholium_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"scholium_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"scholium_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"scholium_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

REALTIME_PUBLISHED = Counter(
	"scholium_realtime_published_total",
	"Change events published",
	["transport", "kind"],
)

REALTIME_DELIVERED = Counter(
	"scholium_realtime_delivered_total",
	"Change events handed to local subscribers",
	["kind"],
)

REALTIME_FAILURES = Counter(
	"scholium_realtime_failures_total",
	"Notifier transport failures (publish or listen)",
	["transport", "stage"],
)

REALTIME_SUBSCRIBERS = Gauge(
	"scholium_realtime_subscribers",
	"Active local change subscriptions",
)

REALTIME_STREAMS = Gauge(
	"scholium_realtime_streams_active",
	"Open server-sent event streams",
)

MEMBERSHIP_MUTATIONS = Counter(
	"scholium_membership_mutations_total",
	"Membership changes applied",
	["action"],
)

MEMBERSHIP_EVICTIONS = Counter(
	"scholium_membership_evictions_total",
	"Client sessions evicted after losing membership",
	["reason"],
)

TIMESLOT_MUTATIONS = Counter(
	"scholium_timeslot_mutations_total",
	"Time slot mutations by operation and result",
	["op", "result"],
)

POSTGRES_HEALTH = Gauge(
	"scholium_postgres_up",
	"Postgres readiness (1 ok, 0 failing)",
)

REDIS_HEALTH = Gauge(
	"scholium_redis_up",
	"Redis readiness (1 ok, 0 failing)",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def realtime_published(transport: str, kind: str) -> None:
	REALTIME_PUBLISHED.labels(transport=transport, kind=kind).inc()


def realtime_delivered(kind: str, count: int = 1) -> None:
	if count > 0:
		REALTIME_DELIVERED.labels(kind=kind).inc(count)


def realtime_failure(transport: str, stage: str) -> None:
	REALTIME_FAILURES.labels(transport=transport, stage=stage).inc()


def realtime_subscribers(count: int) -> None:
	REALTIME_SUBSCRIBERS.set(count)


def stream_opened() -> None:
	REALTIME_STREAMS.inc()


def stream_closed() -> None:
	REALTIME_STREAMS.dec()


def inc_membership(action: str) -> None:
	MEMBERSHIP_MUTATIONS.labels(action=action).inc()


def inc_eviction(reason: str) -> None:
	MEMBERSHIP_EVICTIONS.labels(reason=reason).inc()


def inc_timeslot(op: str, result: str) -> None:
	TIMESLOT_MUTATIONS.labels(op=op, result=result).inc()


def mark_postgres(ok: bool) -> None:
	POSTGRES_HEALTH.set(1 if ok else 0)


def mark_redis(ok: bool) -> None:
	REDIS_HEALTH.set(1 if ok else 0)
