"""Change events and their server-sent-event wire encoding."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
	HOMEWORK = "homework"
	SUBJECT = "subject"
	MEMBER = "member"
	PERMISSIONS = "permissions"
	TIMESLOTS = "timeslots"
	COMPLETION = "completion"
	SCHOLIUM = "scholium"
	DELETED = "deleted"


# Announces stream establishment; never a refresh trigger.
CONNECTED_TYPE = "connected"
KEEPALIVE_FRAME = ": ping\n\n"

# Kinds after which a client must re-verify its own membership.
MEMBERSHIP_KINDS = frozenset({ChangeKind.MEMBER, ChangeKind.PERMISSIONS})


def now_ms() -> int:
	return int(time.time() * 1000)


def coerce_kind(value: Any) -> Optional[ChangeKind]:
	if isinstance(value, ChangeKind):
		return value
	try:
		return ChangeKind(str(value))
	except ValueError:
		return None


@dataclass(frozen=True, slots=True)
class ChangeEvent:
	scholium_id: str
	kind: ChangeKind
	timestamp: int

	@classmethod
	def create(cls, scholium_id: str, kind: ChangeKind | str) -> "ChangeEvent":
		resolved = coerce_kind(kind)
		if resolved is None:
			raise ValueError(f"unknown change kind: {kind}")
		return cls(scholium_id=str(scholium_id), kind=resolved, timestamp=now_ms())

	def to_wire(self) -> dict[str, Any]:
		return {"type": self.kind.value, "scholiumId": self.scholium_id, "timestamp": self.timestamp}

	@classmethod
	def from_wire(cls, payload: Mapping[str, Any]) -> Optional["ChangeEvent"]:
		"""Parse a wire payload; `connected`, untyped and unknown payloads yield None."""
		event_type = payload.get("type")
		if not event_type or event_type == CONNECTED_TYPE:
			return None
		kind = coerce_kind(event_type)
		scholium_id = payload.get("scholiumId")
		if kind is None or scholium_id is None:
			logger.debug("realtime.unknown_payload", extra={"event_type": str(event_type)})
			return None
		timestamp = payload.get("timestamp")
		try:
			ts = int(timestamp) if timestamp is not None else now_ms()
		except (TypeError, ValueError):
			ts = now_ms()
		return cls(scholium_id=str(scholium_id), kind=kind, timestamp=ts)


def encode_sse(payload: Mapping[str, Any]) -> str:
	return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"


def connected_frame(scholium_id: str) -> str:
	return encode_sse({"type": CONNECTED_TYPE, "scholiumId": str(scholium_id)})


def event_frame(event: ChangeEvent) -> str:
	return encode_sse(event.to_wire())


class SSEFrameParser:
	"""Incremental parser for `text/event-stream` lines.

	Comment lines (keepalives) are skipped; malformed `data:` payloads are
	dropped with a debug log rather than raised.
	"""

	def __init__(self) -> None:
		self._data: list[str] = []

	def feed(self, line: str) -> Optional[dict[str, Any]]:
		line = line.rstrip("\r\n")
		if not line:
			return self._flush()
		if line.startswith(":"):
			return None
		field, _, value = line.partition(":")
		if field == "data":
			self._data.append(value[1:] if value.startswith(" ") else value)
		return None

	def feed_lines(self, lines: Iterator[str]) -> Iterator[dict[str, Any]]:
		for line in lines:
			message = self.feed(line)
			if message is not None:
				yield message

	def _flush(self) -> Optional[dict[str, Any]]:
		if not self._data:
			return None
		raw = "\n".join(self._data)
		self._data = []
		try:
			payload = json.loads(raw)
		except json.JSONDecodeError:
			logger.debug("realtime.malformed_frame")
			return None
		return payload if isinstance(payload, dict) else None
