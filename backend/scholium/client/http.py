"""Async HTTP client for the scholium API, used by sync sessions and editors."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

import httpx

from scholium.domain.common import errors
from scholium.domain.timeslots.models import TimeSlot

logger = logging.getLogger(__name__)

_ERROR_CODES: Dict[str, type[errors.ScholiumError]] = {
	"invalid_slot_count": errors.InvalidSlotCount,
	"min_slots_reached": errors.InvalidSlotCount,
	"invalid_time_format": errors.InvalidTimeFormat,
	"end_not_after_start": errors.InvalidTimeRange,
	"slot_past_midnight": errors.InvalidTimeRange,
	"overlaps_previous": errors.InvalidOrdering,
	"overlaps_next": errors.InvalidOrdering,
	"slots_not_ordered": errors.InvalidOrdering,
}

_STATUS_ERRORS: Dict[int, type[errors.ScholiumError]] = {
	403: errors.PermissionDenied,
	404: errors.NotFound,
	409: errors.Conflict,
	422: errors.SlotValidationError,
}


def error_from_response(response: httpx.Response) -> errors.ScholiumError:
	"""Rebuild the domain error an API response describes."""
	code = "http_error"
	try:
		body = response.json()
	except ValueError:
		body = None
	if isinstance(body, Mapping) and isinstance(body.get("detail"), str):
		code = body["detail"]
	error_cls = _ERROR_CODES.get(code) or _STATUS_ERRORS.get(response.status_code) or errors.ScholiumError
	return error_cls(code, status_code=response.status_code)


def _slots(payload: Mapping[str, Any]) -> List[TimeSlot]:
	return [TimeSlot(start=item["start"], end=item["end"]) for item in payload.get("items", [])]


class ScholiumApiClient:
	"""Thin wrapper over `httpx.AsyncClient`; raises domain errors for rejected calls."""

	def __init__(
		self,
		client: Optional[httpx.AsyncClient] = None,
		*,
		base_url: str = "http://localhost:8000",
		headers: Optional[Mapping[str, str]] = None,
		timeout: float = 10.0,
	) -> None:
		self._owns_client = client is None
		self._client = client or httpx.AsyncClient(base_url=base_url, headers=dict(headers or {}), timeout=timeout)

	async def aclose(self) -> None:
		if self._owns_client:
			await self._client.aclose()

	async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
		response = await self._client.request(method, url, **kwargs)
		if response.status_code >= 400:
			raise error_from_response(response)
		return response.json() if response.content else None

	async def check_membership(self, scholium_id: str) -> bool:
		payload = await self._request("GET", f"/scholiums/{scholium_id}/membership")
		return bool(payload and payload.get("is_member"))

	async def get_slots(self, scholium_id: str) -> List[TimeSlot]:
		return _slots(await self._request("GET", f"/scholiums/{scholium_id}/timeslots"))

	async def replace_slots(self, scholium_id: str, slots: Sequence[TimeSlot]) -> List[TimeSlot]:
		body = {"items": [slot.to_dict() for slot in slots]}
		return _slots(await self._request("PUT", f"/scholiums/{scholium_id}/timeslots", json=body))

	async def edit_slot(self, scholium_id: str, index: int, field: str, value: str) -> List[TimeSlot]:
		body = {"field": field, "value": value}
		return _slots(await self._request("PATCH", f"/scholiums/{scholium_id}/timeslots/{index}", json=body))

	async def add_slot(self, scholium_id: str) -> List[TimeSlot]:
		return _slots(await self._request("POST", f"/scholiums/{scholium_id}/timeslots"))

	async def remove_slot(self, scholium_id: str, index: int) -> List[TimeSlot]:
		return _slots(await self._request("DELETE", f"/scholiums/{scholium_id}/timeslots/{index}"))

	async def list_members(self, scholium_id: str) -> List[dict]:
		payload = await self._request("GET", f"/scholiums/{scholium_id}/members")
		return list(payload.get("items", []))

	async def update_permissions(
		self, scholium_id: str, member_id: str, *, can_add_homework: bool, can_create_subject: bool
	) -> dict:
		body = {"can_add_homework": can_add_homework, "can_create_subject": can_create_subject}
		return await self._request(
			"PATCH", f"/scholiums/{scholium_id}/members/{member_id}/permissions", json=body
		)

	async def broadcast(self, scholium_id: str, kind: str) -> None:
		await self._request("POST", "/realtime/broadcast", json={"scholiumId": scholium_id, "eventType": kind})

	@asynccontextmanager
	async def stream_events(self, scholium_id: str) -> AsyncIterator[AsyncIterator[str]]:
		"""Open the event stream and yield its line iterator."""
		async with self._client.stream(
			"GET",
			"/realtime/events",
			params={"scholium_id": scholium_id},
			headers={"Accept": "text/event-stream"},
			timeout=httpx.Timeout(10.0, read=None),
		) as response:
			if response.status_code >= 400:
				await response.aread()
				raise error_from_response(response)
			yield response.aiter_lines()
