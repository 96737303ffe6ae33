"""FastAPI routes for a scholium's time slot grid."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from scholium.api.deps import get_scheduler, get_scholium_service
from scholium.api.errors import as_http_error
from scholium.domain.common.errors import ScholiumError
from scholium.domain.scholiums import policy as scholium_policy
from scholium.domain.scholiums.service import ScholiumService
from scholium.domain.timeslots import schemas
from scholium.domain.timeslots.models import TimeSlot
from scholium.domain.timeslots.service import TimeSlotScheduler
from scholium.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/scholiums/{scholium_id}/timeslots", tags=["timeslots"])


def _response(scholium_id: str, slots: List[TimeSlot]) -> schemas.TimeSlotsResponse:
	return schemas.TimeSlotsResponse(
		scholium_id=scholium_id,
		items=[schemas.TimeSlotPayload(start=slot.start, end=slot.end) for slot in slots],
	)


@router.get("", response_model=schemas.TimeSlotsResponse)
async def get_slots_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
	scheduler: TimeSlotScheduler = Depends(get_scheduler),
) -> schemas.TimeSlotsResponse:
	try:
		scholium_policy.ensure_member(await service.capability(scholium_id, auth_user.id))
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return _response(scholium_id, await scheduler.get_slots(scholium_id))


@router.put("", response_model=schemas.TimeSlotsResponse)
async def replace_slots_endpoint(
	scholium_id: str,
	payload: schemas.ReplaceSlotsRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	scheduler: TimeSlotScheduler = Depends(get_scheduler),
) -> schemas.TimeSlotsResponse:
	slots = [TimeSlot(start=item.start, end=item.end) for item in payload.items]
	try:
		stored = await scheduler.replace_slots(scholium_id, slots, auth_user.id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return _response(scholium_id, stored)


@router.patch("/{index}", response_model=schemas.TimeSlotsResponse)
async def edit_slot_endpoint(
	scholium_id: str,
	index: int,
	payload: schemas.EditSlotRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	scheduler: TimeSlotScheduler = Depends(get_scheduler),
) -> schemas.TimeSlotsResponse:
	try:
		stored = await scheduler.edit_slot(scholium_id, index, payload.field, payload.value, auth_user.id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return _response(scholium_id, stored)


@router.post("", response_model=schemas.TimeSlotsResponse)
async def add_slot_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	scheduler: TimeSlotScheduler = Depends(get_scheduler),
) -> schemas.TimeSlotsResponse:
	try:
		stored = await scheduler.add_slot(scholium_id, auth_user.id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return _response(scholium_id, stored)


@router.delete("/{index}", response_model=schemas.TimeSlotsResponse)
async def remove_slot_endpoint(
	scholium_id: str,
	index: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	scheduler: TimeSlotScheduler = Depends(get_scheduler),
) -> schemas.TimeSlotsResponse:
	try:
		stored = await scheduler.remove_slot(scholium_id, index, auth_user.id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return _response(scholium_id, stored)
