"""Realtime endpoints: the per-scholium event stream and the broadcast hook."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from scholium.api.deps import get_notifier, get_scholium_service
from scholium.domain.realtime.events import ChangeKind
from scholium.domain.realtime.notifier import ChangeNotifier
from scholium.domain.realtime.stream import SSE_HEADERS, event_stream
from scholium.domain.scholiums.service import ScholiumService
from scholium.infra.auth import AuthenticatedUser, get_current_user, get_stream_user
from scholium.settings import settings

router = APIRouter(prefix="/realtime", tags=["realtime"])


class BroadcastRequest(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	scholium_id: str = Field(..., min_length=1, alias="scholiumId")
	event_type: ChangeKind = Field(..., alias="eventType")


@router.get("/events")
async def events_endpoint(
	request: Request,
	scholium_id: Optional[str] = Query(default=None),
	scholium_id_camel: Optional[str] = Query(default=None, alias="scholiumId"),
	auth_user: AuthenticatedUser = Depends(get_stream_user),
	service: ScholiumService = Depends(get_scholium_service),
	notifier: ChangeNotifier = Depends(get_notifier),
) -> StreamingResponse:
	target = scholium_id or scholium_id_camel
	if not target:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="scholium_id_required")
	if not await service.check_membership(target, auth_user.id):
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not_member")
	stream = event_stream(
		notifier,
		target,
		keepalive_seconds=settings.realtime_keepalive_seconds,
		queue_size=settings.realtime_stream_queue_size,
		is_disconnected=request.is_disconnected,
	)
	return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/broadcast")
async def broadcast_endpoint(
	payload: BroadcastRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
	notifier: ChangeNotifier = Depends(get_notifier),
) -> dict:
	if not await service.check_membership(payload.scholium_id, auth_user.id):
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="not_member")
	await notifier.publish(payload.scholium_id, payload.event_type)
	return {"success": True}
