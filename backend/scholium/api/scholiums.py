"""FastAPI routes for scholiums and their members."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from scholium.api.deps import get_scholium_service
from scholium.api.errors import as_http_error
from scholium.domain.common.errors import ScholiumError
from scholium.domain.scholiums import schemas
from scholium.domain.scholiums.service import ScholiumService
from scholium.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/scholiums", tags=["scholiums"])


@router.post("", response_model=schemas.ScholiumCreated, status_code=status.HTTP_201_CREATED)
async def create_scholium_endpoint(
	payload: schemas.ScholiumCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.ScholiumCreated:
	try:
		return await service.create_scholium(auth_user, payload)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc


@router.post("/join", response_model=schemas.ScholiumSummary)
async def join_scholium_endpoint(
	payload: schemas.JoinByAccessIdRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.ScholiumSummary:
	try:
		return await service.join(auth_user, payload)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc


@router.get("", response_model=List[schemas.ScholiumSummary])
async def list_my_scholiums_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> List[schemas.ScholiumSummary]:
	return await service.list_mine(auth_user)


@router.get("/{scholium_id}", response_model=schemas.ScholiumDetail)
async def scholium_details_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.ScholiumDetail:
	try:
		return await service.get_details(auth_user, scholium_id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc


@router.delete("/{scholium_id}")
async def delete_scholium_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> dict:
	try:
		await service.delete_scholium(auth_user, scholium_id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}


@router.get("/{scholium_id}/membership", response_model=schemas.MembershipResponse)
async def membership_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.MembershipResponse:
	is_member = await service.check_membership(scholium_id, auth_user.id)
	return schemas.MembershipResponse(scholium_id=scholium_id, user_id=auth_user.id, is_member=is_member)


@router.get("/{scholium_id}/capabilities", response_model=schemas.CapabilityResponse)
async def capabilities_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.CapabilityResponse:
	capability = await service.capability(scholium_id, auth_user.id)
	return schemas.CapabilityResponse(**capability.to_dict())


@router.post("/{scholium_id}/access-id/renew", response_model=schemas.AccessIdResponse)
async def renew_access_id_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.AccessIdResponse:
	try:
		return await service.renew_access_id(auth_user, scholium_id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc


@router.post("/{scholium_id}/quit")
async def quit_scholium_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> dict:
	try:
		await service.quit(auth_user, scholium_id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}


@router.post("/{scholium_id}/transfer-host")
async def transfer_host_endpoint(
	scholium_id: str,
	payload: schemas.TransferHostRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> dict:
	try:
		await service.transfer_host(auth_user, scholium_id, payload)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}


@router.get("/{scholium_id}/members", response_model=schemas.MembersResponse)
async def list_members_endpoint(
	scholium_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.MembersResponse:
	try:
		return await service.list_members(auth_user, scholium_id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc


@router.patch("/{scholium_id}/members/{member_id}/permissions", response_model=schemas.MemberSummary)
async def update_permissions_endpoint(
	scholium_id: str,
	member_id: str,
	payload: schemas.PermissionsUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.MemberSummary:
	try:
		return await service.update_permissions(auth_user, scholium_id, member_id, payload)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc


@router.patch("/{scholium_id}/members/{member_id}/cohost", response_model=schemas.MemberSummary)
async def set_cohost_endpoint(
	scholium_id: str,
	member_id: str,
	payload: schemas.CohostUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> schemas.MemberSummary:
	try:
		return await service.set_cohost(auth_user, scholium_id, member_id, payload)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc


@router.delete("/{scholium_id}/members/{member_id}")
async def remove_member_endpoint(
	scholium_id: str,
	member_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ScholiumService = Depends(get_scholium_service),
) -> dict:
	try:
		await service.remove_member(auth_user, scholium_id, member_id)
	except ScholiumError as exc:
		raise as_http_error(exc) from exc
	return {"ok": True}
