"""Policy helpers for scholium membership."""

from __future__ import annotations

from scholium.domain.common.errors import Conflict, NotFound, PermissionDenied, ScholiumError
from scholium.domain.scholiums import models

NAME_MAX_LENGTH = 80


def ensure_member(capability: models.RoleCapability) -> models.RoleCapability:
	if not capability.is_member:
		raise PermissionDenied("not_member")
	return capability


def ensure_host(capability: models.RoleCapability) -> models.RoleCapability:
	if not capability.is_host:
		raise PermissionDenied("host_required")
	return capability


def ensure_can_manage_cohosts(capability: models.RoleCapability) -> models.RoleCapability:
	if not capability.can_manage_cohosts:
		raise PermissionDenied("host_or_cohost_required")
	return capability


def ensure_target_member(member: models.ScholiumMember | None) -> models.ScholiumMember:
	if member is None:
		raise NotFound("member_not_found")
	return member


def ensure_not_host_target(member: models.ScholiumMember) -> None:
	if member.is_host:
		raise PermissionDenied("cannot_target_host")


def ensure_can_quit(member: models.ScholiumMember) -> None:
	if member.is_host:
		raise Conflict("host_must_transfer", message="hosts cannot quit; transfer the host role or delete the scholium")


def ensure_name(name: str) -> str:
	cleaned = (name or "").strip()
	if not cleaned:
		raise ScholiumError("name_required", status_code=422)
	if len(cleaned) > NAME_MAX_LENGTH:
		raise ScholiumError("name_too_long", status_code=422)
	return cleaned
