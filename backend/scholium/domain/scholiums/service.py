"""Scholium membership service layer."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

import ulid

from scholium.domain.common.errors import Conflict, NotFound
from scholium.domain.realtime.events import ChangeKind
from scholium.domain.realtime.notifier import ChangeNotifier
from scholium.domain.scholiums import access_ids, models, policy, schemas
from scholium.domain.scholiums.repository import ScholiumRepository
from scholium.domain.timeslots import models as slot_models
from scholium.infra.auth import AuthenticatedUser
from scholium.obs import metrics as obs_metrics
from scholium.settings import settings

logger = logging.getLogger(__name__)


class ScholiumService:
	def __init__(
		self,
		notifier: ChangeNotifier,
		repository: ScholiumRepository | None = None,
		cipher: access_ids.AccessIdCipher | None = None,
	) -> None:
		self._notifier = notifier
		self._repo = repository or ScholiumRepository()
		self._cipher = cipher or access_ids.AccessIdCipher(settings.access_id_secret)

	@property
	def repository(self) -> ScholiumRepository:
		return self._repo

	async def create_scholium(
		self, auth_user: AuthenticatedUser, payload: schemas.ScholiumCreateRequest
	) -> schemas.ScholiumCreated:
		name = policy.ensure_name(payload.name)
		access_id = access_ids.generate_access_id()
		now = datetime.now(timezone.utc)
		scholium = models.Scholium(
			id=str(ulid.new()),
			name=name,
			host_user_id=auth_user.id,
			encrypted_access_id=self._cipher.encrypt(access_id),
			access_id_digest=self._cipher.digest(access_id),
			created_at=now,
			updated_at=now,
			time_slots=slot_models.serialise(slot_models.default_slots()),
		)
		host = models.ScholiumMember(
			id=str(ulid.new()),
			scholium_id=scholium.id,
			user_id=auth_user.id,
			is_host=True,
			is_cohost=False,
			can_add_homework=True,
			can_create_subject=True,
			joined_at=now,
		)
		scholium = await self._repo.create_scholium(scholium, host)
		obs_metrics.inc_membership("create")
		logger.info("scholium.created", extra={"scholium_id": scholium.id, "user_id": auth_user.id})
		return schemas.ScholiumCreated(**scholium.to_summary(is_host=True), access_id=access_id)

	async def join(self, auth_user: AuthenticatedUser, payload: schemas.JoinByAccessIdRequest) -> schemas.ScholiumSummary:
		"""Join by access id; joining a scholium twice returns it unchanged."""
		digest = self._cipher.digest(payload.access_id)
		scholium = await self._repo.find_by_access_digest(digest)
		if scholium is None:
			raise NotFound("invalid_access_id")
		existing = await self._repo.get_member(scholium.id, auth_user.id)
		if existing is not None:
			return schemas.ScholiumSummary(**scholium.to_summary(is_host=existing.is_host))
		member = models.ScholiumMember(
			id=str(ulid.new()),
			scholium_id=scholium.id,
			user_id=auth_user.id,
			is_host=False,
			is_cohost=False,
			can_add_homework=False,
			can_create_subject=False,
			joined_at=datetime.now(timezone.utc),
		)
		if await self._repo.add_member(member):
			scholium.members_count += 1
			obs_metrics.inc_membership("join")
			logger.info("scholium.member_joined", extra={"scholium_id": scholium.id, "user_id": auth_user.id})
			await self._notifier.publish(scholium.id, ChangeKind.MEMBER)
		return schemas.ScholiumSummary(**scholium.to_summary(is_host=False))

	async def list_mine(self, auth_user: AuthenticatedUser) -> List[schemas.ScholiumSummary]:
		scholiums = await self._repo.list_for_user(auth_user.id)
		return [
			schemas.ScholiumSummary(**item.to_summary(is_host=item.host_user_id == auth_user.id))
			for item in scholiums
		]

	async def get_details(self, auth_user: AuthenticatedUser, scholium_id: str) -> schemas.ScholiumDetail:
		scholium = await self._require_scholium(scholium_id)
		capability = policy.ensure_member(await self.capability(scholium_id, auth_user.id))
		try:
			access_id = self._cipher.decrypt(scholium.encrypted_access_id)
		except access_ids.InvalidAccessId as exc:
			# Encrypted under a previous secret; the host can renew it.
			logger.warning("scholium.access_id_unreadable", extra={"scholium_id": scholium_id})
			raise Conflict("access_id_unreadable") from exc
		return schemas.ScholiumDetail(
			id=scholium.id,
			name=scholium.name,
			access_id=access_id,
			is_host=capability.is_host,
			member_count=scholium.members_count,
		)

	async def list_members(self, auth_user: AuthenticatedUser, scholium_id: str) -> schemas.MembersResponse:
		await self._require_scholium(scholium_id)
		policy.ensure_member(await self.capability(scholium_id, auth_user.id))
		members = await self._repo.list_members(scholium_id)
		return schemas.MembersResponse(items=[schemas.MemberSummary(**member.to_dict()) for member in members])

	async def capability(self, scholium_id: str, user_id: str) -> models.RoleCapability:
		member = await self._repo.get_member(scholium_id, user_id)
		return models.RoleCapability.for_member(member)

	async def check_membership(self, scholium_id: str, user_id: str) -> bool:
		return await self._repo.is_member(scholium_id, user_id)

	async def renew_access_id(self, auth_user: AuthenticatedUser, scholium_id: str) -> schemas.AccessIdResponse:
		await self._require_scholium(scholium_id)
		policy.ensure_host(await self.capability(scholium_id, auth_user.id))
		access_id = access_ids.generate_access_id()
		await self._repo.update_access_id(
			scholium_id, self._cipher.encrypt(access_id), self._cipher.digest(access_id)
		)
		logger.info("scholium.access_id_renewed", extra={"scholium_id": scholium_id})
		await self._notifier.publish(scholium_id, ChangeKind.SCHOLIUM)
		return schemas.AccessIdResponse(access_id=access_id)

	async def update_permissions(
		self,
		auth_user: AuthenticatedUser,
		scholium_id: str,
		member_id: str,
		payload: schemas.PermissionsUpdateRequest,
	) -> schemas.MemberSummary:
		policy.ensure_host(await self.capability(scholium_id, auth_user.id))
		target = policy.ensure_target_member(await self._member_in(scholium_id, member_id))
		policy.ensure_not_host_target(target)
		target.can_add_homework = payload.can_add_homework
		target.can_create_subject = payload.can_create_subject
		if not await self._repo.update_member(target):
			raise NotFound("member_not_found")
		obs_metrics.inc_membership("permissions")
		await self._notifier.publish(scholium_id, ChangeKind.PERMISSIONS)
		return schemas.MemberSummary(**target.to_dict())

	async def set_cohost(
		self,
		auth_user: AuthenticatedUser,
		scholium_id: str,
		member_id: str,
		payload: schemas.CohostUpdateRequest,
	) -> schemas.MemberSummary:
		policy.ensure_can_manage_cohosts(await self.capability(scholium_id, auth_user.id))
		target = policy.ensure_target_member(await self._member_in(scholium_id, member_id))
		policy.ensure_not_host_target(target)
		target.is_cohost = payload.is_cohost
		if payload.is_cohost:
			target.can_add_homework = True
			target.can_create_subject = True
		if not await self._repo.update_member(target):
			raise NotFound("member_not_found")
		obs_metrics.inc_membership("cohost")
		await self._notifier.publish(scholium_id, ChangeKind.PERMISSIONS)
		return schemas.MemberSummary(**target.to_dict())

	async def remove_member(self, auth_user: AuthenticatedUser, scholium_id: str, member_id: str) -> None:
		"""Remove a non-host member. Removing an already removed member succeeds."""
		policy.ensure_host(await self.capability(scholium_id, auth_user.id))
		target = await self._member_in(scholium_id, member_id)
		if target is None:
			return
		policy.ensure_not_host_target(target)
		if await self._repo.remove_member(scholium_id, target.user_id):
			obs_metrics.inc_membership("remove")
			logger.info("scholium.member_removed", extra={"scholium_id": scholium_id, "target_user_id": target.user_id})
			await self._notifier.publish(scholium_id, ChangeKind.MEMBER)

	async def quit(self, auth_user: AuthenticatedUser, scholium_id: str) -> None:
		member = await self._repo.get_member(scholium_id, auth_user.id)
		if member is None:
			return
		policy.ensure_can_quit(member)
		if await self._repo.remove_member(scholium_id, auth_user.id):
			obs_metrics.inc_membership("quit")
			logger.info("scholium.member_quit", extra={"scholium_id": scholium_id})
			await self._notifier.publish(scholium_id, ChangeKind.MEMBER)

	async def transfer_host(
		self, auth_user: AuthenticatedUser, scholium_id: str, payload: schemas.TransferHostRequest
	) -> None:
		policy.ensure_host(await self.capability(scholium_id, auth_user.id))
		if payload.new_host_user_id == auth_user.id:
			return
		policy.ensure_target_member(await self._repo.get_member(scholium_id, payload.new_host_user_id))
		await self._repo.transfer_host(scholium_id, auth_user.id, payload.new_host_user_id)
		obs_metrics.inc_membership("transfer_host")
		logger.info(
			"scholium.host_transferred",
			extra={"scholium_id": scholium_id, "target_user_id": payload.new_host_user_id},
		)
		await self._notifier.publish(scholium_id, ChangeKind.PERMISSIONS)

	async def delete_scholium(self, auth_user: AuthenticatedUser, scholium_id: str) -> None:
		await self._require_scholium(scholium_id)
		policy.ensure_host(await self.capability(scholium_id, auth_user.id))
		if await self._repo.delete_scholium(scholium_id):
			obs_metrics.inc_membership("delete")
			logger.info("scholium.deleted", extra={"scholium_id": scholium_id})
			await self._notifier.publish(scholium_id, ChangeKind.DELETED)

	async def _require_scholium(self, scholium_id: str) -> models.Scholium:
		scholium = await self._repo.get_scholium(scholium_id)
		if scholium is None:
			raise NotFound("scholium_not_found")
		return scholium

	async def _member_in(self, scholium_id: str, member_id: str) -> Optional[models.ScholiumMember]:
		member = await self._repo.get_member_by_id(member_id)
		if member is None or member.scholium_id != scholium_id:
			return None
		return member
