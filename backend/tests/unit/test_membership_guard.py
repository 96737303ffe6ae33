from unittest.mock import AsyncMock

import pytest

from scholium.client.guard import GuardState, MembershipGuard
from scholium.domain.realtime.events import ChangeEvent, ChangeKind


def _event(kind, scholium_id="s-1"):
	return ChangeEvent(scholium_id, kind, 0)


@pytest.mark.asyncio
async def test_initial_check_keeps_member():
	on_evict = AsyncMock()
	guard = MembershipGuard("s-1", "u-1", AsyncMock(return_value=True), on_evict)
	assert await guard.initial_check() is True
	assert guard.state is GuardState.MEMBER
	on_evict.assert_not_awaited()


@pytest.mark.asyncio
async def test_initial_check_evicts_non_member():
	on_evict = AsyncMock()
	guard = MembershipGuard("s-1", "u-1", AsyncMock(return_value=False), on_evict)
	assert await guard.initial_check() is False
	on_evict.assert_awaited_once_with("not_member")


@pytest.mark.asyncio
async def test_member_event_after_removal_evicts_exactly_once():
	check = AsyncMock(return_value=True)
	on_evict = AsyncMock()
	guard = MembershipGuard("s-1", "u-1", check, on_evict)
	await guard.initial_check()

	check.return_value = False
	await guard.handle(_event(ChangeKind.MEMBER))
	await guard.handle(_event(ChangeKind.MEMBER))

	on_evict.assert_awaited_once_with("removed")
	assert guard.evicted
	# The latch short-circuits before any further lookups.
	assert check.await_count == 2


@pytest.mark.asyncio
async def test_permissions_event_rechecks():
	check = AsyncMock(return_value=True)
	guard = MembershipGuard("s-1", "u-1", check, AsyncMock())
	await guard.handle(_event(ChangeKind.PERMISSIONS))
	check.assert_awaited_once()
	assert not guard.evicted


@pytest.mark.asyncio
async def test_data_events_do_not_recheck():
	check = AsyncMock(return_value=False)
	guard = MembershipGuard("s-1", "u-1", check, AsyncMock())
	await guard.handle(_event(ChangeKind.HOMEWORK))
	await guard.handle(_event(ChangeKind.TIMESLOTS))
	check.assert_not_awaited()


@pytest.mark.asyncio
async def test_deleted_scholium_evicts_without_lookup():
	check = AsyncMock(return_value=True)
	on_evict = AsyncMock()
	guard = MembershipGuard("s-1", "u-1", check, on_evict)
	await guard.handle(_event(ChangeKind.DELETED))
	on_evict.assert_awaited_once_with("scholium_deleted")
	check.assert_not_awaited()


@pytest.mark.asyncio
async def test_resync_signal_rechecks():
	check = AsyncMock(return_value=False)
	on_evict = AsyncMock()
	guard = MembershipGuard("s-1", "u-1", check, on_evict)
	await guard.handle(None)
	on_evict.assert_awaited_once()


@pytest.mark.asyncio
async def test_check_errors_leave_the_member_in_place():
	check = AsyncMock(side_effect=ConnectionError("offline"))
	on_evict = AsyncMock()
	guard = MembershipGuard("s-1", "u-1", check, on_evict)
	assert await guard.initial_check() is True
	await guard.handle(_event(ChangeKind.MEMBER))
	on_evict.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_evict_callback_is_supported():
	reasons = []
	guard = MembershipGuard("s-1", "u-1", AsyncMock(return_value=False), reasons.append)
	await guard.initial_check()
	assert await guard.evict("again") is False
	assert reasons == ["not_member"]
