import httpx
import pytest
import pytest_asyncio

from scholium.client.editors import PermissionsEditor, TimeSlotDraftEditor
from scholium.client.http import ScholiumApiClient
from scholium.domain.common.errors import InvalidOrdering, NotFound, PermissionDenied
from scholium.domain.timeslots.models import TimeSlot
from scholium.main import app


def _http(user_id: str) -> httpx.AsyncClient:
	return httpx.AsyncClient(
		transport=httpx.ASGITransport(app=app),
		base_url="http://testserver",
		headers={"X-User-Id": user_id},
	)


@pytest_asyncio.fixture
async def clients():
	async with _http("host-1") as host_http, _http("member-1") as member_http:
		yield ScholiumApiClient(host_http), ScholiumApiClient(member_http)


async def _scholium(api_client) -> str:
	created = (await api_client.post("/scholiums", json={"name": "Math Club"}, headers={"X-User-Id": "host-1"})).json()
	await api_client.post("/scholiums/join", json={"access_id": created["access_id"]}, headers={"X-User-Id": "member-1"})
	return created["id"]


@pytest.mark.asyncio
async def test_client_maps_errors_to_domain_types(api_client, clients):
	host, member = clients
	scholium_id = await _scholium(api_client)

	assert await member.check_membership(scholium_id) is True
	with pytest.raises(PermissionDenied):
		await member.add_slot(scholium_id)
	with pytest.raises(InvalidOrdering) as exc:
		await host.edit_slot(scholium_id, 1, "start", "08:00")
	assert exc.value.code == "overlaps_previous"
	with pytest.raises(NotFound):
		await host.edit_slot(scholium_id, 9, "end", "20:00")


@pytest.mark.asyncio
async def test_draft_editor_against_the_api(api_client, clients):
	host, _ = clients
	scholium_id = await _scholium(api_client)
	editor = TimeSlotDraftEditor(host, scholium_id)
	await editor.load()

	result = await editor.edit(0, "end", "08:15")
	assert result.ok
	assert editor.slots[0] == TimeSlot("07:00", "08:15")
	assert (await host.get_slots(scholium_id))[0] == TimeSlot("07:00", "08:15")

	added = await editor.add()
	assert added.ok and len(editor.slots) == 7


@pytest.mark.asyncio
async def test_permissions_editor_reverts_for_non_host(api_client, clients):
	host, member = clients
	scholium_id = await _scholium(api_client)

	as_member = PermissionsEditor(member, scholium_id)
	await as_member.load()
	member_row = next(row for row in as_member.members.values() if row["user_id"] == "member-1")
	result = await as_member.toggle(member_row["id"], "can_add_homework")
	assert not result.ok and result.error == "host_required"
	assert as_member.members[member_row["id"]]["can_add_homework"] is False

	as_host = PermissionsEditor(host, scholium_id)
	await as_host.load()
	result = await as_host.toggle(member_row["id"], "can_add_homework")
	assert result.ok
	assert as_host.members[member_row["id"]]["can_add_homework"] is True
