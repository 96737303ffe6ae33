import pytest
import pytest_asyncio

DEFAULTS = [
	{"start": "07:00", "end": "08:30"},
	{"start": "08:45", "end": "10:15"},
	{"start": "10:30", "end": "12:00"},
	{"start": "13:00", "end": "14:30"},
	{"start": "14:45", "end": "16:15"},
	{"start": "16:30", "end": "18:00"},
]


def _headers(user_id: str) -> dict:
	return {"X-User-Id": user_id}


@pytest_asyncio.fixture
async def scholium(api_client):
	created = await api_client.post("/scholiums", json={"name": "Math Club"}, headers=_headers("host-1"))
	body = created.json()
	await api_client.post("/scholiums/join", json={"access_id": body["access_id"]}, headers=_headers("member-1"))
	return body["id"]


@pytest.mark.asyncio
async def test_members_read_default_grid(api_client, scholium):
	response = await api_client.get(f"/scholiums/{scholium}/timeslots", headers=_headers("member-1"))
	assert response.status_code == 200
	assert response.json() == {"scholium_id": scholium, "items": DEFAULTS}


@pytest.mark.asyncio
async def test_strangers_cannot_read_grid(api_client, scholium):
	response = await api_client.get(f"/scholiums/{scholium}/timeslots", headers=_headers("stranger"))
	assert response.status_code == 403


@pytest.mark.asyncio
async def test_edit_then_ordering_uses_new_end(api_client, scholium):
	edited = await api_client.patch(
		f"/scholiums/{scholium}/timeslots/0", json={"field": "end", "value": "08:15"}, headers=_headers("host-1")
	)
	assert edited.status_code == 200
	assert edited.json()["items"][0] == {"start": "07:00", "end": "08:15"}

	rejected = await api_client.patch(
		f"/scholiums/{scholium}/timeslots/1", json={"field": "start", "value": "08:10"}, headers=_headers("host-1")
	)
	assert rejected.status_code == 422
	assert rejected.json()["detail"] == "overlaps_previous"


@pytest.mark.asyncio
async def test_edit_rejects_bad_time_and_field(api_client, scholium):
	bad_time = await api_client.patch(
		f"/scholiums/{scholium}/timeslots/0", json={"field": "end", "value": "25:00"}, headers=_headers("host-1")
	)
	assert bad_time.status_code == 422
	assert bad_time.json()["detail"] == "invalid_time_format"

	bad_field = await api_client.patch(
		f"/scholiums/{scholium}/timeslots/0", json={"field": "length", "value": "08:00"}, headers=_headers("host-1")
	)
	assert bad_field.status_code == 422
	assert bad_field.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_replace_add_remove(api_client, scholium):
	grid = [{"start": f"{h:02d}:00", "end": f"{h:02d}:45"} for h in (8, 9, 10, 11)]
	replaced = await api_client.put(f"/scholiums/{scholium}/timeslots", json={"items": grid}, headers=_headers("host-1"))
	assert replaced.json()["items"] == grid

	added = await api_client.post(f"/scholiums/{scholium}/timeslots", headers=_headers("host-1"))
	assert added.json()["items"][-1] == {"start": "12:00", "end": "12:45"}

	removed = await api_client.delete(f"/scholiums/{scholium}/timeslots/4", headers=_headers("host-1"))
	assert removed.json()["items"] == grid

	floor = await api_client.delete(f"/scholiums/{scholium}/timeslots/0", headers=_headers("host-1"))
	assert floor.status_code == 422
	assert floor.json()["detail"] == "min_slots_reached"


@pytest.mark.asyncio
async def test_replace_rejects_bad_count(api_client, scholium):
	response = await api_client.put(
		f"/scholiums/{scholium}/timeslots", json={"items": DEFAULTS[:3]}, headers=_headers("host-1")
	)
	assert response.status_code == 422
	assert response.json()["detail"] == "invalid_slot_count"


@pytest.mark.asyncio
async def test_non_host_mutations_are_forbidden(api_client, scholium):
	response = await api_client.delete(f"/scholiums/{scholium}/timeslots/0", headers=_headers("member-1"))
	assert response.status_code == 403
	assert response.json()["detail"] == "host_required"
	unchanged = await api_client.get(f"/scholiums/{scholium}/timeslots", headers=_headers("member-1"))
	assert unchanged.json()["items"] == DEFAULTS
