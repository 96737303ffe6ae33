import asyncio
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from scholium.domain.realtime.notifier import InMemoryNotifier
from scholium.domain.scholiums import repository
from scholium.domain.scholiums.access_ids import AccessIdCipher
from scholium.domain.scholiums.service import ScholiumService
from scholium.domain.timeslots.service import TimeSlotScheduler
from scholium.infra import postgres
from scholium.infra.auth import AuthenticatedUser
from scholium.main import app
from scholium.settings import settings


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		# Non-fatal; proceed with default policy
		pass


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from scholium.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest_asyncio.fixture(autouse=True)
async def reset_store():
	await repository.reset_memory_state()
	yield
	await repository.reset_memory_state()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""API tests authenticate via X-User-Id headers, which are only accepted in dev mode."""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@pytest.fixture
def notifier():
	return InMemoryNotifier()


@pytest.fixture
def scholium_service(notifier):
	return ScholiumService(notifier, cipher=AccessIdCipher("test-secret"))


@pytest.fixture
def scheduler(notifier, scholium_service):
	return TimeSlotScheduler(notifier, repository=scholium_service.repository)


@pytest.fixture
def host():
	return AuthenticatedUser(id="host-1")


@pytest.fixture
def member():
	return AuthenticatedUser(id="member-1")


@pytest.fixture
def recorded(notifier):
	"""Every event the notifier publishes, in order, regardless of scholium."""
	events = []
	original = notifier.dispatch

	def capture(event):
		events.append(event)
		return original(event)

	notifier.dispatch = capture
	return events


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
