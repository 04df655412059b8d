import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure the package is importable when tests run from a plain checkout
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
	sys.path.insert(0, str(REPO_ROOT))

from nudge.domain.directory.repo import InMemoryDirectory
from nudge.domain.matching.events import QueueOutbox
from nudge.domain.service import NudgeService
from nudge.infra import postgres
from nudge.settings import settings


class FrozenClock:
	"""Manually advanced clock for TTL and expiry assertions."""

	def __init__(self, start: datetime | None = None) -> None:
		self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **kwargs) -> datetime:
		self.now = self.now + timedelta(**kwargs)
		return self.now


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from nudge.infra.redis import redis_client, set_redis_client
	original = redis_client._client
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


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Pin the knobs the tests rely on regardless of the local environment."""
	pinned = {
		"presence_stale_seconds": 15.0,
		"nearby_min_radius_m": 20.0,
		"nearby_max_radius_m": 50.0,
		"nearby_edge_tolerance_m": 1.0,
		"nearby_hide_passed": True,
		"nudge_match_ttl_hours": 72.0,
		"affinity_window": 100,
		"frequent_location_cluster_m": 100.0,
		"ranking_seed": None,
		"events_redis_enabled": False,
		"directory_backend": "memory",
		"obs_log_sampling_rate_info": 1.0,
	}
	original = {key: getattr(settings, key) for key in pinned}
	for key, value in pinned.items():
		setattr(settings, key, value)
	try:
		yield
	finally:
		for key, value in original.items():
			setattr(settings, key, value)


@pytest.fixture
def clock():
	return FrozenClock()


@pytest.fixture
def directory():
	return InMemoryDirectory()


@pytest.fixture
def outbox():
	return QueueOutbox()


@pytest_asyncio.fixture
async def service(clock, directory, outbox):
	svc = NudgeService.build(settings, directory=directory, publisher=outbox, clock=clock)
	try:
		yield svc
	finally:
		await svc.close()


@pytest_asyncio.fixture
async def api_client(service):
	from nudge.main import create_app

	app = create_app(service)
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
