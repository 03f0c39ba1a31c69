"""Tests for the team -> hub mapping cache."""

from hubsync.hubs.mapping_cache import InMemoryMappingCache
from hubsync.hubs.models import HubModel, TeamMappingModel


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def _seed(db, hub_id="hub-1", team_id="team-a", hub_active=True, mapping_active=True):
    async with db.get_session() as session:
        session.add(HubModel(id=hub_id, name=hub_id, slug=hub_id, is_active=hub_active))
        session.add(TeamMappingModel(hub_id=hub_id, linear_team_id=team_id, is_active=mapping_active))


class FailingDB:
    def get_session(self):
        raise RuntimeError("database is down")


class TestMappingCache:
    async def test_builds_map_from_active_rows(self, db):
        await _seed(db, "hub-1", "team-a")
        await _seed(db, "hub-2", "team-b")
        cache = InMemoryMappingCache(db)
        assert await cache.get_map() == {"team-a": ["hub-1"], "team-b": ["hub-2"]}
        assert await cache.is_team_tracked("team-a")
        assert await cache.tenants_for_team("team-b") == ["hub-2"]
        assert await cache.all_team_ids() == {"team-a", "team-b"}

    async def test_inactive_mapping_and_hub_excluded(self, db):
        await _seed(db, "hub-1", "team-a", mapping_active=False)
        await _seed(db, "hub-2", "team-b", hub_active=False)
        cache = InMemoryMappingCache(db)
        assert await cache.get_map() == {}
        assert not await cache.is_team_tracked("team-b")

    async def test_served_from_cache_within_ttl(self, db):
        clock = FakeClock()
        cache = InMemoryMappingCache(db, ttl_seconds=60, clock=clock)
        assert await cache.get_map() == {}

        await _seed(db, "hub-1", "team-a")
        clock.now += 30
        assert await cache.get_map() == {}

    async def test_refreshes_after_ttl(self, db):
        clock = FakeClock()
        cache = InMemoryMappingCache(db, ttl_seconds=60, clock=clock)
        await cache.get_map()

        await _seed(db, "hub-1", "team-a")
        clock.now += 61
        assert await cache.get_map() == {"team-a": ["hub-1"]}

    async def test_invalidate_forces_reload(self, db):
        cache = InMemoryMappingCache(db, ttl_seconds=3600, clock=FakeClock())
        await cache.get_map()
        await _seed(db, "hub-1", "team-a")
        cache.invalidate()
        assert await cache.is_team_tracked("team-a")

    async def test_load_failure_returns_empty_without_prior_map(self):
        cache = InMemoryMappingCache(FailingDB())
        assert await cache.get_map() == {}

    async def test_load_failure_keeps_stale_map(self, db):
        clock = FakeClock()
        await _seed(db, "hub-1", "team-a")
        cache = InMemoryMappingCache(db, ttl_seconds=60, clock=clock)
        assert await cache.is_team_tracked("team-a")

        cache._db = FailingDB()
        clock.now += 120
        assert await cache.get_map() == {"team-a": ["hub-1"]}
