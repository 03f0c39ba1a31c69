"""Team -> hub lookup cache.

This map decides both which webhook events are ingested and which hubs may
read a mirrored row.  Every write to ``hub_team_mappings`` (or to a hub's
active flag) must call ``invalidate()`` before the request returns; until it
does, readers may see the old mapping for up to ``ttl_seconds``.

The in-memory implementation is per process.  Deployments running several
workers need a shared implementation of ``MappingCache``.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from sqlalchemy import select

from hubsync.hubs.models import HubModel, TeamMappingModel

logger = logging.getLogger(__name__)

TeamHubMap = dict[str, list[str]]


class MappingCache:
    """Interface for team -> hub lookups."""

    async def get_map(self) -> TeamHubMap:
        raise NotImplementedError

    def invalidate(self) -> None:
        raise NotImplementedError

    async def is_team_tracked(self, team_id: str) -> bool:
        return team_id in await self.get_map()

    async def tenants_for_team(self, team_id: str) -> list[str]:
        return list((await self.get_map()).get(team_id, []))

    async def all_team_ids(self) -> set[str]:
        return set(await self.get_map())


class InMemoryMappingCache(MappingCache):
    """Process-local cache refreshed from the mapping table after a TTL."""

    def __init__(
        self,
        db,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._db = db
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._map: Optional[TeamHubMap] = None
        self._loaded_at = 0.0
        self._generation = 0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._map is not None and (self._clock() - self._loaded_at) < self.ttl_seconds

    async def get_map(self) -> TeamHubMap:
        if self._is_fresh():
            return self._map
        async with self._lock:
            if self._is_fresh():
                return self._map
            generation = self._generation
            try:
                fresh = await self._load()
            except Exception:
                logger.exception("Failed to refresh team -> hub mappings")
                return self._map if self._map is not None else {}
            # An invalidate() during the load means this snapshot may predate it.
            if generation == self._generation:
                self._map = fresh
                self._loaded_at = self._clock()
            return fresh

    async def _load(self) -> TeamHubMap:
        async with self._db.get_session() as session:
            result = await session.execute(
                select(TeamMappingModel.linear_team_id, TeamMappingModel.hub_id)
                .join(HubModel, HubModel.id == TeamMappingModel.hub_id)
                .where(TeamMappingModel.is_active.is_(True), HubModel.is_active.is_(True))
            )
            mapping: TeamHubMap = {}
            for team_id, hub_id in result.all():
                mapping.setdefault(team_id, []).append(hub_id)
            return mapping

    def invalidate(self) -> None:
        self._map = None
        self._loaded_at = 0.0
        self._generation += 1
