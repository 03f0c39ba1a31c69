"""Incremental reconciliation against a per-team watermark.

Each run asks the upstream only for rows updated at or after the team's
watermark.  Windows overlap, so an entity may be written twice; the upsert
is idempotent, which makes that harmless.  This is also the compensating
control for webhook events dropped by the always-ack ingress.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select

from hubsync.common.config import HubSyncSettings
from hubsync.hubs.models import HubModel, TeamMappingModel
from hubsync.mirror import mapper
from hubsync.mirror.models import SyncedCommentModel, SyncedIssueModel, SyncedProjectModel
from hubsync.sync.service import EntityCounts, SyncService, TeamSyncResult, distinct_team_ids
from hubsync.sync.workspace import WorkspaceService, team_scope
from hubsync.upstream.client import LinearClient

logger = logging.getLogger(__name__)

OVERLAP = timedelta(seconds=60)
LOOKBACK = timedelta(minutes=10)


def watermark(
    last_synced_at: Optional[datetime],
    now: datetime,
    overlap: timedelta = OVERLAP,
    lookback: timedelta = LOOKBACK,
) -> datetime:
    """Lower bound for an incremental fetch."""
    if last_synced_at is None:
        return now - lookback
    return last_synced_at - overlap


@dataclass
class ReconcileTotals:
    hubs: int = 0
    teams_reconciled: int = 0
    counts: EntityCounts = field(default_factory=EntityCounts)
    errors: int = 0
    team_results: list[TeamSyncResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class IncrementalReconciler:
    """Schedule-driven "changed since" sync."""

    def __init__(
        self,
        settings: HubSyncSettings,
        db,
        workspace: WorkspaceService,
        sync_service: SyncService,
    ):
        self.db = db
        self.workspace = workspace
        self.sync_service = sync_service
        self.workspace_id = settings.workspace_id
        self.batch_size = settings.upsert_batch_size
        self.overlap = timedelta(seconds=settings.reconcile_overlap_seconds)
        self.lookback = timedelta(seconds=settings.reconcile_lookback_seconds)

    async def _since(self, team_id: str, now: datetime) -> datetime:
        async with self.db.get_session() as session:
            last = await self.workspace.get_last_synced_at(session, team_scope(team_id))
        return watermark(last, now, self.overlap, self.lookback)

    async def reconcile_team(
        self, client: LinearClient, team_id: str, now: Optional[datetime] = None,
    ) -> TeamSyncResult:
        """Fetch and upsert one team's changes since its watermark.

        The watermark only advances (to ``now``, the run start) on success.
        """
        now = now or datetime.now(timezone.utc)
        result = TeamSyncResult(team_id=team_id)
        try:
            since = await self._since(team_id, now)
            logger.debug("Reconciling team %s since %s", team_id, since.isoformat())

            projects = await client.fetch_projects(team_id, updated_since=since)
            result.counts.projects = await self.sync_service._upsert(
                SyncedProjectModel,
                [mapper.map_project(p, self.workspace_id, now) for p in projects],
            )
            issues = await client.fetch_issues(team_id, updated_since=since)
            result.counts.issues = await self.sync_service._upsert(
                SyncedIssueModel,
                [mapper.map_issue(i, self.workspace_id, now) for i in issues],
            )
            comments = await client.fetch_team_comments(team_id, updated_since=since)
            result.counts.comments = await self.sync_service._upsert(
                SyncedCommentModel,
                [mapper.map_comment(c, self.workspace_id, now=now) for c in comments],
            )
        except Exception as e:
            logger.error("Reconcile of team %s failed: %s", team_id, e, extra={"team_id": team_id})
            result.success = False
            result.error = str(e)

        await self.sync_service.record_team_state(result, now)
        return result

    async def _active_mappings(self, hub_id: str | None = None) -> list[TeamMappingModel]:
        query = (
            select(TeamMappingModel)
            .join(HubModel, HubModel.id == TeamMappingModel.hub_id)
            .where(TeamMappingModel.is_active.is_(True), HubModel.is_active.is_(True))
            .order_by(TeamMappingModel.created_at)
        )
        if hub_id is not None:
            query = query.where(TeamMappingModel.hub_id == hub_id)
        async with self.db.get_session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def reconcile_all(self, hub_id: str | None = None) -> ReconcileTotals:
        """Reconcile every distinct active mapped team (optionally one hub's)."""
        totals = ReconcileTotals()
        mappings = await self._active_mappings(hub_id)
        if not mappings:
            logger.info("Reconcile: no active team mappings")
            return totals
        totals.hubs = len({m.hub_id for m in mappings})

        run_started = datetime.now(timezone.utc)
        client = await self.sync_service._open_client()
        async with client:
            try:
                totals.counts.teams = await self.sync_service.sync_teams(client)
            except Exception as e:
                logger.error("Reconcile: teams failed: %s", e)
                totals.errors += 1
            totals.counts.initiatives = await self.sync_service.sync_initiatives(client)

            for team_id in distinct_team_ids(mappings):
                team_result = await self.reconcile_team(client, team_id, now=run_started)
                totals.team_results.append(team_result)
                totals.counts.add(team_result.counts)
                if team_result.success:
                    totals.teams_reconciled += 1
                else:
                    totals.errors += 1

        logger.info(
            "Reconciled %d teams across %d hubs (%d errors)",
            totals.teams_reconciled, totals.hubs, totals.errors,
        )
        return totals
