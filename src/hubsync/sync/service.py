"""Full sync: upstream -> mapper -> upserter for every mapped team.

Org-level entities (teams, initiatives) are fetched once per run.  Per-team
entities are fetched once per distinct team id even when several hubs map
the same team.  Teams are processed one after another and a failing team is
counted and skipped; it never aborts its siblings.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import select

from hubsync.common.config import HubSyncSettings
from hubsync.common.exceptions import CredentialMissingError, NotFoundError, ValidationError
from hubsync.hubs.models import HubModel, TeamMappingModel
from hubsync.mirror import mapper
from hubsync.mirror.models import (
    SyncedCommentModel,
    SyncedInitiativeModel,
    SyncedIssueModel,
    SyncedProjectModel,
    SyncedTeamModel,
)
from hubsync.mirror.upsert import batch_upsert
from hubsync.sync.workspace import WorkspaceService, team_scope
from hubsync.upstream.client import LinearClient

logger = logging.getLogger(__name__)


@dataclass
class EntityCounts:
    teams: int = 0
    initiatives: int = 0
    projects: int = 0
    issues: int = 0
    comments: int = 0

    def add(self, other: "EntityCounts") -> None:
        self.teams += other.teams
        self.initiatives += other.initiatives
        self.projects += other.projects
        self.issues += other.issues
        self.comments += other.comments


@dataclass
class TeamSyncResult:
    team_id: str
    success: bool = True
    counts: EntityCounts = field(default_factory=EntityCounts)
    error: Optional[str] = None


@dataclass
class HubSyncResult:
    # Advisory only: per-team failures leave it True.  Read team_results and
    # errors for the authoritative outcome.
    success: bool
    hub_id: str
    counts: EntityCounts = field(default_factory=EntityCounts)
    errors: int = 0
    team_results: list[TeamSyncResult] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncTotals:
    hubs: int = 0
    teams_synced: int = 0
    counts: EntityCounts = field(default_factory=EntityCounts)
    errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def distinct_team_ids(mappings: Iterable[TeamMappingModel]) -> list[str]:
    """Team ids in first-seen order, each once."""
    seen: dict[str, None] = {}
    for m in mappings:
        seen.setdefault(m.linear_team_id, None)
    return list(seen)


class SyncService:
    """Drives full syncs for one hub or for every active hub."""

    def __init__(self, settings: HubSyncSettings, db, workspace: WorkspaceService):
        self.settings = settings
        self.db = db
        self.workspace = workspace
        self.workspace_id = settings.workspace_id
        self.batch_size = settings.upsert_batch_size

    async def _upsert(self, model, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        async with self.db.get_session() as session:
            return await batch_upsert(session, model, rows, batch_size=self.batch_size)

    async def _open_client(self) -> LinearClient:
        async with self.db.get_session() as session:
            token = await self.workspace.get_api_token(session)
        return self.workspace.make_client(token)

    # ── Org scope ──

    async def sync_teams(self, client: LinearClient) -> int:
        now = datetime.now(timezone.utc)
        teams = await client.fetch_teams()
        rows = [mapper.map_team(t, self.workspace_id, now) for t in teams]
        return await self._upsert(SyncedTeamModel, rows)

    async def sync_initiatives(self, client: LinearClient) -> int:
        """Never raises: the credential may lack org-wide initiative scope."""
        try:
            now = datetime.now(timezone.utc)
            initiatives = await client.fetch_initiatives()
            rows = [mapper.map_initiative(i, self.workspace_id, now) for i in initiatives]
            return await self._upsert(SyncedInitiativeModel, rows)
        except Exception as e:
            logger.warning("Initiative sync failed (credential may lack org scope): %s", e)
            return 0

    # ── Team scope ──

    async def sync_team(self, client: LinearClient, team_id: str) -> TeamSyncResult:
        """Projects, then issues, then each issue's comments."""
        result = TeamSyncResult(team_id=team_id)
        started_at = datetime.now(timezone.utc)
        try:
            projects = await client.fetch_projects(team_id)
            result.counts.projects = await self._upsert(
                SyncedProjectModel,
                [mapper.map_project(p, self.workspace_id, started_at) for p in projects],
            )

            issues = await client.fetch_issues(team_id)
            result.counts.issues = await self._upsert(
                SyncedIssueModel,
                [mapper.map_issue(i, self.workspace_id, started_at) for i in issues],
            )

            for issue in issues:
                try:
                    comments = await client.fetch_comments(issue["id"])
                    now = datetime.now(timezone.utc)
                    result.counts.comments += await self._upsert(
                        SyncedCommentModel,
                        [
                            mapper.map_comment(c, self.workspace_id, issue_linear_id=issue["id"], now=now)
                            for c in comments
                        ],
                    )
                except Exception as e:
                    logger.error("Comments for issue %s failed: %s", issue["id"], e)
        except Exception as e:
            logger.error("Sync of team %s failed: %s", team_id, e, extra={"team_id": team_id})
            result.success = False
            result.error = str(e)

        await self.record_team_state(result, started_at)
        return result

    async def record_team_state(self, result: TeamSyncResult, synced_at: datetime) -> None:
        """Advance the team watermark on success, hold it on failure.

        Never raises: a failed state write marks the team failed and the
        caller moves on to the next team.
        """
        scope = team_scope(result.team_id)
        try:
            async with self.db.get_session() as session:
                if result.success:
                    await self.workspace.mark_synced(session, scope, synced_at)
                else:
                    await self.workspace.mark_failed(session, scope, result.error or "")
        except Exception as e:
            logger.error("Recording sync state for %s failed: %s", scope, e, extra={"scope": scope})
            if result.success:
                result.success = False
                result.error = f"Sync state not recorded: {e}"

    # ── Entry points ──

    async def run_hub_sync(self, hub_id: str) -> HubSyncResult:
        """Full sync of one hub's active team mappings."""
        async with self.db.get_session() as session:
            hub = await session.get(HubModel, hub_id)
            if hub is None:
                raise NotFoundError("Hub not found")
            if not hub.is_active:
                raise ValidationError("Hub is not active")
            result = await session.execute(
                select(TeamMappingModel).where(
                    TeamMappingModel.hub_id == hub_id,
                    TeamMappingModel.is_active.is_(True),
                )
            )
            team_ids = distinct_team_ids(result.scalars().all())
        if not team_ids:
            raise ValidationError("No teams configured for this hub")

        try:
            client = await self._open_client()
        except CredentialMissingError as e:
            return HubSyncResult(success=False, hub_id=hub_id, error=e.message)

        outcome = HubSyncResult(success=True, hub_id=hub_id)
        async with client:
            try:
                outcome.counts.teams = await self.sync_teams(client)
            except Exception as e:
                logger.error("Team sync for hub %s failed: %s", hub_id, e, extra={"hub_id": hub_id})
                outcome.success = False
                outcome.error = str(e)
                return outcome
            outcome.counts.initiatives = await self.sync_initiatives(client)

            for team_id in team_ids:
                team_result = await self.sync_team(client, team_id)
                outcome.team_results.append(team_result)
                outcome.counts.add(team_result.counts)
                if not team_result.success:
                    outcome.errors += 1

        logger.info(
            "Hub %s synced: %d teams, %d issues, %d comments, %d errors",
            hub_id, len(team_ids), outcome.counts.issues, outcome.counts.comments, outcome.errors,
        )
        return outcome

    async def run_all_hubs_sync(self) -> SyncTotals:
        """Full sync across every active hub; no overall success flag."""
        totals = SyncTotals()
        async with self.db.get_session() as session:
            result = await session.execute(
                select(TeamMappingModel)
                .join(HubModel, HubModel.id == TeamMappingModel.hub_id)
                .where(TeamMappingModel.is_active.is_(True), HubModel.is_active.is_(True))
                .order_by(TeamMappingModel.created_at)
            )
            mappings = list(result.scalars().all())

        client = await self._open_client()
        async with client:
            try:
                totals.counts.teams = await self.sync_teams(client)
            except Exception as e:
                logger.error("Team sync failed: %s", e)
                totals.errors += 1
            totals.counts.initiatives = await self.sync_initiatives(client)

            if not mappings:
                logger.info("No active team mappings to sync")
                return totals

            totals.hubs = len({m.hub_id for m in mappings})
            for team_id in distinct_team_ids(mappings):
                team_result = await self.sync_team(client, team_id)
                totals.counts.add(team_result.counts)
                if team_result.success:
                    totals.teams_synced += 1
                else:
                    totals.errors += 1
        return totals
