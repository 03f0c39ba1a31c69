"""Hub-scoped reads over the shared mirror.

Mirror rows are not partitioned by hub.  Every query here is restricted to
the team ids the hub actively maps *and* that the mapping cache currently
attributes to the hub; that restriction is the only thing keeping one hub
from reading another's rows.  Visibility allow-lists narrow it further, and
issue projections never carry the assignee.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hubsync.hubs.mapping_cache import MappingCache
from hubsync.hubs.models import TeamMappingModel
from hubsync.mirror import mapper
from hubsync.mirror.models import (
    SyncedCommentModel,
    SyncedInitiativeModel,
    SyncedIssueModel,
    SyncedProjectModel,
    SyncedTeamModel,
)
from hubsync.mirror.upsert import upsert_one
from hubsync.upstream.client import LinearClient
from hubsync.common.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

CLOSED_STATE_TYPES = frozenset({"completed", "canceled", "cancelled"})
PRIORITY_LABELS = {0: "No priority", 1: "Urgent", 2: "High", 3: "Medium", 4: "Low"}


def merge_visibility(mappings: Iterable[TeamMappingModel], field_name: str) -> Optional[set[str]]:
    """Hub-wide allow-list for one kind.

    None means unrestricted: at least one mapping leaves the list empty.
    Otherwise the union of every mapping's list.
    """
    ids: set[str] = set()
    for m in mappings:
        values = getattr(m, field_name) or []
        if not values:
            return None
        ids.update(values)
    return ids


def issue_labels(data: dict[str, Any]) -> list[dict[str, Any]]:
    labels = data.get("labels")
    if isinstance(labels, dict):
        labels = labels.get("nodes")
    if not isinstance(labels, list):
        return []
    return [label for label in labels if isinstance(label, dict) and label.get("id")]


def _team_refs(data: dict[str, Any]) -> list[str]:
    teams = data.get("teams")
    if isinstance(teams, dict):
        teams = teams.get("nodes")
    ids = [t["id"] for t in teams or [] if isinstance(t, dict) and t.get("id")]
    return ids or [t for t in data.get("teamIds") or [] if isinstance(t, str)]


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def project_issue(row: SyncedIssueModel, allowed_label_ids: Optional[set[str]]) -> dict[str, Any]:
    """Tenant-facing issue shape.  There is deliberately no assignee key."""
    d = row.data or {}
    state = d.get("state") if isinstance(d.get("state"), dict) else {}
    labels = issue_labels(d)
    if allowed_label_ids is not None:
        labels = [label for label in labels if label["id"] in allowed_label_ids]
    priority = row.priority or 0
    return {
        "id": row.linear_id,
        "identifier": row.identifier,
        "title": d.get("title") or "",
        "description": d.get("description"),
        "priority": priority,
        "priority_label": PRIORITY_LABELS.get(priority, "No priority"),
        "url": d.get("url") or "",
        "due_date": d.get("dueDate"),
        "state": {
            "id": state.get("id") or "",
            "name": row.state_name or state.get("name") or "Unknown",
            "color": state.get("color") or "",
            "type": state.get("type") or "",
        },
        "labels": [
            {"id": label["id"], "name": label.get("name") or "", "color": label.get("color") or ""}
            for label in labels
        ],
        "team_id": row.team_id,
        "project_id": row.project_id,
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def project_comment(row: SyncedCommentModel) -> dict[str, Any]:
    return {
        "id": row.linear_id,
        "issue_id": row.issue_linear_id,
        "body": row.body or "",
        "author_name": row.author_name or "Unknown",
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def project_team(row: SyncedTeamModel) -> dict[str, Any]:
    d = row.data or {}
    return {
        "id": row.linear_id,
        "name": row.name,
        "key": row.key,
        "description": d.get("description"),
        "color": d.get("color"),
        "icon": d.get("icon"),
    }


def project_project(row: SyncedProjectModel) -> dict[str, Any]:
    d = row.data or {}
    return {
        "id": row.linear_id,
        "name": row.name,
        "description": d.get("description"),
        "status": row.status_name,
        "progress": d.get("progress"),
        "target_date": d.get("targetDate"),
        "url": d.get("url") or "",
        "team_ids": _team_refs(d),
        "updated_at": _iso(row.updated_at),
    }


def project_initiative(row: SyncedInitiativeModel) -> dict[str, Any]:
    d = row.data or {}
    return {
        "id": row.linear_id,
        "name": row.name,
        "description": d.get("description"),
        "status": row.status,
        "target_date": d.get("targetDate"),
        "updated_at": _iso(row.updated_at),
    }


@dataclass
class HubScope:
    """Everything a hub is allowed to see, resolved once per request."""

    hub_id: str
    mappings: list[TeamMappingModel] = field(default_factory=list)

    @property
    def team_ids(self) -> list[str]:
        return [m.linear_team_id for m in self.mappings]

    @property
    def is_empty(self) -> bool:
        return not self.mappings

    @property
    def allowed_project_ids(self) -> Optional[set[str]]:
        return merge_visibility(self.mappings, "visible_project_ids")

    @property
    def allowed_initiative_ids(self) -> Optional[set[str]]:
        return merge_visibility(self.mappings, "visible_initiative_ids")

    @property
    def allowed_label_ids(self) -> Optional[set[str]]:
        return merge_visibility(self.mappings, "visible_label_ids")

    def hidden_label_ids(self, team_id: Optional[str]) -> set[str]:
        for m in self.mappings:
            if m.linear_team_id == team_id:
                return set(m.hidden_label_ids or [])
        return set()

    def is_issue_visible(self, row: SyncedIssueModel) -> bool:
        if row.team_id not in self.team_ids:
            return False
        allowed_projects = self.allowed_project_ids
        if allowed_projects is not None and row.project_id not in allowed_projects:
            return False
        hidden = self.hidden_label_ids(row.team_id)
        if hidden and any(label["id"] in hidden for label in issue_labels(row.data or {})):
            return False
        return True


class HubReadService:
    """Tenant-scoped queries for the hub routes."""

    def __init__(self, cache: MappingCache, workspace_id: str = "workspace"):
        self.cache = cache
        self.workspace_id = workspace_id

    async def resolve_scope(self, session: AsyncSession, hub_id: str) -> HubScope:
        result = await session.execute(
            select(TeamMappingModel).where(
                TeamMappingModel.hub_id == hub_id,
                TeamMappingModel.is_active.is_(True),
            )
        )
        team_map = await self.cache.get_map()
        mappings = [
            m for m in result.scalars().all()
            if hub_id in team_map.get(m.linear_team_id, [])
        ]
        return HubScope(hub_id=hub_id, mappings=mappings)

    async def _issue_row(
        self, session: AsyncSession, scope: HubScope, issue_id: str,
    ) -> Optional[SyncedIssueModel]:
        if scope.is_empty:
            return None
        result = await session.execute(
            select(SyncedIssueModel).where(
                SyncedIssueModel.workspace_id == self.workspace_id,
                SyncedIssueModel.linear_id == issue_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None or not scope.is_issue_visible(row):
            return None
        return row

    # ── Issues ──

    async def fetch_issues(
        self,
        session: AsyncSession,
        hub_id: str,
        team_id: str | None = None,
        project_id: str | None = None,
        statuses: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        scope = await self.resolve_scope(session, hub_id)
        if scope.is_empty:
            return []
        # A caller-supplied team id is only honoured if the hub maps it.
        if team_id and team_id not in scope.team_ids:
            return []
        allowed_projects = scope.allowed_project_ids
        if project_id and allowed_projects is not None and project_id not in allowed_projects:
            return []

        query = (
            select(SyncedIssueModel)
            .where(
                SyncedIssueModel.workspace_id == self.workspace_id,
                SyncedIssueModel.team_id.in_([team_id] if team_id else scope.team_ids),
            )
            .order_by(SyncedIssueModel.updated_at.desc())
        )
        if project_id:
            query = query.where(SyncedIssueModel.project_id == project_id)
        elif allowed_projects is not None:
            query = query.where(SyncedIssueModel.project_id.in_(sorted(allowed_projects)))
        if statuses:
            query = query.where(SyncedIssueModel.state_name.in_(statuses))

        result = await session.execute(query)
        allowed_labels = scope.allowed_label_ids
        return [
            project_issue(row, allowed_labels)
            for row in result.scalars().all()
            if scope.is_issue_visible(row)
        ]

    async def fetch_issue_detail(
        self, session: AsyncSession, hub_id: str, issue_id: str,
    ) -> Optional[dict[str, Any]]:
        scope = await self.resolve_scope(session, hub_id)
        row = await self._issue_row(session, scope, issue_id)
        if row is None:
            return None
        return project_issue(row, scope.allowed_label_ids)

    async def fetch_comments(
        self, session: AsyncSession, hub_id: str, issue_id: str,
    ) -> list[dict[str, Any]]:
        scope = await self.resolve_scope(session, hub_id)
        if await self._issue_row(session, scope, issue_id) is None:
            return []
        result = await session.execute(
            select(SyncedCommentModel)
            .where(
                SyncedCommentModel.workspace_id == self.workspace_id,
                SyncedCommentModel.issue_linear_id == issue_id,
            )
            .order_by(SyncedCommentModel.created_at)
        )
        return [project_comment(row) for row in result.scalars().all()]

    async def push_comment(
        self,
        session: AsyncSession,
        client: LinearClient,
        hub_id: str,
        issue_id: str,
        body: str,
        author_name: str,
    ) -> dict[str, Any]:
        """Post a comment upstream on a visible issue and mirror it."""
        body = body.strip()
        if not body:
            raise ValidationError("Comment body is required")
        scope = await self.resolve_scope(session, hub_id)
        if await self._issue_row(session, scope, issue_id) is None:
            raise NotFoundError("Issue not found")

        comment = await client.create_comment(issue_id, f"**{author_name}:** {body}")
        comment = dict(comment)
        comment.setdefault("issue", {"id": issue_id})
        row = mapper.map_comment(comment, self.workspace_id, issue_linear_id=issue_id)
        await upsert_one(session, SyncedCommentModel, row)
        result = await session.execute(
            select(SyncedCommentModel).where(
                SyncedCommentModel.workspace_id == self.workspace_id,
                SyncedCommentModel.linear_id == comment["id"],
            )
        )
        return project_comment(result.scalar_one())

    # ── Teams, projects, initiatives ──

    async def fetch_teams(self, session: AsyncSession, hub_id: str) -> list[dict[str, Any]]:
        scope = await self.resolve_scope(session, hub_id)
        if scope.is_empty:
            return []
        result = await session.execute(
            select(SyncedTeamModel)
            .where(
                SyncedTeamModel.workspace_id == self.workspace_id,
                SyncedTeamModel.linear_id.in_(scope.team_ids),
            )
            .order_by(SyncedTeamModel.name)
        )
        return [project_team(row) for row in result.scalars().all()]

    async def fetch_team_stats(self, session: AsyncSession, hub_id: str) -> dict[str, dict[str, Any]]:
        """Open issue count, visible project count and last activity per team."""
        scope = await self.resolve_scope(session, hub_id)
        stats: dict[str, dict[str, Any]] = {
            t: {"project_count": 0, "open_issue_count": 0, "last_activity": None}
            for t in scope.team_ids
        }
        if scope.is_empty:
            return stats

        result = await session.execute(
            select(SyncedIssueModel).where(
                SyncedIssueModel.workspace_id == self.workspace_id,
                SyncedIssueModel.team_id.in_(scope.team_ids),
            )
        )
        for row in result.scalars().all():
            if not scope.is_issue_visible(row):
                continue
            team_stat = stats[row.team_id]
            state = (row.data or {}).get("state") or {}
            if state.get("type") not in CLOSED_STATE_TYPES:
                team_stat["open_issue_count"] += 1
            updated = _iso(row.updated_at)
            if team_stat["last_activity"] is None or updated > team_stat["last_activity"]:
                team_stat["last_activity"] = updated

        for project in await self.fetch_projects(session, hub_id, scope=scope):
            for team_id in project["team_ids"]:
                if team_id in stats:
                    stats[team_id]["project_count"] += 1
        return stats

    async def fetch_projects(
        self,
        session: AsyncSession,
        hub_id: str,
        status_name: str | None = None,
        scope: HubScope | None = None,
    ) -> list[dict[str, Any]]:
        scope = scope or await self.resolve_scope(session, hub_id)
        if scope.is_empty:
            return []
        query = (
            select(SyncedProjectModel)
            .where(SyncedProjectModel.workspace_id == self.workspace_id)
            .order_by(SyncedProjectModel.updated_at.desc())
        )
        if status_name:
            query = query.where(SyncedProjectModel.status_name == status_name)
        allowed = scope.allowed_project_ids
        if allowed is not None:
            query = query.where(SyncedProjectModel.linear_id.in_(sorted(allowed)))

        result = await session.execute(query)
        team_ids = set(scope.team_ids)
        projects = []
        for row in result.scalars().all():
            projected = project_project(row)
            # Allow-listed or not, a project must belong to one of the hub's teams.
            if team_ids.intersection(projected["team_ids"]):
                projects.append(projected)
        return projects

    async def is_project_visible(self, session: AsyncSession, hub_id: str, project_id: str) -> bool:
        scope = await self.resolve_scope(session, hub_id)
        if scope.is_empty:
            return False
        allowed = scope.allowed_project_ids
        return allowed is None or project_id in allowed

    async def fetch_initiatives(
        self, session: AsyncSession, hub_id: str, status: str | None = None,
    ) -> list[dict[str, Any]]:
        scope = await self.resolve_scope(session, hub_id)
        if scope.is_empty:
            return []
        query = (
            select(SyncedInitiativeModel)
            .where(SyncedInitiativeModel.workspace_id == self.workspace_id)
            .order_by(SyncedInitiativeModel.updated_at.desc())
        )
        if status:
            query = query.where(SyncedInitiativeModel.status == status)
        allowed = scope.allowed_initiative_ids
        if allowed is not None:
            query = query.where(SyncedInitiativeModel.linear_id.in_(sorted(allowed)))
        result = await session.execute(query)
        return [project_initiative(row) for row in result.scalars().all()]

    async def fetch_metadata(
        self,
        session: AsyncSession,
        hub_id: str,
        team_id: str | None = None,
        project_id: str | None = None,
    ) -> dict[str, list[dict[str, Any]]]:
        """Workflow states and visible labels in use by the hub's issues.

        Assignees are never part of the metadata.
        """
        empty: dict[str, list[dict[str, Any]]] = {"states": [], "labels": []}
        issues = await self.fetch_issues(session, hub_id, team_id=team_id, project_id=project_id)
        if not issues:
            return empty
        states: dict[str, dict[str, Any]] = {}
        labels: dict[str, dict[str, Any]] = {}
        for issue in issues:
            state = issue["state"]
            if state["name"]:
                states[state["name"]] = state
            for label in issue["labels"]:
                labels[label["id"]] = label
        return {"states": list(states.values()), "labels": list(labels.values())}
