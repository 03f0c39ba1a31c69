"""Map upstream entities to mirror rows.

Every mapper is pure apart from ``now``, which supplies ``synced_at`` and the
fallback for missing upstream timestamps.  The payload is kept verbatim under
``data``; only the handful of columns used for filtering and sorting are
lifted out of it.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def parse_timestamp(value: Any, fallback: datetime) -> datetime:
    """Parse an upstream ISO-8601 timestamp into an aware datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value or not isinstance(value, str):
        return fallback
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _nested(data: dict[str, Any], key: str, field: str = "id") -> Optional[Any]:
    value = data.get(key)
    if isinstance(value, dict):
        return value.get(field)
    return None


def _base_row(entity: dict[str, Any], workspace_id: str, now: datetime) -> dict[str, Any]:
    return {
        "workspace_id": workspace_id,
        "linear_id": entity["id"],
        "created_at": parse_timestamp(entity.get("createdAt"), now),
        "updated_at": parse_timestamp(entity.get("updatedAt"), now),
        "synced_at": now,
        "data": entity,
    }


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def map_team(team: dict[str, Any], workspace_id: str, now: datetime | None = None) -> dict[str, Any]:
    now = _now(now)
    row = _base_row(team, workspace_id, now)
    row.update(
        name=team.get("name") or "",
        key=team.get("key"),
        parent_team_id=_nested(team, "parent"),
    )
    return row


def map_project(project: dict[str, Any], workspace_id: str, now: datetime | None = None) -> dict[str, Any]:
    now = _now(now)
    row = _base_row(project, workspace_id, now)
    row.update(
        name=project.get("name") or "",
        status_name=_nested(project, "status", "name") or project.get("state"),
        lead_name=_nested(project, "lead", "name"),
        priority=project.get("priority") or 0,
    )
    return row


def issue_team_id(issue: dict[str, Any]) -> Optional[str]:
    return _nested(issue, "team") or issue.get("teamId")


def issue_project_id(issue: dict[str, Any]) -> Optional[str]:
    return _nested(issue, "project") or issue.get("projectId")


def map_issue(issue: dict[str, Any], workspace_id: str, now: datetime | None = None) -> dict[str, Any]:
    now = _now(now)
    row = _base_row(issue, workspace_id, now)
    row.update(
        identifier=issue.get("identifier") or "",
        team_id=issue_team_id(issue),
        project_id=issue_project_id(issue),
        state_name=_nested(issue, "state", "name"),
        priority=issue.get("priority") or 0,
        assignee_name=_nested(issue, "assignee", "name"),
    )
    return row


def comment_issue_id(comment: dict[str, Any]) -> Optional[str]:
    return _nested(comment, "issue") or comment.get("issueId")


def map_comment(
    comment: dict[str, Any],
    workspace_id: str,
    issue_linear_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = _now(now)
    row = _base_row(comment, workspace_id, now)
    row.update(
        issue_linear_id=issue_linear_id or comment_issue_id(comment) or "",
        author_name=_nested(comment, "user", "name"),
        body=comment.get("body"),
    )
    return row


def map_initiative(initiative: dict[str, Any], workspace_id: str, now: datetime | None = None) -> dict[str, Any]:
    now = _now(now)
    row = _base_row(initiative, workspace_id, now)
    row.update(
        name=initiative.get("name") or "",
        status=initiative.get("status"),
        owner_name=_nested(initiative, "owner", "name"),
    )
    return row
