"""Hub-facing read router.  Every route runs the hub auth guard first."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from hubsync.common.exceptions import NotFoundError
from hubsync.common.security import optional_identity
from hubsync.hubs.auth import HubAuthSuccess, Identity, raise_for_failure
from hubsync.reads.schemas import (
    CommentCreate,
    CommentResponse,
    InitiativeResponse,
    IssueResponse,
    MetadataResponse,
    ProjectResponse,
    TeamResponse,
    TeamStatsResponse,
)

router = APIRouter(prefix="/hub/{hub_id}")


def _get_service():
    from hubsync.deps import get_read_service
    return get_read_service()


def _get_guard():
    from hubsync.deps import get_auth_guard
    return get_auth_guard()


def _get_db():
    from hubsync.deps import get_db
    return get_db()


async def _authorize(session, hub_id: str, identity: Optional[Identity]) -> HubAuthSuccess:
    return raise_for_failure(await _get_guard().authorize(session, hub_id, identity))


@router.get("/issues", response_model=list[IssueResponse])
async def list_issues(
    hub_id: str,
    team_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    status: Optional[list[str]] = Query(None),
    identity: Optional[Identity] = Depends(optional_identity),
):
    async with _get_db().get_session() as session:
        await _authorize(session, hub_id, identity)
        issues = await _get_service().fetch_issues(
            session, hub_id, team_id=team_id, project_id=project_id, statuses=status,
        )
        return [IssueResponse(**i) for i in issues]


@router.get("/issues/{issue_id}", response_model=IssueResponse)
async def get_issue(
    hub_id: str,
    issue_id: str,
    identity: Optional[Identity] = Depends(optional_identity),
):
    async with _get_db().get_session() as session:
        await _authorize(session, hub_id, identity)
        issue = await _get_service().fetch_issue_detail(session, hub_id, issue_id)
        if issue is None:
            raise NotFoundError("Issue not found")
        return IssueResponse(**issue)


@router.get("/issues/{issue_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    hub_id: str,
    issue_id: str,
    identity: Optional[Identity] = Depends(optional_identity),
):
    async with _get_db().get_session() as session:
        await _authorize(session, hub_id, identity)
        comments = await _get_service().fetch_comments(session, hub_id, issue_id)
        return [CommentResponse(**c) for c in comments]


@router.post("/issues/{issue_id}/comments", response_model=CommentResponse, status_code=201)
async def create_comment(
    hub_id: str,
    issue_id: str,
    body: CommentCreate,
    identity: Optional[Identity] = Depends(optional_identity),
):
    """Write-guarded: view-only members get 403."""
    from hubsync.deps import get_workspace_service

    workspace = get_workspace_service()
    async with _get_db().get_session() as session:
        auth = raise_for_failure(await _get_guard().authorize_write(session, hub_id, identity))
        token = await workspace.get_api_token(session)
        author = auth.identity.email or auth.identity.user_id
        async with workspace.make_client(token) as client:
            comment = await _get_service().push_comment(
                session, client, hub_id, issue_id, body.body, author_name=author,
            )
        return CommentResponse(**comment)


@router.get("/teams", response_model=list[TeamResponse])
async def list_teams(hub_id: str, identity: Optional[Identity] = Depends(optional_identity)):
    async with _get_db().get_session() as session:
        await _authorize(session, hub_id, identity)
        teams = await _get_service().fetch_teams(session, hub_id)
        return [TeamResponse(**t) for t in teams]


@router.get("/teams/stats", response_model=dict[str, TeamStatsResponse])
async def team_stats(hub_id: str, identity: Optional[Identity] = Depends(optional_identity)):
    async with _get_db().get_session() as session:
        await _authorize(session, hub_id, identity)
        stats = await _get_service().fetch_team_stats(session, hub_id)
        return {team_id: TeamStatsResponse(**s) for team_id, s in stats.items()}


@router.get("/projects", response_model=list[ProjectResponse])
async def list_projects(
    hub_id: str,
    status: Optional[str] = Query(None),
    identity: Optional[Identity] = Depends(optional_identity),
):
    async with _get_db().get_session() as session:
        await _authorize(session, hub_id, identity)
        projects = await _get_service().fetch_projects(session, hub_id, status_name=status)
        return [ProjectResponse(**p) for p in projects]


@router.get("/initiatives", response_model=list[InitiativeResponse])
async def list_initiatives(
    hub_id: str,
    status: Optional[str] = Query(None),
    identity: Optional[Identity] = Depends(optional_identity),
):
    async with _get_db().get_session() as session:
        await _authorize(session, hub_id, identity)
        initiatives = await _get_service().fetch_initiatives(session, hub_id, status=status)
        return [InitiativeResponse(**i) for i in initiatives]


@router.get("/metadata", response_model=MetadataResponse)
async def get_metadata(
    hub_id: str,
    team_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    identity: Optional[Identity] = Depends(optional_identity),
):
    async with _get_db().get_session() as session:
        await _authorize(session, hub_id, identity)
        metadata = await _get_service().fetch_metadata(
            session, hub_id, team_id=team_id, project_id=project_id,
        )
        return MetadataResponse(**metadata)
