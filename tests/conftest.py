"""Shared test fixtures for hubsync."""

import copy
import os
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from hubsync.common.exceptions import UpstreamAPIError
from hubsync.mirror.mapper import parse_timestamp


SECRET_KEY = "test-secret-key-for-session-tokens"
CRON_SECRET = "test-cron-secret"
OPERATOR_ID = "user_operator"
OPERATOR_EMAIL = "ops@vendor.example"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _label(label_id, name, color="#888888"):
    return {"id": label_id, "name": name, "color": color}


def _issue(issue_id, identifier, team_id, project_id=None, labels=(), assignee=None,
           state=("Todo", "unstarted"), updated="2024-01-02T00:00:00.000Z"):
    return {
        "id": issue_id,
        "identifier": identifier,
        "title": f"{identifier} title",
        "description": f"Details for {identifier}",
        "priority": 2,
        "url": f"https://linear.example/issue/{identifier}",
        "dueDate": None,
        "state": {"id": f"state-{state[0].lower()}", "name": state[0], "color": "#aaa", "type": state[1]},
        "assignee": {"id": f"user-{assignee.lower()}", "name": assignee} if assignee else None,
        "labels": list(labels),
        "team": {"id": team_id},
        "project": {"id": project_id} if project_id else None,
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": updated,
    }


def _comment(comment_id, issue_id, body, author="Alice", updated="2024-01-02T00:00:00.000Z"):
    return {
        "id": comment_id,
        "body": body,
        "user": {"id": f"user-{author.lower()}", "name": author},
        "issue": {"id": issue_id},
        "createdAt": "2024-01-01T12:00:00.000Z",
        "updatedAt": updated,
    }


def upstream_dataset() -> dict:
    """Two teams: team-a (Alpha) and team-b (Beta)."""
    bug = _label("lbl-bug", "Bug", "#ff0000")
    internal = _label("lbl-internal", "Internal")
    feature = _label("lbl-feature", "Feature", "#00ff00")
    return {
        "teams": [
            {"id": "team-a", "name": "Alpha Eng", "key": "ALPHA", "description": None,
             "color": "#111", "icon": None, "parent": None,
             "createdAt": "2023-01-01T00:00:00.000Z", "updatedAt": "2024-01-01T00:00:00.000Z"},
            {"id": "team-b", "name": "Beta Eng", "key": "BETA", "description": None,
             "color": "#222", "icon": None, "parent": None,
             "createdAt": "2023-01-01T00:00:00.000Z", "updatedAt": "2024-01-01T00:00:00.000Z"},
        ],
        "initiatives": [
            {"id": "init-1", "name": "Launch", "status": "Active", "owner": {"name": "Olga"},
             "createdAt": "2024-01-01T00:00:00.000Z", "updatedAt": "2024-01-02T00:00:00.000Z"},
            {"id": "init-2", "name": "Hardening", "status": "Planned", "owner": None,
             "createdAt": "2024-01-01T00:00:00.000Z", "updatedAt": "2024-01-02T00:00:00.000Z"},
        ],
        "projects": {
            "team-a": [
                {"id": "proj-a1", "name": "Alpha Web", "status": {"name": "Started"},
                 "lead": {"name": "Lee"}, "priority": 1, "teams": [{"id": "team-a"}],
                 "createdAt": "2024-01-01T00:00:00.000Z", "updatedAt": "2024-01-02T00:00:00.000Z"},
                {"id": "proj-a2", "name": "Alpha Mobile", "status": {"name": "Planned"},
                 "lead": None, "priority": 0, "teams": [{"id": "team-a"}],
                 "createdAt": "2024-01-01T00:00:00.000Z", "updatedAt": "2024-01-02T00:00:00.000Z"},
            ],
            "team-b": [
                {"id": "proj-b1", "name": "Beta Core", "status": {"name": "Started"},
                 "lead": None, "priority": 0, "teams": [{"id": "team-b"}],
                 "createdAt": "2024-01-01T00:00:00.000Z", "updatedAt": "2024-01-02T00:00:00.000Z"},
            ],
        },
        "issues": {
            "team-a": [
                _issue("iss-a1", "ALPHA-1", "team-a", "proj-a1", labels=[bug], assignee="Alice"),
                _issue("iss-a2", "ALPHA-2", "team-a", "proj-a2", labels=[internal],
                       state=("Done", "completed")),
                _issue("iss-a3", "ALPHA-3", "team-a", None, labels=[feature, bug], assignee="Ann"),
            ],
            "team-b": [
                _issue("iss-b1", "BETA-1", "team-b", "proj-b1", assignee="Bob"),
            ],
        },
        "comments": {
            "iss-a1": [
                _comment("cmt-a1-1", "iss-a1", "First"),
                _comment("cmt-a1-2", "iss-a1", "Second", author="Ann"),
            ],
            "iss-b1": [_comment("cmt-b1-1", "iss-b1", "Beta only", author="Bob")],
        },
    }


class FakeLinearClient:
    """In-memory stand-in for LinearClient with failure injection."""

    def __init__(self, dataset: dict | None = None):
        data = copy.deepcopy(dataset or upstream_dataset())
        self.teams = data.get("teams", [])
        self.initiatives = data.get("initiatives", [])
        self.projects = data.get("projects", {})
        self.issues = data.get("issues", {})
        self.comments = data.get("comments", {})
        self.fail_teams: set[str] = set()
        self.fail_org_teams = False
        self.fail_initiatives = False
        self.fail_comments_for: set[str] = set()
        self.calls: list[tuple] = []
        self.created_comments: list[tuple[str, str]] = []
        self.created_webhooks: list[dict] = []
        self.deleted_webhooks: list[str] = []
        self.viewer_data = {"id": "viewer-1", "name": "Sync Bot", "email": "bot@vendor.example"}
        self.invalid_token = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        self.calls.append(("close",))

    @staticmethod
    def _since(items, updated_since):
        if updated_since is None:
            return list(items)
        return [i for i in items if parse_timestamp(i.get("updatedAt"), _EPOCH) >= updated_since]

    async def fetch_teams(self):
        self.calls.append(("teams",))
        if self.fail_org_teams:
            raise UpstreamAPIError("teams unavailable")
        return copy.deepcopy(self.teams)

    async def fetch_initiatives(self):
        self.calls.append(("initiatives",))
        if self.fail_initiatives:
            raise UpstreamAPIError("GraphQL: insufficient scope")
        return copy.deepcopy(self.initiatives)

    async def fetch_projects(self, team_id, updated_since=None):
        self.calls.append(("projects", team_id, updated_since))
        if team_id in self.fail_teams:
            raise UpstreamAPIError(f"Upstream API 500 for {team_id}")
        return copy.deepcopy(self._since(self.projects.get(team_id, []), updated_since))

    async def fetch_issues(self, team_id, updated_since=None):
        self.calls.append(("issues", team_id, updated_since))
        if team_id in self.fail_teams:
            raise UpstreamAPIError(f"Upstream API 500 for {team_id}")
        return copy.deepcopy(self._since(self.issues.get(team_id, []), updated_since))

    async def fetch_comments(self, issue_id):
        self.calls.append(("comments", issue_id))
        if issue_id in self.fail_comments_for:
            raise UpstreamAPIError(f"comments for {issue_id} failed")
        return copy.deepcopy(self.comments.get(issue_id, []))

    async def fetch_team_comments(self, team_id, updated_since):
        self.calls.append(("team_comments", team_id, updated_since))
        if team_id in self.fail_teams:
            raise UpstreamAPIError(f"Upstream API 500 for {team_id}")
        issue_ids = {i["id"] for i in self.issues.get(team_id, [])}
        found = [c for iid, cs in self.comments.items() if iid in issue_ids for c in cs]
        return copy.deepcopy(self._since(found, updated_since))

    async def viewer(self):
        if self.invalid_token:
            raise UpstreamAPIError("Upstream API 401: authentication failed")
        return dict(self.viewer_data)

    async def create_comment(self, issue_id, body):
        self.created_comments.append((issue_id, body))
        comment = _comment(f"cmt-new-{len(self.created_comments)}", issue_id, body, author="Sync Bot")
        self.comments.setdefault(issue_id, []).append(comment)
        return copy.deepcopy(comment)

    async def create_webhook(self, url, secret, team_id=None, resource_types=None):
        hook = {"id": f"wh-{len(self.created_webhooks) + 1}", "enabled": True,
                "url": url, "secret": secret, "team_id": team_id}
        self.created_webhooks.append(hook)
        return {"id": hook["id"], "enabled": True}

    async def delete_webhook(self, webhook_id):
        self.deleted_webhooks.append(webhook_id)
        return True


@pytest.fixture
def dataset():
    return upstream_dataset()


@pytest.fixture
def fake_upstream():
    return FakeLinearClient()


@pytest.fixture
async def db():
    from hubsync.common.config import HubSyncSettings
    from hubsync.common.database import DatabaseManager

    manager = DatabaseManager(HubSyncSettings(db_url="sqlite+aiosqlite://", secret_key=SECRET_KEY))
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def app(fake_upstream):
    """Create a test app with in-memory DB and a fake upstream."""
    os.environ["HUBSYNC_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["HUBSYNC_SECRET_KEY"] = SECRET_KEY
    os.environ["HUBSYNC_CRON_SECRET"] = CRON_SECRET
    os.environ["HUBSYNC_LINEAR_API_TOKEN"] = "lin_api_test"

    # Clear caches and singletons so new env vars take effect
    from hubsync.common.config import get_settings
    get_settings.cache_clear()

    from hubsync.deps import reset_singletons, set_client_factory
    reset_singletons()
    set_client_factory(lambda token: fake_upstream)

    from hubsync.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from hubsync.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def make_token():
    from hubsync.hubs.auth import IdentityProvider

    provider = IdentityProvider(SECRET_KEY)

    def _make(user_id: str, email: str | None = None) -> str:
        return provider.issue_token(user_id, email)

    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id: str, email: str | None = None) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, email)}"}

    return _headers


@pytest.fixture
async def operator_headers(client, auth_headers):
    from hubsync.deps import get_db, get_hub_service

    async with get_db().get_session() as session:
        await get_hub_service().add_global_admin(session, OPERATOR_ID, OPERATOR_EMAIL)
    return auth_headers(OPERATOR_ID, OPERATOR_EMAIL)


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}
