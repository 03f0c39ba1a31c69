"""
Async GraphQL client for the upstream issue tracker.

Reads are paginated: each ``fetch_*`` call loops while the API reports
another page and returns the complete, ordered node list for its scope.
There is no retry here; any transport or API failure raises
``UpstreamAPIError`` and aborts the fetch.
"""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from hubsync.common.exceptions import UpstreamAPIError
from hubsync.upstream import queries

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.linear.app/graphql"
PAGE_SIZE = 50


def _flatten_connections(node: dict[str, Any]) -> dict[str, Any]:
    """Unwrap ``{"nodes": [...]}`` connection fields into plain lists."""
    out = {}
    for key, value in node.items():
        if isinstance(value, dict) and set(value) == {"nodes"}:
            out[key] = value["nodes"]
        else:
            out[key] = value
    return out


class LinearClient:
    """Thin async wrapper around the upstream GraphQL endpoint."""

    def __init__(
        self,
        api_token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        page_size: int = PAGE_SIZE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.page_size = page_size
        self._http = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Authorization": api_token.strip(),
            },
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "LinearClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def request(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST one GraphQL document and return its ``data`` block."""
        try:
            resp = await self._http.post(
                self.api_url, json={"query": query, "variables": variables or {}},
            )
        except httpx.HTTPError as e:
            raise UpstreamAPIError(f"Upstream request failed: {e}") from e

        if resp.status_code >= 400:
            raise UpstreamAPIError(f"Upstream API {resp.status_code}: {resp.text[:500]}")

        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamAPIError("Upstream API returned invalid JSON") from e

        if body.get("errors"):
            messages = ", ".join(err.get("message", "?") for err in body["errors"])
            raise UpstreamAPIError(f"GraphQL: {messages}")
        if not body.get("data"):
            raise UpstreamAPIError("No data returned from upstream API")
        return body["data"]

    async def paginate(
        self, query: str, root: str, variables: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        nodes: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            page_vars = dict(variables or {}, first=self.page_size, after=cursor)
            data = await self.request(query, page_vars)
            connection = data[root]
            nodes.extend(_flatten_connections(n) for n in connection["nodes"])
            page_info = connection["pageInfo"]
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
            if cursor is None:
                break
        return nodes

    # ── Org scope ──

    async def fetch_teams(self) -> list[dict[str, Any]]:
        return await self.paginate(queries.TEAMS_QUERY, "teams")

    async def fetch_initiatives(self) -> list[dict[str, Any]]:
        return await self.paginate(queries.INITIATIVES_QUERY, "initiatives")

    # ── Team scope ──

    async def fetch_projects(
        self, team_id: str, updated_since: datetime | None = None,
    ) -> list[dict[str, Any]]:
        flt: dict[str, Any] = {"accessibleTeams": {"id": {"eq": team_id}}}
        if updated_since is not None:
            flt["updatedAt"] = {"gte": updated_since.isoformat()}
        return await self.paginate(queries.PROJECTS_QUERY, "projects", {"filter": flt})

    async def fetch_issues(
        self, team_id: str, updated_since: datetime | None = None,
    ) -> list[dict[str, Any]]:
        flt: dict[str, Any] = {"team": {"id": {"eq": team_id}}}
        if updated_since is not None:
            flt["updatedAt"] = {"gte": updated_since.isoformat()}
        return await self.paginate(queries.ISSUES_QUERY, "issues", {"filter": flt})

    async def fetch_comments(self, issue_id: str) -> list[dict[str, Any]]:
        flt = {"issue": {"id": {"eq": issue_id}}}
        return await self.paginate(queries.COMMENTS_QUERY, "comments", {"filter": flt})

    async def fetch_team_comments(
        self, team_id: str, updated_since: datetime,
    ) -> list[dict[str, Any]]:
        flt = {
            "issue": {"team": {"id": {"eq": team_id}}},
            "updatedAt": {"gte": updated_since.isoformat()},
        }
        return await self.paginate(queries.COMMENTS_QUERY, "comments", {"filter": flt})

    # ── Mutations ──

    async def viewer(self) -> dict[str, Any]:
        data = await self.request(queries.VIEWER_QUERY)
        return data["viewer"]

    async def create_comment(self, issue_id: str, body: str) -> dict[str, Any]:
        data = await self.request(
            queries.COMMENT_CREATE_MUTATION,
            {"input": {"issueId": issue_id, "body": body}},
        )
        result = data["commentCreate"]
        if not result.get("success"):
            raise UpstreamAPIError("Comment creation was rejected upstream")
        return result["comment"]

    async def create_webhook(
        self, url: str, secret: str, team_id: str | None = None,
        resource_types: list[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "url": url,
            "secret": secret,
            "resourceTypes": resource_types or ["Issue", "Comment", "Project", "Initiative"],
        }
        if team_id:
            payload["teamId"] = team_id
        else:
            payload["allPublicTeams"] = True
        data = await self.request(queries.WEBHOOK_CREATE_MUTATION, {"input": payload})
        result = data["webhookCreate"]
        if not result.get("success"):
            raise UpstreamAPIError("Webhook creation was rejected upstream")
        return result["webhook"]

    async def delete_webhook(self, webhook_id: str) -> bool:
        data = await self.request(queries.WEBHOOK_DELETE_MUTATION, {"id": webhook_id})
        return bool(data["webhookDelete"].get("success"))
