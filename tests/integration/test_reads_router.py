"""Integration tests for hub-facing reads: two tenants on one mirror."""

import pytest


ALICE = ("user_alice", "alice@alpha.example")
VIEWER = ("user_vic", "vic@alpha.example")
BOB = ("user_bob", "bob@beta.example")


async def _hub(client, headers, slug, team_id, **visibility) -> str:
    resp = await client.post(
        "/admin/hubs", json={"name": slug.title(), "slug": slug}, headers=headers,
    )
    hub_id = resp.json()["id"]
    resp = await client.post(
        f"/admin/hubs/{hub_id}/teams",
        json={"linear_team_id": team_id, **visibility},
        headers=headers,
    )
    assert resp.status_code == 201
    return hub_id


async def _invite(client, headers, hub_id, email, role="default"):
    resp = await client.post(
        f"/admin/hubs/{hub_id}/members", json={"email": email, "role": role}, headers=headers,
    )
    assert resp.status_code == 201


@pytest.fixture
async def tenants(client, operator_headers):
    """Alpha maps team-a, Beta maps team-b, mirror fully synced."""
    alpha = await _hub(client, operator_headers, "alpha", "team-a")
    beta = await _hub(client, operator_headers, "beta", "team-b")
    await _invite(client, operator_headers, alpha, ALICE[1])
    await _invite(client, operator_headers, alpha, VIEWER[1], role="view_only")
    await _invite(client, operator_headers, beta, BOB[1])
    resp = await client.post("/admin/sync", headers=operator_headers)
    assert resp.json()["teams_synced"] == 2
    return alpha, beta


class TestGuard:
    async def test_anonymous(self, client, tenants):
        alpha, _ = tenants
        resp = await client.get(f"/hub/{alpha}/issues")
        assert resp.status_code == 401

    async def test_unknown_hub(self, client, tenants, auth_headers):
        resp = await client.get("/hub/nope/issues", headers=auth_headers(*ALICE))
        assert resp.status_code == 404

    async def test_other_tenant_forbidden(self, client, tenants, auth_headers):
        _, beta = tenants
        resp = await client.get(f"/hub/{beta}/issues", headers=auth_headers(*ALICE))
        assert resp.status_code == 403


class TestIssues:
    async def test_only_own_team(self, client, tenants, auth_headers):
        alpha, beta = tenants
        resp = await client.get(f"/hub/{alpha}/issues", headers=auth_headers(*ALICE))
        assert resp.status_code == 200
        issues = resp.json()
        assert sorted(i["identifier"] for i in issues) == ["ALPHA-1", "ALPHA-2", "ALPHA-3"]
        for issue in issues:
            assert "assignee" not in issue

        resp = await client.get(f"/hub/{beta}/issues", headers=auth_headers(*BOB))
        assert [i["identifier"] for i in resp.json()] == ["BETA-1"]

    async def test_foreign_team_filter_empty(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(
            f"/hub/{alpha}/issues", params={"team_id": "team-b"}, headers=auth_headers(*ALICE),
        )
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_status_filter(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(
            f"/hub/{alpha}/issues", params=[("status", "Done")], headers=auth_headers(*ALICE),
        )
        assert [i["identifier"] for i in resp.json()] == ["ALPHA-2"]

    async def test_detail(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(f"/hub/{alpha}/issues/iss-a1", headers=auth_headers(*ALICE))
        assert resp.status_code == 200
        assert resp.json()["identifier"] == "ALPHA-1"

    async def test_foreign_detail_not_found(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(f"/hub/{alpha}/issues/iss-b1", headers=auth_headers(*ALICE))
        assert resp.status_code == 404

    async def test_comments(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(f"/hub/{alpha}/issues/iss-a1/comments", headers=auth_headers(*ALICE))
        assert sorted(c["body"] for c in resp.json()) == ["First", "Second"]
        resp = await client.get(f"/hub/{alpha}/issues/iss-b1/comments", headers=auth_headers(*ALICE))
        assert resp.json() == []

    async def test_unmapping_hides_immediately(self, client, operator_headers, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(f"/admin/hubs/{alpha}/teams", headers=operator_headers)
        mapping_id = resp.json()[0]["id"]
        await client.delete(f"/admin/hubs/{alpha}/teams/{mapping_id}", headers=operator_headers)

        resp = await client.get(f"/hub/{alpha}/issues", headers=auth_headers(*ALICE))
        assert resp.json() == []


class TestComments:
    async def test_member_can_comment(self, client, tenants, auth_headers, fake_upstream):
        alpha, _ = tenants
        resp = await client.post(
            f"/hub/{alpha}/issues/iss-a1/comments", json={"body": "Thanks!"},
            headers=auth_headers(*ALICE),
        )
        assert resp.status_code == 201
        assert resp.json()["issue_id"] == "iss-a1"
        assert fake_upstream.created_comments == [("iss-a1", "**alice@alpha.example:** Thanks!")]

    async def test_view_only_cannot_comment(self, client, tenants, auth_headers, fake_upstream):
        alpha, _ = tenants
        resp = await client.post(
            f"/hub/{alpha}/issues/iss-a1/comments", json={"body": "Hi"},
            headers=auth_headers(*VIEWER),
        )
        assert resp.status_code == 403
        assert fake_upstream.created_comments == []

    async def test_view_only_can_read(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(f"/hub/{alpha}/issues", headers=auth_headers(*VIEWER))
        assert resp.status_code == 200

    async def test_foreign_issue(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.post(
            f"/hub/{alpha}/issues/iss-b1/comments", json={"body": "Hi"},
            headers=auth_headers(*ALICE),
        )
        assert resp.status_code == 404


class TestCatalog:
    async def test_teams_and_stats(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(f"/hub/{alpha}/teams", headers=auth_headers(*ALICE))
        assert [t["id"] for t in resp.json()] == ["team-a"]

        resp = await client.get(f"/hub/{alpha}/teams/stats", headers=auth_headers(*ALICE))
        stats = resp.json()
        assert set(stats) == {"team-a"}
        assert stats["team-a"]["open_issue_count"] == 2

    async def test_projects(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(f"/hub/{alpha}/projects", headers=auth_headers(*ALICE))
        assert sorted(p["id"] for p in resp.json()) == ["proj-a1", "proj-a2"]

    async def test_initiatives(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(
            f"/hub/{alpha}/initiatives", params={"status": "Active"}, headers=auth_headers(*ALICE),
        )
        assert [i["id"] for i in resp.json()] == ["init-1"]

    async def test_metadata(self, client, tenants, auth_headers):
        alpha, _ = tenants
        resp = await client.get(f"/hub/{alpha}/metadata", headers=auth_headers(*ALICE))
        data = resp.json()
        assert sorted(s["name"] for s in data["states"]) == ["Done", "Todo"]
        assert "assignees" not in data


class TestVisibility:
    async def test_hidden_label_and_project_allow_list(self, client, operator_headers, auth_headers):
        hub_id = await _hub(
            client, operator_headers, "gamma", "team-a",
            visible_project_ids=["proj-a1", "proj-a2"], hidden_label_ids=["lbl-internal"],
        )
        await _invite(client, operator_headers, hub_id, ALICE[1])
        await client.post("/admin/sync", headers=operator_headers)

        resp = await client.get(f"/hub/{hub_id}/issues", headers=auth_headers(*ALICE))
        assert [i["identifier"] for i in resp.json()] == ["ALPHA-1"]
