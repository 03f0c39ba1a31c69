"""Integration tests for the hub administration router (operator auth required)."""

from hubsync.hubs.auth import COOKIE_NAME


OPERATOR_ID = "user_operator"


async def _create_hub(client, headers, slug="acme") -> str:
    resp = await client.post(
        "/admin/hubs", json={"name": f"{slug.title()} Corp", "slug": slug}, headers=headers,
    )
    assert resp.status_code == 201
    return resp.json()["id"]


class TestOperatorAuth:
    async def test_anonymous_rejected(self, client):
        resp = await client.post("/admin/hubs", json={"name": "Acme", "slug": "acme"})
        assert resp.status_code == 401
        assert resp.json()["code"] == "UNAUTHENTICATED"

    async def test_bad_token_rejected(self, client):
        resp = await client.get("/admin/hubs", headers={"Authorization": "Bearer forged"})
        assert resp.status_code == 401

    async def test_non_operator_forbidden(self, client, auth_headers):
        resp = await client.get("/admin/hubs", headers=auth_headers("user_nobody"))
        assert resp.status_code == 403
        assert resp.json() == {"error": "Operator access required", "code": "FORBIDDEN", "status": 403}

    async def test_session_cookie_accepted(self, client, operator_headers, make_token):
        client.cookies.set(COOKIE_NAME, make_token(OPERATOR_ID))
        resp = await client.get("/admin/hubs")
        assert resp.status_code == 200


class TestHubCrud:
    async def test_create_hub(self, client, operator_headers):
        resp = await client.post(
            "/admin/hubs",
            json={"name": "Acme Corp", "slug": "acme", "external_org_id": "org_123"},
            headers=operator_headers,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["slug"] == "acme"
        assert data["is_active"] is True
        assert data["created_by"] == OPERATOR_ID

    async def test_duplicate_slug(self, client, operator_headers):
        await _create_hub(client, operator_headers)
        resp = await client.post(
            "/admin/hubs", json={"name": "Again", "slug": "acme"}, headers=operator_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_invalid_slug(self, client, operator_headers):
        resp = await client.post(
            "/admin/hubs", json={"name": "Bad", "slug": "Not A Slug"}, headers=operator_headers,
        )
        assert resp.status_code == 422

    async def test_get_and_update(self, client, operator_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.patch(
            f"/admin/hubs/{hub_id}", json={"name": "Renamed"}, headers=operator_headers,
        )
        assert resp.status_code == 200
        resp = await client.get(f"/admin/hubs/{hub_id}", headers=operator_headers)
        assert resp.json()["name"] == "Renamed"

    async def test_get_missing(self, client, operator_headers):
        resp = await client.get("/admin/hubs/nope", headers=operator_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    async def test_deactivate(self, client, operator_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.delete(f"/admin/hubs/{hub_id}", headers=operator_headers)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        resp = await client.get("/admin/hubs?active_only=true", headers=operator_headers)
        assert resp.json() == []


class TestTeamMappings:
    async def test_add_and_list(self, client, operator_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.post(
            f"/admin/hubs/{hub_id}/teams",
            json={"linear_team_id": "team-a", "hidden_label_ids": ["lbl-internal"]},
            headers=operator_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["hidden_label_ids"] == ["lbl-internal"]

        resp = await client.get(f"/admin/hubs/{hub_id}/teams", headers=operator_headers)
        assert [m["linear_team_id"] for m in resp.json()] == ["team-a"]

    async def test_team_conflict_across_hubs(self, client, operator_headers):
        alpha = await _create_hub(client, operator_headers, "alpha")
        beta = await _create_hub(client, operator_headers, "beta")
        await client.post(
            f"/admin/hubs/{alpha}/teams", json={"linear_team_id": "team-a"}, headers=operator_headers,
        )
        resp = await client.post(
            f"/admin/hubs/{beta}/teams", json={"linear_team_id": "team-a"}, headers=operator_headers,
        )
        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "MAPPING_CONFLICT"
        assert body["status"] == 409

    async def test_update_and_remove(self, client, operator_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.post(
            f"/admin/hubs/{hub_id}/teams", json={"linear_team_id": "team-a"}, headers=operator_headers,
        )
        mapping_id = resp.json()["id"]

        resp = await client.patch(
            f"/admin/hubs/{hub_id}/teams/{mapping_id}",
            json={"visible_project_ids": ["proj-a1"]},
            headers=operator_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["visible_project_ids"] == ["proj-a1"]

        resp = await client.patch(
            f"/admin/hubs/{hub_id}/teams/{mapping_id}", json={}, headers=operator_headers,
        )
        assert resp.status_code == 400

        resp = await client.delete(f"/admin/hubs/{hub_id}/teams/{mapping_id}", headers=operator_headers)
        assert resp.status_code == 204
        resp = await client.get(
            f"/admin/hubs/{hub_id}/teams?include_inactive=true", headers=operator_headers,
        )
        assert resp.json() == []


class TestMembers:
    async def test_invite_then_claim(self, client, operator_headers, auth_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.post(
            f"/admin/hubs/{hub_id}/members",
            json={"email": "Ann@Client.Example", "role": "view_only"},
            headers=operator_headers,
        )
        assert resp.status_code == 201
        member = resp.json()
        assert member["email"] == "ann@client.example"
        assert member["user_id"] is None

        resp = await client.get(
            f"/hubs/{hub_id}/me", headers=auth_headers("user_ann", "ann@client.example"),
        )
        assert resp.status_code == 200
        assert resp.json() == {"user_id": "user_ann", "hub_id": hub_id, "role": "view_only"}

        resp = await client.get(f"/admin/hubs/{hub_id}/members", headers=operator_headers)
        claimed = resp.json()[0]
        assert claimed["user_id"] == "user_ann"
        assert claimed["claimed_at"] is not None

    async def test_me_without_membership(self, client, operator_headers, auth_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.get(f"/hubs/{hub_id}/me", headers=auth_headers("user_other"))
        assert resp.status_code == 403

    async def test_me_anonymous(self, client, operator_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.get(f"/hubs/{hub_id}/me")
        assert resp.status_code == 401

    async def test_me_on_deactivated_hub(self, client, operator_headers):
        hub_id = await _create_hub(client, operator_headers)
        await client.delete(f"/admin/hubs/{hub_id}", headers=operator_headers)
        resp = await client.get(f"/hubs/{hub_id}/me", headers=operator_headers)
        assert resp.status_code == 404

    async def test_operator_is_admin_everywhere(self, client, operator_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.get(f"/hubs/{hub_id}/me", headers=operator_headers)
        assert resp.json()["role"] == "admin"

    async def test_role_update_and_removal(self, client, operator_headers):
        hub_id = await _create_hub(client, operator_headers)
        resp = await client.post(
            f"/admin/hubs/{hub_id}/members", json={"email": "a@b.example"}, headers=operator_headers,
        )
        member_id = resp.json()["id"]
        resp = await client.patch(
            f"/admin/hubs/{hub_id}/members/{member_id}", json={"role": "admin"}, headers=operator_headers,
        )
        assert resp.json()["role"] == "admin"

        resp = await client.patch(
            f"/admin/hubs/{hub_id}/members/{member_id}", json={"role": "owner"}, headers=operator_headers,
        )
        assert resp.status_code == 422

        resp = await client.delete(f"/admin/hubs/{hub_id}/members/{member_id}", headers=operator_headers)
        assert resp.status_code == 204


class TestGlobalAdmins:
    async def test_grant_operator(self, client, operator_headers, auth_headers):
        resp = await client.post(
            "/admin/admins", json={"user_id": "user_new", "email": "new@vendor.example"},
            headers=operator_headers,
        )
        assert resp.status_code == 201
        resp = await client.get("/admin/hubs", headers=auth_headers("user_new"))
        assert resp.status_code == 200
