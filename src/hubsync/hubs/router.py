"""Hub administration router: hubs, team mappings, members, operators."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from hubsync.common.security import optional_identity, require_operator
from hubsync.hubs.auth import Identity, raise_for_failure
from hubsync.hubs.schemas import (
    GlobalAdminCreate,
    HubCreate,
    HubResponse,
    HubUpdate,
    MeResponse,
    MemberInvite,
    MemberResponse,
    MemberUpdate,
    TeamMappingCreate,
    TeamMappingResponse,
    TeamMappingUpdate,
)
from hubsync.common.exceptions import NotFoundError

router = APIRouter()


def _get_service():
    from hubsync.deps import get_hub_service
    return get_hub_service()


def _get_guard():
    from hubsync.deps import get_auth_guard
    return get_auth_guard()


def _get_db():
    from hubsync.deps import get_db
    return get_db()


# ── Hubs ──

@router.post("/admin/hubs", response_model=HubResponse, status_code=201)
async def create_hub(body: HubCreate, operator: Identity = Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        hub = await svc.create_hub(
            session,
            name=body.name,
            slug=body.slug,
            created_by=operator.user_id,
            external_org_id=body.external_org_id,
        )
        return HubResponse.model_validate(hub)


@router.get("/admin/hubs", response_model=list[HubResponse])
async def list_hubs(
    active_only: bool = Query(False),
    _=Depends(require_operator),
):
    svc = _get_service()
    async with _get_db().get_session() as session:
        hubs = await svc.list_hubs(session, active_only=active_only)
        return [HubResponse.model_validate(h) for h in hubs]


@router.get("/admin/hubs/{hub_id}", response_model=HubResponse)
async def get_hub(hub_id: str, _=Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        hub = await svc.get_by_id(session, hub_id)
        if hub is None:
            raise NotFoundError("Hub not found")
        return HubResponse.model_validate(hub)


@router.patch("/admin/hubs/{hub_id}", response_model=HubResponse)
async def update_hub(hub_id: str, body: HubUpdate, _=Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        hub = await svc.update_hub(session, hub_id, **body.model_dump(exclude_unset=True))
        return HubResponse.model_validate(hub)


@router.delete("/admin/hubs/{hub_id}", response_model=HubResponse)
async def deactivate_hub(hub_id: str, _=Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        hub = await svc.deactivate_hub(session, hub_id)
        return HubResponse.model_validate(hub)


# ── Team mappings ──

@router.get("/admin/hubs/{hub_id}/teams", response_model=list[TeamMappingResponse])
async def list_team_mappings(
    hub_id: str,
    include_inactive: bool = Query(False),
    _=Depends(require_operator),
):
    svc = _get_service()
    async with _get_db().get_session() as session:
        mappings = await svc.list_mappings(session, hub_id, active_only=not include_inactive)
        return [TeamMappingResponse.model_validate(m) for m in mappings]


@router.post("/admin/hubs/{hub_id}/teams", response_model=TeamMappingResponse, status_code=201)
async def add_team_mapping(
    hub_id: str, body: TeamMappingCreate, _=Depends(require_operator),
):
    svc = _get_service()
    async with _get_db().get_session() as session:
        mapping = await svc.add_mapping(
            session,
            hub_id,
            body.linear_team_id,
            visible_project_ids=body.visible_project_ids,
            visible_initiative_ids=body.visible_initiative_ids,
            visible_label_ids=body.visible_label_ids,
            hidden_label_ids=body.hidden_label_ids,
        )
        return TeamMappingResponse.model_validate(mapping)


@router.patch("/admin/hubs/{hub_id}/teams/{mapping_id}", response_model=TeamMappingResponse)
async def update_team_mapping(
    hub_id: str, mapping_id: str, body: TeamMappingUpdate, _=Depends(require_operator),
):
    svc = _get_service()
    async with _get_db().get_session() as session:
        mapping = await svc.update_mapping(
            session, hub_id, mapping_id, **body.model_dump(exclude_unset=True),
        )
        return TeamMappingResponse.model_validate(mapping)


@router.delete("/admin/hubs/{hub_id}/teams/{mapping_id}", status_code=204)
async def remove_team_mapping(hub_id: str, mapping_id: str, _=Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        await svc.remove_mapping(session, hub_id, mapping_id)
    return Response(status_code=204)


# ── Members ──

@router.get("/admin/hubs/{hub_id}/members", response_model=list[MemberResponse])
async def list_members(hub_id: str, _=Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        members = await svc.list_members(session, hub_id)
        return [MemberResponse.model_validate(m) for m in members]


@router.post("/admin/hubs/{hub_id}/members", response_model=MemberResponse, status_code=201)
async def invite_member(
    hub_id: str, body: MemberInvite, operator: Identity = Depends(require_operator),
):
    svc = _get_service()
    async with _get_db().get_session() as session:
        member = await svc.invite_member(
            session, hub_id, body.email, role=body.role, invited_by=operator.user_id,
        )
        return MemberResponse.model_validate(member)


@router.patch("/admin/hubs/{hub_id}/members/{member_id}", response_model=MemberResponse)
async def update_member(
    hub_id: str, member_id: str, body: MemberUpdate, _=Depends(require_operator),
):
    svc = _get_service()
    async with _get_db().get_session() as session:
        member = await svc.update_member_role(session, hub_id, member_id, body.role)
        return MemberResponse.model_validate(member)


@router.delete("/admin/hubs/{hub_id}/members/{member_id}", status_code=204)
async def remove_member(hub_id: str, member_id: str, _=Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        await svc.remove_member(session, hub_id, member_id)
    return Response(status_code=204)


# ── Operators ──

@router.post("/admin/admins", status_code=201)
async def add_global_admin(body: GlobalAdminCreate, _=Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        admin = await svc.add_global_admin(session, body.user_id, body.email)
        return {"user_id": admin.user_id, "email": admin.email}


# ── Caller ──

@router.get("/hubs/{hub_id}/me", response_model=MeResponse)
async def hub_me(hub_id: str, identity: Identity | None = Depends(optional_identity)):
    """Resolve (and, for a pending invite, claim) the caller's hub role."""
    guard = _get_guard()
    async with _get_db().get_session() as session:
        auth = raise_for_failure(await guard.authorize(session, hub_id, identity))
        return MeResponse(user_id=auth.identity.user_id, hub_id=hub_id, role=auth.role)
