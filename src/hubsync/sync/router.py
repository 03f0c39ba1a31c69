"""Sync, reconcile and workspace credential router."""

from fastapi import APIRouter, Depends
from sqlalchemy import select

from hubsync.common.config import get_settings
from hubsync.common.security import require_cron_secret, require_operator
from hubsync.hubs.auth import Identity
from hubsync.mirror.models import (
    SyncedCommentModel,
    SyncedInitiativeModel,
    SyncedIssueModel,
    SyncedProjectModel,
    SyncedTeamModel,
)
from hubsync.mirror.upsert import count_rows
from hubsync.sync.models import SyncStateModel
from hubsync.sync.schemas import (
    EntityCountsResponse,
    HubSyncResponse,
    ReconcileResponse,
    SyncStateResponse,
    SyncStatusResponse,
    SyncTotalsResponse,
    WorkspaceTokenResponse,
    WorkspaceTokenUpdate,
)

router = APIRouter()


def _get_sync():
    from hubsync.deps import get_sync_service
    return get_sync_service()


def _get_reconciler():
    from hubsync.deps import get_reconciler
    return get_reconciler()


def _get_db():
    from hubsync.deps import get_db
    return get_db()


async def _has_active_hubs() -> bool:
    from hubsync.deps import get_hub_service

    async with _get_db().get_session() as session:
        return bool(await get_hub_service().list_hubs(session, active_only=True))


# ── Reconcile ──

@router.get("/sync/reconcile", response_model=ReconcileResponse)
async def cron_reconcile(_=Depends(require_cron_secret)):
    """Scheduler entry point, guarded by the shared cron secret."""
    if not await _has_active_hubs():
        return ReconcileResponse(message="No active hubs")
    totals = await _get_reconciler().reconcile_all()
    return ReconcileResponse(**totals.to_dict())


@router.post("/sync/reconcile", response_model=ReconcileResponse)
async def manual_reconcile(_=Depends(require_operator)):
    totals = await _get_reconciler().reconcile_all()
    return ReconcileResponse(**totals.to_dict())


@router.post("/admin/hubs/{hub_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_hub(hub_id: str, _=Depends(require_operator)):
    totals = await _get_reconciler().reconcile_all(hub_id=hub_id)
    return ReconcileResponse(**totals.to_dict())


# ── Full sync ──

@router.post("/admin/hubs/{hub_id}/sync", response_model=HubSyncResponse)
async def sync_hub(hub_id: str, _=Depends(require_operator)):
    result = await _get_sync().run_hub_sync(hub_id)
    return HubSyncResponse(**result.to_dict())


@router.post("/admin/sync", response_model=SyncTotalsResponse)
async def sync_all_hubs(_=Depends(require_operator)):
    totals = await _get_sync().run_all_hubs_sync()
    return SyncTotalsResponse(**totals.to_dict())


@router.get("/sync/status", response_model=SyncStatusResponse)
async def sync_status(_=Depends(require_operator)):
    from hubsync.deps import get_hub_service, get_webhook_service

    workspace_id = get_settings().workspace_id
    async with _get_db().get_session() as session:
        subs = await get_webhook_service().list_subscriptions(session, active_only=True)
        hubs = await get_hub_service().list_hubs(session, active_only=True)
        counts = EntityCountsResponse(
            teams=await count_rows(session, SyncedTeamModel, workspace_id),
            initiatives=await count_rows(session, SyncedInitiativeModel, workspace_id),
            projects=await count_rows(session, SyncedProjectModel, workspace_id),
            issues=await count_rows(session, SyncedIssueModel, workspace_id),
            comments=await count_rows(session, SyncedCommentModel, workspace_id),
        )
        result = await session.execute(select(SyncStateModel).order_by(SyncStateModel.scope))
        states = [SyncStateResponse.model_validate(s) for s in result.scalars().all()]
    return SyncStatusResponse(
        connected=bool(subs),
        hub_count=len(hubs),
        mirror_counts=counts,
        states=states,
    )


# ── Workspace credential ──

@router.put("/admin/workspace/token", response_model=WorkspaceTokenResponse)
async def set_workspace_token(
    body: WorkspaceTokenUpdate, operator: Identity = Depends(require_operator),
):
    """Validate the token with a viewer query, then store it."""
    from hubsync.deps import get_workspace_service

    async with _get_db().get_session() as session:
        viewer = await get_workspace_service().set_api_token(
            session, body.api_token, updated_by=operator.user_id,
        )
    return WorkspaceTokenResponse(viewer_id=viewer.get("id"), viewer_name=viewer.get("name"))
