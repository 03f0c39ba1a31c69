"""Pydantic schemas for sync, reconcile and workspace endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class EntityCountsResponse(BaseModel):
    teams: int = 0
    initiatives: int = 0
    projects: int = 0
    issues: int = 0
    comments: int = 0


class TeamSyncResponse(BaseModel):
    team_id: str
    success: bool
    counts: EntityCountsResponse
    error: Optional[str] = None


class HubSyncResponse(BaseModel):
    success: bool
    hub_id: str
    counts: EntityCountsResponse
    errors: int = 0
    team_results: list[TeamSyncResponse] = []
    error: Optional[str] = None


class SyncTotalsResponse(BaseModel):
    hubs: int = 0
    teams_synced: int = 0
    counts: EntityCountsResponse
    errors: int = 0


class ReconcileResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    hubs: int = 0
    teams_reconciled: int = 0
    counts: EntityCountsResponse = EntityCountsResponse()
    errors: int = 0
    team_results: list[TeamSyncResponse] = []


class SyncStateResponse(BaseModel):
    scope: str
    last_synced_at: Optional[datetime] = None
    last_status: str
    last_error: Optional[str] = None

    model_config = {"from_attributes": True}


class SyncStatusResponse(BaseModel):
    connected: bool
    hub_count: int
    mirror_counts: EntityCountsResponse
    states: list[SyncStateResponse] = []


class WorkspaceTokenUpdate(BaseModel):
    api_token: str = Field(..., min_length=8)


class WorkspaceTokenResponse(BaseModel):
    success: bool = True
    viewer_id: Optional[str] = None
    viewer_name: Optional[str] = None
