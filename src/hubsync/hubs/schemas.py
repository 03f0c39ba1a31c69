"""Pydantic schemas for hub administration endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

SLUG_PATTERN = r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$"
ROLE_PATTERN = r"^(default|view_only|admin)$"


class HubCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100, pattern=SLUG_PATTERN)
    external_org_id: Optional[str] = None


class HubUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    external_org_id: Optional[str] = None
    is_active: Optional[bool] = None


class HubResponse(BaseModel):
    id: str
    name: str
    slug: str
    is_active: bool
    external_org_id: Optional[str] = None
    created_by: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TeamMappingCreate(BaseModel):
    linear_team_id: str = Field(..., min_length=1, max_length=64)
    visible_project_ids: list[str] = []
    visible_initiative_ids: list[str] = []
    visible_label_ids: list[str] = []
    hidden_label_ids: list[str] = []


class TeamMappingUpdate(BaseModel):
    visible_project_ids: Optional[list[str]] = None
    visible_initiative_ids: Optional[list[str]] = None
    visible_label_ids: Optional[list[str]] = None
    hidden_label_ids: Optional[list[str]] = None
    is_active: Optional[bool] = None


class TeamMappingResponse(BaseModel):
    id: str
    hub_id: str
    linear_team_id: str
    linear_team_name: Optional[str] = None
    visible_project_ids: list[str] = []
    visible_initiative_ids: list[str] = []
    visible_label_ids: list[str] = []
    hidden_label_ids: list[str] = []
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberInvite(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    role: str = Field("default", pattern=ROLE_PATTERN)


class MemberUpdate(BaseModel):
    role: str = Field(..., pattern=ROLE_PATTERN)


class MemberResponse(BaseModel):
    id: str
    hub_id: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: str
    invited_by: Optional[str] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class GlobalAdminCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255)
    email: str = ""


class MeResponse(BaseModel):
    user_id: str
    hub_id: str
    role: str
