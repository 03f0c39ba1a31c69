"""Pydantic schemas for the hub read endpoints.

``IssueResponse`` has no assignee field, so even a projection bug upstream of
the router cannot serialize one.
"""

from typing import Optional

from pydantic import BaseModel, Field


class StateResponse(BaseModel):
    id: str = ""
    name: str
    color: str = ""
    type: str = ""


class LabelResponse(BaseModel):
    id: str
    name: str = ""
    color: str = ""


class IssueResponse(BaseModel):
    id: str
    identifier: str
    title: str
    description: Optional[str] = None
    priority: int = 0
    priority_label: str = ""
    url: str = ""
    due_date: Optional[str] = None
    state: StateResponse
    labels: list[LabelResponse] = []
    team_id: Optional[str] = None
    project_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = {"extra": "ignore"}


class CommentResponse(BaseModel):
    id: str
    issue_id: str
    body: str
    author_name: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CommentCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=10000)


class TeamResponse(BaseModel):
    id: str
    name: str
    key: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None


class TeamStatsResponse(BaseModel):
    project_count: int = 0
    open_issue_count: int = 0
    last_activity: Optional[str] = None


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[float] = None
    target_date: Optional[str] = None
    url: str = ""
    team_ids: list[str] = []
    updated_at: Optional[str] = None


class InitiativeResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    status: Optional[str] = None
    target_date: Optional[str] = None
    updated_at: Optional[str] = None


class MetadataResponse(BaseModel):
    states: list[StateResponse] = []
    labels: list[LabelResponse] = []
