"""Pydantic schemas for webhook ingress and subscription endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class WebhookAck(BaseModel):
    success: bool = True


class WebhookConnect(BaseModel):
    # None registers an org-wide webhook covering all public teams.
    team_id: Optional[str] = None


class WebhookRegister(BaseModel):
    """Store a signing secret for a webhook created outside hubsync."""
    secret: str
    webhook_id: Optional[str] = None
    team_id: Optional[str] = None


class WebhookSubscriptionResponse(BaseModel):
    """Subscription view; the signing secret is never returned."""
    id: str
    webhook_id: Optional[str] = None
    linear_team_id: Optional[str] = None
    resource_types: list[str] = []
    is_active: bool
    created_by: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
