"""SQLAlchemy model for inbound webhook subscriptions."""

from sqlalchemy import Boolean, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from hubsync.common.models import Base, TimestampMixin, generate_uuid


class WebhookSubscriptionModel(Base, TimestampMixin):
    __tablename__ = "webhook_subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    # Upstream webhook id; NULL for secrets registered by hand.
    webhook_id: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True, index=True)
    # NULL = org-wide (all public teams).
    linear_team_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    secret: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_types: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
