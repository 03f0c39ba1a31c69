"""SQLAlchemy models for hubs, team mappings, memberships and operators."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hubsync.common.models import Base, TimestampMixin, generate_uuid

ROLE_DEFAULT = "default"
ROLE_VIEW_ONLY = "view_only"
ROLE_ADMIN = "admin"
VALID_ROLES: frozenset[str] = frozenset({ROLE_DEFAULT, ROLE_VIEW_ONLY, ROLE_ADMIN})


class HubModel(Base, TimestampMixin):
    __tablename__ = "hubs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    external_org_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    created_by: Mapped[str] = mapped_column(String(255), nullable=False, default="")


class TeamMappingModel(Base, TimestampMixin):
    __tablename__ = "hub_team_mappings"
    __table_args__ = (
        UniqueConstraint("hub_id", "linear_team_id", name="uq_hub_team"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    hub_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hubs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    linear_team_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    linear_team_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Empty list = everything of that kind is visible.
    visible_project_ids: Mapped[list] = mapped_column(JSON, default=list)
    visible_initiative_ids: Mapped[list] = mapped_column(JSON, default=list)
    visible_label_ids: Mapped[list] = mapped_column(JSON, default=list)
    # Issues carrying any of these labels are excluded entirely.
    hidden_label_ids: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)


class HubMemberModel(Base, TimestampMixin):
    __tablename__ = "hub_members"
    __table_args__ = (
        UniqueConstraint("hub_id", "user_id", name="uq_hub_member"),
        UniqueConstraint("hub_id", "email", name="uq_hub_member_email"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    hub_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("hubs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # NULL until the invite is claimed on first sign-in.
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_DEFAULT)
    invited_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class GlobalAdminModel(Base, TimestampMixin):
    __tablename__ = "global_admins"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
