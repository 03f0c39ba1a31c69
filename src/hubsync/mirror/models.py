"""SQLAlchemy models for the shared upstream mirror.

Rows are keyed by (workspace_id, linear_id), never by hub.  Which hub may see
a row is decided at read time from the team mappings.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hubsync.common.models import Base, generate_uuid, utcnow

NATURAL_KEY = ("workspace_id", "linear_id")


class MirrorMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    linear_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    data: Mapped[dict] = mapped_column(JSON, default=dict)


class SyncedTeamModel(Base, MirrorMixin):
    __tablename__ = "synced_teams"
    __table_args__ = (UniqueConstraint(*NATURAL_KEY, name="uq_synced_teams_natural"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    key: Mapped[str | None] = mapped_column(String(32), nullable=True)
    parent_team_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class SyncedProjectModel(Base, MirrorMixin):
    __tablename__ = "synced_projects"
    __table_args__ = (UniqueConstraint(*NATURAL_KEY, name="uq_synced_projects_natural"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    status_name: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    lead_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)


class SyncedIssueModel(Base, MirrorMixin):
    __tablename__ = "synced_issues"
    __table_args__ = (UniqueConstraint(*NATURAL_KEY, name="uq_synced_issues_natural"),)

    identifier: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    project_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    state_name: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    assignee_name: Mapped[str | None] = mapped_column(String(255), nullable=True)


class SyncedCommentModel(Base, MirrorMixin):
    __tablename__ = "synced_comments"
    __table_args__ = (UniqueConstraint(*NATURAL_KEY, name="uq_synced_comments_natural"),)

    issue_linear_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    author_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)


class SyncedInitiativeModel(Base, MirrorMixin):
    __tablename__ = "synced_initiatives"
    __table_args__ = (UniqueConstraint(*NATURAL_KEY, name="uq_synced_initiatives_natural"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    status: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    owner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
