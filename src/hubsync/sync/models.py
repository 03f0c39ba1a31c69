"""SQLAlchemy models for sync bookkeeping and workspace settings."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hubsync.common.models import Base, TimestampMixin


class SyncStateModel(Base, TimestampMixin):
    """Per-scope watermark for incremental reconciliation."""

    __tablename__ = "sync_states"

    scope: Mapped[str] = mapped_column(String(128), primary_key=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_status: Mapped[str] = mapped_column(String(20), nullable=False, default="never")
    last_error: Mapped[str | None] = mapped_column(String(1024), nullable=True)


class WorkspaceSettingModel(Base, TimestampMixin):
    __tablename__ = "workspace_settings"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
