"""Workspace-level settings: the upstream credential and sync watermarks."""

from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from hubsync.common.config import HubSyncSettings
from hubsync.common.exceptions import CredentialMissingError, UpstreamAPIError
from hubsync.sync.models import SyncStateModel, WorkspaceSettingModel
from hubsync.upstream.client import LinearClient

TOKEN_KEY = "linear_api_token"

ClientFactory = Callable[[str], LinearClient]


def team_scope(team_id: str) -> str:
    return f"team:{team_id}"


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class WorkspaceService:
    """Credential storage and per-scope sync state."""

    def __init__(self, settings: HubSyncSettings, client_factory: ClientFactory | None = None):
        self.settings = settings
        self._client_factory = client_factory

    def make_client(self, api_token: str) -> LinearClient:
        if self._client_factory is not None:
            return self._client_factory(api_token)
        return LinearClient(
            api_token,
            api_url=self.settings.linear_api_url,
            timeout=self.settings.linear_timeout,
            page_size=self.settings.linear_page_size,
        )

    # ── Settings ──

    async def get_setting(self, session: AsyncSession, key: str) -> Optional[str]:
        row = await session.get(WorkspaceSettingModel, key)
        return row.value if row else None

    async def set_setting(
        self, session: AsyncSession, key: str, value: str, updated_by: str | None = None,
    ) -> None:
        row = await session.get(WorkspaceSettingModel, key)
        if row is None:
            session.add(WorkspaceSettingModel(key=key, value=value, updated_by=updated_by))
        else:
            row.value = value
            row.updated_by = updated_by
        await session.flush()

    async def get_api_token(self, session: AsyncSession) -> str:
        """Stored token first, then the HUBSYNC_LINEAR_API_TOKEN fallback."""
        token = await self.get_setting(session, TOKEN_KEY) or self.settings.linear_api_token
        if not token:
            raise CredentialMissingError(
                "No upstream API token configured. Store one via /admin/workspace/token."
            )
        return token

    async def set_api_token(
        self, session: AsyncSession, token: str, updated_by: str,
    ) -> dict:
        """Validate the token against the upstream viewer query, then store it."""
        client = self.make_client(token)
        try:
            viewer = await client.viewer()
        except UpstreamAPIError as e:
            raise UpstreamAPIError(f"Invalid upstream API token: {e.message}") from e
        finally:
            await client.close()
        await self.set_setting(session, TOKEN_KEY, token, updated_by=updated_by)
        return viewer

    # ── Sync state ──

    async def get_last_synced_at(self, session: AsyncSession, scope: str) -> Optional[datetime]:
        state = await session.get(SyncStateModel, scope)
        if state is None:
            return None
        return as_aware(state.last_synced_at)

    async def mark_synced(self, session: AsyncSession, scope: str, synced_at: datetime) -> None:
        state = await session.get(SyncStateModel, scope)
        if state is None:
            state = SyncStateModel(scope=scope)
            session.add(state)
        state.last_synced_at = synced_at
        state.last_status = "success"
        state.last_error = None
        await session.commit()

    async def mark_failed(self, session: AsyncSession, scope: str, error: str) -> None:
        state = await session.get(SyncStateModel, scope)
        if state is None:
            state = SyncStateModel(scope=scope)
            session.add(state)
        # watermark is left where it was
        state.last_status = "failed"
        state.last_error = error[:1024]
        await session.commit()
