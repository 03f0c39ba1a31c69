"""Hub, team mapping and membership management.

Mapping writes commit before invalidating the team -> hub cache so that the
next cache refresh can only observe the new state.
"""

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hubsync.common.exceptions import MappingConflictError, NotFoundError, ValidationError
from hubsync.hubs.mapping_cache import MappingCache
from hubsync.hubs.models import (
    ROLE_DEFAULT,
    VALID_ROLES,
    GlobalAdminModel,
    HubMemberModel,
    HubModel,
    TeamMappingModel,
)
from hubsync.mirror.models import SyncedTeamModel

logger = logging.getLogger(__name__)

VISIBILITY_FIELDS = (
    "visible_project_ids",
    "visible_initiative_ids",
    "visible_label_ids",
    "hidden_label_ids",
)


class HubService:
    """Operator-facing hub administration."""

    def __init__(self, cache: MappingCache, workspace_id: str = "workspace"):
        self.cache = cache
        self.workspace_id = workspace_id

    # ── Hubs ──

    async def create_hub(
        self,
        session: AsyncSession,
        name: str,
        slug: str,
        created_by: str,
        external_org_id: str | None = None,
    ) -> HubModel:
        existing = await self.get_by_slug(session, slug)
        if existing is not None:
            raise ValidationError(f"Hub slug '{slug}' is already taken")
        hub = HubModel(
            name=name,
            slug=slug,
            created_by=created_by,
            external_org_id=external_org_id,
        )
        session.add(hub)
        await session.flush()
        return hub

    async def get_by_id(self, session: AsyncSession, hub_id: str) -> HubModel | None:
        return await session.get(HubModel, hub_id)

    async def get_by_slug(self, session: AsyncSession, slug: str) -> HubModel | None:
        result = await session.execute(select(HubModel).where(HubModel.slug == slug))
        return result.scalar_one_or_none()

    async def get_active(self, session: AsyncSession, hub_id: str) -> HubModel:
        hub = await self.get_by_id(session, hub_id)
        if hub is None or not hub.is_active:
            raise NotFoundError("Hub not found")
        return hub

    async def list_hubs(self, session: AsyncSession, active_only: bool = False) -> list[HubModel]:
        query = select(HubModel).order_by(HubModel.created_at)
        if active_only:
            query = query.where(HubModel.is_active.is_(True))
        result = await session.execute(query)
        return list(result.scalars().all())

    async def update_hub(self, session: AsyncSession, hub_id: str, **updates: Any) -> HubModel:
        hub = await self.get_by_id(session, hub_id)
        if hub is None:
            raise NotFoundError("Hub not found")
        active_changed = "is_active" in updates and updates["is_active"] is not None \
            and updates["is_active"] != hub.is_active
        for field in ("name", "external_org_id", "is_active"):
            if field in updates and updates[field] is not None:
                setattr(hub, field, updates[field])
        await session.flush()
        if active_changed:
            # Deactivated hubs drop out of the team -> hub map.
            await session.commit()
            self.cache.invalidate()
        return hub

    async def deactivate_hub(self, session: AsyncSession, hub_id: str) -> HubModel:
        return await self.update_hub(session, hub_id, is_active=False)

    # ── Team mappings ──

    async def list_mappings(
        self, session: AsyncSession, hub_id: str, active_only: bool = True,
    ) -> list[TeamMappingModel]:
        query = select(TeamMappingModel).where(TeamMappingModel.hub_id == hub_id)
        if active_only:
            query = query.where(TeamMappingModel.is_active.is_(True))
        result = await session.execute(query.order_by(TeamMappingModel.created_at))
        return list(result.scalars().all())

    async def list_all_active_mappings(self, session: AsyncSession) -> list[TeamMappingModel]:
        result = await session.execute(
            select(TeamMappingModel)
            .join(HubModel, HubModel.id == TeamMappingModel.hub_id)
            .where(TeamMappingModel.is_active.is_(True), HubModel.is_active.is_(True))
            .order_by(TeamMappingModel.created_at)
        )
        return list(result.scalars().all())

    async def get_mapping(
        self, session: AsyncSession, hub_id: str, mapping_id: str,
    ) -> TeamMappingModel:
        result = await session.execute(
            select(TeamMappingModel).where(
                TeamMappingModel.id == mapping_id,
                TeamMappingModel.hub_id == hub_id,
            )
        )
        mapping = result.scalar_one_or_none()
        if mapping is None:
            raise NotFoundError("Team mapping not found")
        return mapping

    async def _assert_team_free(
        self, session: AsyncSession, team_id: str, exclude_mapping_id: str | None = None,
    ) -> None:
        query = select(TeamMappingModel).where(
            TeamMappingModel.linear_team_id == team_id,
            TeamMappingModel.is_active.is_(True),
        )
        if exclude_mapping_id is not None:
            query = query.where(TeamMappingModel.id != exclude_mapping_id)
        result = await session.execute(query)
        existing = result.scalars().first()
        if existing is not None:
            raise MappingConflictError(f"Team is already mapped to hub {existing.hub_id}")

    async def add_mapping(
        self,
        session: AsyncSession,
        hub_id: str,
        linear_team_id: str,
        **visibility: Optional[list[str]],
    ) -> TeamMappingModel:
        hub = await self.get_by_id(session, hub_id)
        if hub is None:
            raise NotFoundError("Hub not found")
        await self._assert_team_free(session, linear_team_id)

        team_name = await session.scalar(
            select(SyncedTeamModel.name).where(
                SyncedTeamModel.workspace_id == self.workspace_id,
                SyncedTeamModel.linear_id == linear_team_id,
            )
        )

        result = await session.execute(
            select(TeamMappingModel).where(
                TeamMappingModel.hub_id == hub_id,
                TeamMappingModel.linear_team_id == linear_team_id,
            )
        )
        mapping = result.scalar_one_or_none()
        if mapping is None:
            mapping = TeamMappingModel(hub_id=hub_id, linear_team_id=linear_team_id)
            session.add(mapping)
        mapping.is_active = True
        mapping.linear_team_name = team_name
        for field in VISIBILITY_FIELDS:
            setattr(mapping, field, list(visibility.get(field) or []))
        await session.flush()
        await session.commit()
        self.cache.invalidate()
        logger.info("Mapped team %s to hub %s", linear_team_id, hub_id)
        return mapping

    async def update_mapping(
        self,
        session: AsyncSession,
        hub_id: str,
        mapping_id: str,
        **updates: Any,
    ) -> TeamMappingModel:
        mapping = await self.get_mapping(session, hub_id, mapping_id)
        changes = {k: v for k, v in updates.items() if v is not None}
        if not changes:
            raise ValidationError("No valid fields to update")
        if changes.get("is_active") and not mapping.is_active:
            await self._assert_team_free(session, mapping.linear_team_id, exclude_mapping_id=mapping.id)
        for field in VISIBILITY_FIELDS:
            if field in changes:
                setattr(mapping, field, list(changes[field]))
        if "is_active" in changes:
            mapping.is_active = bool(changes["is_active"])
        await session.flush()
        await session.commit()
        self.cache.invalidate()
        return mapping

    async def remove_mapping(self, session: AsyncSession, hub_id: str, mapping_id: str) -> None:
        mapping = await self.get_mapping(session, hub_id, mapping_id)
        await session.delete(mapping)
        await session.flush()
        await session.commit()
        self.cache.invalidate()
        logger.info("Removed team mapping %s from hub %s", mapping_id, hub_id)

    # ── Members ──

    async def invite_member(
        self,
        session: AsyncSession,
        hub_id: str,
        email: str,
        role: str = ROLE_DEFAULT,
        invited_by: str | None = None,
    ) -> HubMemberModel:
        if role not in VALID_ROLES:
            raise ValidationError(f"Invalid role: {role}")
        await self.get_active(session, hub_id)
        email = email.strip().lower()
        result = await session.execute(
            select(HubMemberModel).where(
                HubMemberModel.hub_id == hub_id,
                func.lower(HubMemberModel.email) == email,
            )
        )
        if result.scalar_one_or_none() is not None:
            raise ValidationError(f"{email} is already invited to this hub")
        member = HubMemberModel(hub_id=hub_id, email=email, role=role, invited_by=invited_by)
        session.add(member)
        await session.flush()
        return member

    async def list_members(self, session: AsyncSession, hub_id: str) -> list[HubMemberModel]:
        result = await session.execute(
            select(HubMemberModel)
            .where(HubMemberModel.hub_id == hub_id)
            .order_by(HubMemberModel.created_at)
        )
        return list(result.scalars().all())

    async def _get_member(self, session: AsyncSession, hub_id: str, member_id: str) -> HubMemberModel:
        result = await session.execute(
            select(HubMemberModel).where(
                HubMemberModel.id == member_id, HubMemberModel.hub_id == hub_id,
            )
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("Member not found")
        return member

    async def update_member_role(
        self, session: AsyncSession, hub_id: str, member_id: str, role: str,
    ) -> HubMemberModel:
        if role not in VALID_ROLES:
            raise ValidationError(f"Invalid role: {role}")
        member = await self._get_member(session, hub_id, member_id)
        member.role = role
        await session.flush()
        return member

    async def remove_member(self, session: AsyncSession, hub_id: str, member_id: str) -> None:
        member = await self._get_member(session, hub_id, member_id)
        await session.delete(member)
        await session.flush()

    # ── Global admins ──

    async def add_global_admin(self, session: AsyncSession, user_id: str, email: str = "") -> GlobalAdminModel:
        admin = await session.get(GlobalAdminModel, user_id)
        if admin is None:
            admin = GlobalAdminModel(user_id=user_id, email=email.lower())
            session.add(admin)
            await session.flush()
        return admin

    async def is_global_admin(self, session: AsyncSession, user_id: str) -> bool:
        # No caching: operator changes must take effect immediately.
        return await session.get(GlobalAdminModel, user_id) is not None
