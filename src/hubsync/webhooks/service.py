"""Inbound webhook verification, routing and subscription management."""

import enum
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hubsync.common.config import HubSyncSettings
from hubsync.common.exceptions import HubSyncError, NotFoundError, UpstreamAPIError
from hubsync.hubs.mapping_cache import MappingCache
from hubsync.mirror import mapper
from hubsync.mirror.models import (
    SyncedCommentModel,
    SyncedInitiativeModel,
    SyncedIssueModel,
    SyncedProjectModel,
)
from hubsync.mirror.upsert import delete_by_natural_key, upsert_one
from hubsync.upstream.client import LinearClient
from hubsync.webhooks.models import WebhookSubscriptionModel

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "linear-signature"
DEFAULT_RESOURCE_TYPES = ["Issue", "Comment", "Project", "Initiative"]

STATUS_PROCESSED = "processed"
STATUS_IGNORED_UNTRACKED = "ignored_untracked"
STATUS_IGNORED_UNHANDLED = "ignored_unhandled"
STATUS_FAILED = "failed"


def sign_payload(raw_body: bytes, secret: str) -> str:
    """Compute the HMAC-SHA256 hex digest the upstream sends for a body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str, secret: str) -> bool:
    if not signature or not secret:
        return False
    expected = sign_payload(raw_body, secret)
    return hmac.compare_digest(signature.strip().lower().encode(), expected.encode())


class EventKind(str, enum.Enum):
    ISSUE = "Issue"
    COMMENT = "Comment"
    PROJECT = "Project"
    INITIATIVE = "Initiative"
    UNHANDLED = "unhandled"

    @classmethod
    def parse(cls, value: Any) -> "EventKind":
        for kind in cls:
            if kind is not cls.UNHANDLED and kind.value == value:
                return kind
        return cls.UNHANDLED


@dataclass
class RouteOutcome:
    status: str
    kind: EventKind
    action: str = ""
    entity_id: Optional[str] = None
    team_id: Optional[str] = None
    detail: str = ""

    @property
    def mutated(self) -> bool:
        return self.status == STATUS_PROCESSED


def _ids(value: Any) -> list[str]:
    # Connection fields arrive either flattened or as {"nodes": [...]}.
    if isinstance(value, dict):
        value = value.get("nodes")
    if not isinstance(value, list):
        return []
    return [item["id"] for item in value if isinstance(item, dict) and item.get("id")]


def project_team_ids(data: dict[str, Any]) -> list[str]:
    team_ids = data.get("teamIds")
    if isinstance(team_ids, list):
        return [t for t in team_ids if isinstance(t, str)]
    return _ids(data.get("teams"))


def extract_team_id(kind: EventKind, data: dict[str, Any]) -> Optional[str]:
    """Team key carried by the payload itself, if any.

    Projects can span teams (see ``project_team_ids``) and initiatives are
    org-level, so both return None here.
    """
    if kind is EventKind.ISSUE:
        return mapper.issue_team_id(data)
    if kind is EventKind.COMMENT:
        issue = data.get("issue")
        if isinstance(issue, dict):
            return issue.get("teamId") or mapper._nested(issue, "team")
    return None


_HANDLERS: dict[EventKind, tuple[type, Callable[..., dict[str, Any]]]] = {
    EventKind.ISSUE: (SyncedIssueModel, mapper.map_issue),
    EventKind.COMMENT: (SyncedCommentModel, mapper.map_comment),
    EventKind.PROJECT: (SyncedProjectModel, mapper.map_project),
    EventKind.INITIATIVE: (SyncedInitiativeModel, mapper.map_initiative),
}


class WebhookService:
    """Authenticates push events and applies them to the mirror."""

    def __init__(self, settings: HubSyncSettings, cache: MappingCache):
        self.settings = settings
        self.cache = cache
        self.workspace_id = settings.workspace_id

    @property
    def ingress_url(self) -> str:
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}{self.settings.api_prefix}/webhooks/linear"

    # ── Verification ──

    async def authenticate(
        self,
        session: AsyncSession,
        raw_body: bytes,
        signature: str | None,
        webhook_id: str | None = None,
    ) -> Optional[WebhookSubscriptionModel]:
        """Return the subscription whose secret signed ``raw_body``.

        A known ``webhook_id`` is checked against its own secret only.
        Otherwise every active subscription is tried in turn.
        """
        if not signature:
            return None

        if isinstance(webhook_id, str) and webhook_id:
            result = await session.execute(
                select(WebhookSubscriptionModel).where(
                    WebhookSubscriptionModel.webhook_id == webhook_id,
                    WebhookSubscriptionModel.is_active.is_(True),
                )
            )
            sub = result.scalar_one_or_none()
            if sub is not None:
                return sub if verify_signature(raw_body, signature, sub.secret) else None

        result = await session.execute(
            select(WebhookSubscriptionModel).where(WebhookSubscriptionModel.is_active.is_(True))
        )
        for sub in result.scalars().all():
            if verify_signature(raw_body, signature, sub.secret):
                return sub
        return None

    # ── Routing ──

    async def resolve_team_id(
        self, session: AsyncSession, kind: EventKind, data: dict[str, Any],
    ) -> Optional[str]:
        team_id = extract_team_id(kind, data)
        if team_id or kind is not EventKind.COMMENT:
            return team_id
        issue_id = mapper.comment_issue_id(data)
        if not issue_id:
            return None
        return await session.scalar(
            select(SyncedIssueModel.team_id).where(
                SyncedIssueModel.workspace_id == self.workspace_id,
                SyncedIssueModel.linear_id == issue_id,
            )
        )

    async def _is_relevant(
        self, session: AsyncSession, kind: EventKind, data: dict[str, Any],
    ) -> tuple[bool, Optional[str]]:
        if kind is EventKind.INITIATIVE:
            return True, None
        if kind is EventKind.PROJECT:
            tracked = await self.cache.all_team_ids()
            for team_id in project_team_ids(data):
                if team_id in tracked:
                    return True, team_id
            return False, None
        team_id = await self.resolve_team_id(session, kind, data)
        if team_id is None:
            # Unresolvable team: drop rather than risk ingesting foreign data.
            return False, None
        return await self.cache.is_team_tracked(team_id), team_id

    async def route(self, session: AsyncSession, payload: dict[str, Any]) -> RouteOutcome:
        kind = EventKind.parse(payload.get("type"))
        action = str(payload.get("action") or "")
        data = payload.get("data")

        if kind is EventKind.UNHANDLED:
            logger.info("Ignoring unhandled webhook event type: %s", payload.get("type"))
            return RouteOutcome(STATUS_IGNORED_UNHANDLED, kind, action)

        if not isinstance(data, dict) or not data.get("id"):
            logger.warning("Webhook %s event without an entity id", kind.value)
            return RouteOutcome(STATUS_FAILED, kind, action, detail="missing entity id")
        entity_id = data["id"]

        try:
            relevant, team_id = await self._is_relevant(session, kind, data)
            if not relevant:
                logger.debug("Dropping %s %s for untracked team", kind.value, entity_id)
                return RouteOutcome(STATUS_IGNORED_UNTRACKED, kind, action, entity_id)

            model, map_row = _HANDLERS[kind]
            if action == "remove":
                await delete_by_natural_key(session, model, self.workspace_id, entity_id)
            else:
                # create and update share one path so out-of-order delivery converges.
                row = map_row(data, self.workspace_id, now=datetime.now(timezone.utc))
                await upsert_one(session, model, row)
        except Exception as e:
            logger.exception(
                "Webhook handler error for %s %s", kind.value, entity_id,
                extra={"event_type": kind.value, "entity_id": entity_id},
            )
            await session.rollback()
            return RouteOutcome(STATUS_FAILED, kind, action, entity_id, detail=str(e))

        return RouteOutcome(STATUS_PROCESSED, kind, action, entity_id, team_id)

    # ── Subscriptions ──

    async def list_subscriptions(
        self, session: AsyncSession, active_only: bool = False,
    ) -> list[WebhookSubscriptionModel]:
        query = select(WebhookSubscriptionModel)
        if active_only:
            query = query.where(WebhookSubscriptionModel.is_active.is_(True))
        result = await session.execute(query.order_by(WebhookSubscriptionModel.created_at.desc()))
        return list(result.scalars().all())

    async def add_subscription(
        self,
        session: AsyncSession,
        secret: str,
        webhook_id: str | None = None,
        linear_team_id: str | None = None,
        resource_types: list[str] | None = None,
        created_by: str | None = None,
    ) -> WebhookSubscriptionModel:
        sub = WebhookSubscriptionModel(
            webhook_id=webhook_id,
            linear_team_id=linear_team_id,
            secret=secret,
            resource_types=resource_types or list(DEFAULT_RESOURCE_TYPES),
            created_by=created_by,
        )
        session.add(sub)
        await session.flush()
        return sub

    async def connect(
        self,
        session: AsyncSession,
        client: LinearClient,
        created_by: str,
        team_id: str | None = None,
    ) -> WebhookSubscriptionModel:
        """Register a webhook upstream and store its signing secret."""
        result = await session.execute(
            select(WebhookSubscriptionModel).where(
                WebhookSubscriptionModel.is_active.is_(True),
                WebhookSubscriptionModel.webhook_id.is_not(None),
                WebhookSubscriptionModel.linear_team_id.is_(None)
                if team_id is None
                else WebhookSubscriptionModel.linear_team_id == team_id,
            )
        )
        if result.scalars().first() is not None:
            scope = f"team {team_id}" if team_id else "org-wide"
            raise HubSyncError(
                f"An active {scope} webhook already exists",
                code="WEBHOOK_EXISTS",
                status_code=409,
            )

        secret = secrets.token_hex(32)
        webhook = await client.create_webhook(
            self.ingress_url, secret, team_id=team_id, resource_types=DEFAULT_RESOURCE_TYPES,
        )
        sub = await self.add_subscription(
            session,
            secret,
            webhook_id=webhook["id"],
            linear_team_id=team_id,
            created_by=created_by,
        )
        logger.info("Connected webhook %s (%s)", webhook["id"], team_id or "org-wide")
        return sub

    async def disconnect(
        self, session: AsyncSession, client: LinearClient | None, subscription_id: str,
    ) -> None:
        """Delete a subscription; the upstream delete is best-effort."""
        sub = await session.get(WebhookSubscriptionModel, subscription_id)
        if sub is None:
            raise NotFoundError("Webhook subscription not found")
        if sub.webhook_id and client is not None:
            try:
                await client.delete_webhook(sub.webhook_id)
            except UpstreamAPIError as e:
                logger.warning("Failed to delete webhook %s upstream: %s", sub.webhook_id, e.message)
        await session.delete(sub)
        await session.flush()
