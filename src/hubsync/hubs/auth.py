"""Hub authentication and authorization.

Identities arrive as signed session tokens.  ``HubAuthGuard`` turns an
identity plus a hub id into a tagged result instead of raising, so callers
branch on ``result.ok`` and routers convert failures with
``raise_for_failure``.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from hubsync.common.exceptions import (
    AuthenticationRequiredError,
    AuthorizationDeniedError,
    HubSyncError,
    NotFoundError,
)
from hubsync.common.models import utcnow
from hubsync.hubs.models import (
    ROLE_ADMIN,
    ROLE_VIEW_ONLY,
    GlobalAdminModel,
    HubMemberModel,
    HubModel,
)

logger = logging.getLogger(__name__)

COOKIE_NAME = "hubsync_session"
SESSION_SALT = "hubsync-session"


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None


class IdentityProvider:
    """Issues and verifies signed session tokens."""

    def __init__(self, secret_key: str, max_age: int = 8 * 3600):
        self.max_age = max_age
        self._serializer = URLSafeTimedSerializer(secret_key, salt=SESSION_SALT)

    def issue_token(self, user_id: str, email: str | None = None) -> str:
        payload = {"sub": user_id}
        if email:
            payload["email"] = email.lower()
        return self._serializer.dumps(payload)

    def verify_token(self, token: str) -> Identity | None:
        try:
            payload = self._serializer.loads(token, max_age=self.max_age)
        except (BadSignature, SignatureExpired):
            return None
        if not isinstance(payload, dict) or not payload.get("sub"):
            return None
        return Identity(user_id=payload["sub"], email=payload.get("email"))

    def from_request(self, request: Request) -> Identity | None:
        """Read a token from ``Authorization: Bearer`` or the session cookie."""
        auth = request.headers.get("authorization", "")
        token = None
        if auth.lower().startswith("bearer "):
            token = auth[7:].strip()
        if not token:
            token = request.cookies.get(COOKIE_NAME)
        if not token:
            return None
        return self.verify_token(token)


class MembershipState(str, enum.Enum):
    PENDING = "pending"
    CLAIMED = "claimed"

    @classmethod
    def of(cls, member: HubMemberModel) -> "MembershipState":
        return cls.PENDING if member.user_id is None else cls.CLAIMED


@dataclass(frozen=True)
class HubAuthSuccess:
    identity: Identity
    hub_id: str
    role: str
    ok: bool = True


@dataclass(frozen=True)
class HubAuthFailure:
    reason: str
    status_code: int
    ok: bool = False


HubAuthResult = Union[HubAuthSuccess, HubAuthFailure]

_FAILURE_ERRORS: dict[int, type[HubSyncError]] = {
    401: AuthenticationRequiredError,
    403: AuthorizationDeniedError,
    404: NotFoundError,
}


def raise_for_failure(result: HubAuthResult) -> HubAuthSuccess:
    """Return the success variant or raise the matching HubSyncError."""
    if isinstance(result, HubAuthSuccess):
        return result
    error_cls = _FAILURE_ERRORS.get(result.status_code, AuthorizationDeniedError)
    raise error_cls(result.reason)


class HubAuthGuard:
    """Resolves hub, membership and role for an identity."""

    async def authorize(
        self, session: AsyncSession, hub_id: str, identity: Identity | None,
    ) -> HubAuthResult:
        if identity is None:
            return HubAuthFailure("Unauthorized", 401)

        hub = await session.get(HubModel, hub_id)
        if hub is None or not hub.is_active:
            return HubAuthFailure("Hub not found", 404)

        member = await self._find_member(session, hub_id, identity)
        if member is not None:
            return HubAuthSuccess(identity, hub_id, member.role)

        if await session.get(GlobalAdminModel, identity.user_id) is not None:
            return HubAuthSuccess(identity, hub_id, ROLE_ADMIN)

        return HubAuthFailure("Forbidden", 403)

    async def authorize_write(
        self, session: AsyncSession, hub_id: str, identity: Identity | None,
    ) -> HubAuthResult:
        result = await self.authorize(session, hub_id, identity)
        if isinstance(result, HubAuthSuccess) and result.role == ROLE_VIEW_ONLY:
            return HubAuthFailure("View-only members cannot perform this action", 403)
        return result

    async def _find_member(
        self, session: AsyncSession, hub_id: str, identity: Identity,
    ) -> HubMemberModel | None:
        result = await session.execute(
            select(HubMemberModel).where(
                HubMemberModel.hub_id == hub_id,
                HubMemberModel.user_id == identity.user_id,
            )
        )
        member = result.scalar_one_or_none()
        if member is not None or not identity.email:
            return member

        result = await session.execute(
            select(HubMemberModel).where(
                HubMemberModel.hub_id == hub_id,
                HubMemberModel.user_id.is_(None),
                func.lower(HubMemberModel.email) == identity.email.lower(),
            )
        )
        pending = result.scalar_one_or_none()
        if pending is None:
            return None
        if await self.claim(session, pending, identity):
            return pending
        return None

    async def claim(
        self, session: AsyncSession, member: HubMemberModel, identity: Identity,
    ) -> bool:
        """Move a membership from PENDING to CLAIMED.

        The UPDATE only matches while ``user_id`` is still NULL, so a record
        can be claimed exactly once; a lost race returns False.
        """
        if MembershipState.of(member) is not MembershipState.PENDING:
            return False
        claimed_at = utcnow()
        result = await session.execute(
            update(HubMemberModel)
            .where(HubMemberModel.id == member.id, HubMemberModel.user_id.is_(None))
            .values(user_id=identity.user_id, claimed_at=claimed_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await session.flush()
        member.user_id = identity.user_id
        member.claimed_at = claimed_at
        logger.info("Membership %s claimed by %s", member.id, identity.user_id)
        return True
