"""Request authentication dependencies."""

import hmac
from typing import Optional

from fastapi import Header, Request

from hubsync.common.exceptions import AuthenticationRequiredError, AuthorizationDeniedError
from hubsync.hubs.auth import Identity


async def optional_identity(request: Request) -> Optional[Identity]:
    """FastAPI dependency resolving the caller's identity, or None."""
    from hubsync.deps import get_identity_provider

    return get_identity_provider().from_request(request)


async def require_identity(request: Request) -> Identity:
    """FastAPI dependency that rejects anonymous callers with 401."""
    identity = await optional_identity(request)
    if identity is None:
        raise AuthenticationRequiredError()
    return identity


async def require_operator(request: Request) -> Identity:
    """FastAPI dependency restricting a route to the global admin allow-list."""
    identity = await require_identity(request)

    from hubsync.deps import get_db, get_hub_service

    async with get_db().get_session() as session:
        if not await get_hub_service().is_global_admin(session, identity.user_id):
            raise AuthorizationDeniedError("Operator access required")
    return identity


async def require_cron_secret(
    authorization: str = Header("", alias="Authorization"),
) -> None:
    """FastAPI dependency for the scheduled trigger.

    An empty ``cron_secret`` leaves the endpoint open; otherwise the header
    must be ``Bearer <cron_secret>``.
    """
    from hubsync.common.config import get_settings

    secret = get_settings().cron_secret
    if not secret:
        return
    if not hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode()):
        raise AuthenticationRequiredError()
