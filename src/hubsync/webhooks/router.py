"""Webhook ingress and subscription management router."""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from hubsync.common.exceptions import CredentialMissingError, SignatureInvalidError, ValidationError
from hubsync.common.security import require_operator
from hubsync.hubs.auth import Identity
from hubsync.webhooks.schemas import (
    WebhookAck,
    WebhookConnect,
    WebhookRegister,
    WebhookSubscriptionResponse,
)
from hubsync.webhooks.service import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service():
    from hubsync.deps import get_webhook_service
    return get_webhook_service()


def _get_workspace():
    from hubsync.deps import get_workspace_service
    return get_workspace_service()


def _get_db():
    from hubsync.deps import get_db
    return get_db()


@router.post("/webhooks/linear", response_model=WebhookAck)
async def receive_webhook(request: Request):
    """Upstream push ingress.

    401 for a missing or unverifiable signature, 400 for a non-JSON body,
    200 for everything else including handler failures.
    """
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise SignatureInvalidError("Missing signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Invalid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON")

    webhook_id = payload.get("webhookId")
    if not isinstance(webhook_id, str):
        webhook_id = None

    svc = _get_service()
    async with _get_db().get_session() as session:
        try:
            sub = await svc.authenticate(session, raw_body, signature, webhook_id)
        except Exception:
            # The caller is unverified here; a lookup failure is a failed signature.
            logger.exception("Webhook signature lookup failed")
            sub = None
        if sub is None:
            raise SignatureInvalidError()

        try:
            outcome = await svc.route(session, payload)
            logger.debug("Webhook %s %s: %s", outcome.kind.value, outcome.entity_id, outcome.status)
        except Exception:
            logger.exception("Webhook route error")
            await session.rollback()
    return WebhookAck()


# ── Subscriptions (operator) ──

@router.get("/admin/webhook", response_model=list[WebhookSubscriptionResponse])
async def list_subscriptions(_=Depends(require_operator)):
    svc = _get_service()
    async with _get_db().get_session() as session:
        subs = await svc.list_subscriptions(session)
        return [WebhookSubscriptionResponse.model_validate(s) for s in subs]


@router.post("/admin/webhook", response_model=WebhookSubscriptionResponse, status_code=201)
async def connect_webhook(
    body: WebhookConnect | None = None,
    operator: Identity = Depends(require_operator),
):
    svc = _get_service()
    workspace = _get_workspace()
    team_id = body.team_id if body else None
    async with _get_db().get_session() as session:
        token = await workspace.get_api_token(session)
        async with workspace.make_client(token) as client:
            sub = await svc.connect(session, client, operator.user_id, team_id=team_id)
        return WebhookSubscriptionResponse.model_validate(sub)


@router.post("/admin/webhook/secret", response_model=WebhookSubscriptionResponse, status_code=201)
async def register_webhook_secret(
    body: WebhookRegister,
    operator: Identity = Depends(require_operator),
):
    """Store the signing secret of a webhook created directly upstream."""
    svc = _get_service()
    async with _get_db().get_session() as session:
        sub = await svc.add_subscription(
            session,
            body.secret,
            webhook_id=body.webhook_id,
            linear_team_id=body.team_id,
            created_by=operator.user_id,
        )
        return WebhookSubscriptionResponse.model_validate(sub)


@router.delete("/admin/webhook/{subscription_id}", status_code=204)
async def disconnect_webhook(subscription_id: str, _=Depends(require_operator)):
    svc = _get_service()
    workspace = _get_workspace()
    async with _get_db().get_session() as session:
        try:
            token = await workspace.get_api_token(session)
        except CredentialMissingError:
            logger.warning("No upstream credential; deleting subscription %s locally only", subscription_id)
            token = None
        if token is None:
            await svc.disconnect(session, None, subscription_id)
        else:
            async with workspace.make_client(token) as client:
                await svc.disconnect(session, client, subscription_id)
    return Response(status_code=204)
