"""hubsync: a shared issue-tracker mirror exposed to isolated client hubs."""

from hubsync.hubs.auth import HubAuthFailure, HubAuthSuccess, IdentityProvider
from hubsync.mirror.mapper import map_comment, map_initiative, map_issue, map_project, map_team
from hubsync.upstream.client import LinearClient
from hubsync.webhooks.service import sign_payload, verify_signature

__all__ = [
    "HubAuthFailure",
    "HubAuthSuccess",
    "IdentityProvider",
    "LinearClient",
    "map_comment",
    "map_initiative",
    "map_issue",
    "map_project",
    "map_team",
    "sign_payload",
    "verify_signature",
]
__version__ = "0.1.0"
