"""Dependency injection singletons for hubsync."""

from hubsync.common.config import get_settings
from hubsync.common.database import DatabaseManager
from hubsync.hubs.auth import HubAuthGuard, IdentityProvider
from hubsync.hubs.mapping_cache import InMemoryMappingCache, MappingCache
from hubsync.hubs.service import HubService
from hubsync.reads.service import HubReadService
from hubsync.sync.reconcile import IncrementalReconciler
from hubsync.sync.service import SyncService
from hubsync.sync.workspace import ClientFactory, WorkspaceService
from hubsync.webhooks.service import WebhookService

_db: DatabaseManager | None = None
_identity: IdentityProvider | None = None
_cache: MappingCache | None = None
_hubs: HubService | None = None
_guard: HubAuthGuard | None = None
_workspace: WorkspaceService | None = None
_sync: SyncService | None = None
_reconciler: IncrementalReconciler | None = None
_webhook: WebhookService | None = None
_reads: HubReadService | None = None
_client_factory: ClientFactory | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_identity_provider() -> IdentityProvider:
    global _identity
    if _identity is None:
        settings = get_settings()
        _identity = IdentityProvider(settings.secret_key, max_age=settings.session_max_age)
    return _identity


def get_mapping_cache() -> MappingCache:
    global _cache
    if _cache is None:
        _cache = InMemoryMappingCache(get_db(), ttl_seconds=get_settings().mapping_cache_ttl)
    return _cache


def get_hub_service() -> HubService:
    global _hubs
    if _hubs is None:
        _hubs = HubService(get_mapping_cache(), workspace_id=get_settings().workspace_id)
    return _hubs


def get_auth_guard() -> HubAuthGuard:
    global _guard
    if _guard is None:
        _guard = HubAuthGuard()
    return _guard


def set_client_factory(factory: ClientFactory | None) -> None:
    """Override how upstream clients are built (tests, alternate transports)."""
    global _client_factory, _workspace, _sync, _reconciler
    _client_factory = factory
    _workspace = None
    _sync = None
    _reconciler = None


def get_workspace_service() -> WorkspaceService:
    global _workspace
    if _workspace is None:
        _workspace = WorkspaceService(get_settings(), client_factory=_client_factory)
    return _workspace


def get_sync_service() -> SyncService:
    global _sync
    if _sync is None:
        _sync = SyncService(get_settings(), get_db(), get_workspace_service())
    return _sync


def get_reconciler() -> IncrementalReconciler:
    global _reconciler
    if _reconciler is None:
        _reconciler = IncrementalReconciler(
            get_settings(), get_db(), get_workspace_service(), get_sync_service(),
        )
    return _reconciler


def get_webhook_service() -> WebhookService:
    global _webhook
    if _webhook is None:
        _webhook = WebhookService(get_settings(), get_mapping_cache())
    return _webhook


def get_read_service() -> HubReadService:
    global _reads
    if _reads is None:
        _reads = HubReadService(get_mapping_cache(), workspace_id=get_settings().workspace_id)
    return _reads


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _identity, _cache, _hubs, _guard, _workspace, _sync, _reconciler
    global _webhook, _reads, _client_factory
    _db = None
    _identity = None
    _cache = None
    _hubs = None
    _guard = None
    _workspace = None
    _sync = None
    _reconciler = None
    _webhook = None
    _reads = None
    _client_factory = None
