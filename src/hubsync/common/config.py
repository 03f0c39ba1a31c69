"""hubsync configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
    "cron_secret": "",
}


class HubSyncSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HUBSYNC_")

    environment: str = "development"
    secret_key: str = "insecure-dev-key-change-me"
    log_level: str = "INFO"

    # Shared secret for the scheduled reconcile trigger.  Empty = unguarded.
    cron_secret: str = ""

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/hubsync.db"

    # API
    api_title: str = "hubsync"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    public_base_url: str = "http://localhost:8080"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Upstream issue tracker
    linear_api_url: str = "https://api.linear.app/graphql"
    linear_api_token: str = ""  # fallback when no token is stored in workspace_settings
    linear_timeout: float = 30.0
    linear_page_size: int = 50

    # Mirror
    workspace_id: str = "workspace"
    upsert_batch_size: int = 50

    # Team -> hub mapping cache
    mapping_cache_ttl: int = 60  # seconds

    # Incremental reconciliation
    reconcile_overlap_seconds: int = 60
    reconcile_lookback_seconds: int = 600

    # Identity sessions
    session_max_age: int = 8 * 3600

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"HUBSYNC_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure defaults — set HUBSYNC_SECRET_KEY and HUBSYNC_CRON_SECRET "
                "for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> HubSyncSettings:
    settings = HubSyncSettings()
    settings.validate_for_production()
    return settings
