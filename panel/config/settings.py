from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for admin writes (bulk actions, role grants)

    # Authorization
    bulk_max_users: int = 100
    # Unauthenticated GET /auth/permissions returns the empty snapshot (200) instead of 401
    permissions_snapshot_allow_anonymous: bool = True
    audit_enabled: bool = True
    invitation_ttl_days: int = 7
    site_url: str = "http://localhost:3000"  # base of the /invite/<token> links

    # Permission client
    panel_base_url: str = "http://localhost:8000"
    http_timeout: float = 10.0

    # App
    app_name: str = "api-management-panel"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    rate_limit_enabled: bool = True

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
