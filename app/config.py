"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings

TieBreakPolicy = Literal["reject", "no_winner", "earliest_vote"]


class Settings(BaseSettings):
    """Application configuration.

    Values are read from environment variables (or a `.env` file).
    """

    # Supabase
    supabase_url: str
    supabase_service_key: str
    supabase_http_max_connections: int = 100
    supabase_http_max_keepalive_connections: int = 50
    supabase_postgrest_timeout_seconds: int = 30

    # App
    app_name: str = "E-Voting API"
    app_version: str = "1.0.0"
    environment: str = "development"
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000"
    enable_scheduler: bool = True
    expose_error_details: bool = False

    # Scheduling
    timezone: str = "UTC"
    status_sync_interval_minutes: int = 1
    tally_reconcile_interval_minutes: int = 10

    # Auth
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 7 * 24 * 60
    bcrypt_rounds: int = 12
    admin_max_login_attempts: int = 5
    admin_lock_minutes: int = 120
    admin_activity_log_limit: int = 100
    login_rate_limit_attempts: int = 20
    login_rate_limit_window_seconds: int = 900

    # Voting
    voter_hash_secret: str = "change-me"
    vote_side_effect_max_attempts: int = 3
    result_tie_break: TieBreakPolicy = "reject"
    minimum_voter_age: int = 18

    # Performance tuning
    slow_request_log_threshold_ms: int = 0
    slow_query_log_threshold_ms: int = 0
    default_page_size: int = 10
    max_page_size: int = 100

    @property
    def is_production(self) -> bool:
        """Return True when running in production."""
        return self.environment == "production"

    @property
    def origins_list(self) -> list[str]:
        """Parse comma-separated ALLOWED_ORIGINS into a list."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def attach_tracebacks(self) -> bool:
        """Tracebacks go out only when explicitly enabled outside production."""
        return self.expose_error_details and not self.is_production

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()  # type: ignore[call-arg]
