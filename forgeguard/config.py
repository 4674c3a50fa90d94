"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "127.0.0.1"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ==========================================================================
    # Authentication
    # ==========================================================================

    # Access and refresh tokens are signed with independent secrets
    jwt_access_secret: str = "dev-access-secret-change-in-production"
    jwt_refresh_secret: str = "dev-refresh-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "forgeguard"
    jwt_audience: str = "forgeguard-client"
    jwt_access_token_expire_minutes: int = 15
    jwt_refresh_token_expire_days: int = 7
    jwt_leeway_seconds: int = Field(default=5, ge=0, le=5)

    # PBKDF2 work factor
    password_hash_iterations: int = Field(default=310_000, ge=1_000)

    # Brute-force protection
    lockout_threshold: int = Field(default=5, ge=1)
    lockout_duration_minutes: int = Field(default=120, ge=1)
    login_rate_limit: str = "5/15minutes"

    # Global request limit (per client IP)
    rate_limit_enabled: bool = True
    rate_limit_default: str = "100/15minutes"

    # Initial admin created on startup when no admin exists
    bootstrap_admin_username: str = ""
    bootstrap_admin_email: str = ""
    bootstrap_admin_password: str = ""
    bootstrap_admin_full_name: str = "System Administrator"

    # ==========================================================================
    # Documents
    # ==========================================================================

    data_dir: str = "./data"
    max_file_size: int = Field(default=5_242_880, ge=1024)
    allowed_file_types: str = "pdf,doc,docx,txt,xls,xlsx,ppt,pptx"

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def allowed_file_types_list(self) -> list[str]:
        return [t.strip().lower().lstrip(".") for t in self.allowed_file_types.split(",") if t.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @model_validator(mode="after")
    def _check_production_secrets(self) -> Settings:
        """Refuse to run in production with weak or shared signing secrets."""
        if not self.is_production:
            return self

        errors = []
        if len(self.jwt_access_secret) < 32:
            errors.append("JWT_ACCESS_SECRET must be at least 32 characters long")
        if len(self.jwt_refresh_secret) < 32:
            errors.append("JWT_REFRESH_SECRET must be at least 32 characters long")
        if self.jwt_access_secret == self.jwt_refresh_secret:
            errors.append("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
