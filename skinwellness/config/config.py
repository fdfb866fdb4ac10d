"""
Application configuration with environment-based settings.
All configuration is explicit, validated, and logged at startup.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development but require
    explicit configuration in production environments.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Application
    app_name: str = Field(default="Skin Wellness Analysis", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # Supabase REST data store
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_role_key: str = Field(
        default="",
        description="Service role key for server-side store access (bypasses RLS)"
    )
    photo_bucket: str = Field(default="patient-photos", description="Storage bucket holding session photos")
    signed_url_expiry_seconds: int = Field(default=3600, ge=60, description="Signed photo URL lifetime")
    store_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for store requests")

    # SkinXS diagnostic API
    skinxs_api_key: str = Field(default="", description="SkinXS API key")
    skinxs_api_url: str = Field(
        default="https://website-skinxs-api-lzetymrodq-uc.a.run.app/analyze_images/",
        description="SkinXS analyze endpoint"
    )
    skinxs_language: str = Field(default="en", description="Language requested from SkinXS")
    skinxs_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Upper bound for a single diagnostic call"
    )

    # Rate Limiting
    analysis_limit_per_month: int = Field(default=1000, ge=1, description="Analyses per doctor per month")
    usage_api_name: str = Field(default="skinxs_analysis", description="Usage counter key")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format"
    )

    def get_safe_config_dict(self) -> dict:
        """Return configuration dict with secrets redacted for logging."""
        config = self.model_dump()
        # Redact sensitive values
        for key in ("skinxs_api_key", "supabase_service_role_key"):
            if config.get(key):
                config[key] = "***REDACTED***"
        return config


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for the application lifetime.
    Use dependency injection in FastAPI routes for testability.
    """
    return Settings()
