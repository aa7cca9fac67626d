"""
Core configuration settings for the migration bridge service.
"""

import json
import logging
from typing import List, Optional, Union

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    API_V1_STR: str = "/v1"
    PROJECT_NAME: str = "Auth Migration Bridge"
    ENVIRONMENT: str = "development"  # staging, production, development
    DEBUG: bool = False

    # Database - constructed from individual components
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "user"
    DB_PASSWORD: str = "pass"
    DB_NAME: str = "db"

    # Database Pool Configuration
    DATABASE_POOL_SIZE: int = 5
    DATABASE_POOL_RECYCLE: int = 300

    @property
    def DATABASE_URL(self) -> str:
        """Construct DATABASE_URL from individual database components."""
        return f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    # Legacy identity provider (Clerk Backend API)
    CLERK_API_URL: str = "https://api.clerk.com/v1"
    CLERK_SECRET_KEY: Optional[str] = None
    # Svix signing secret for Clerk webhooks (whsec_...)
    CLERK_WEBHOOK_SECRET: Optional[str] = None
    WEBHOOK_TOLERANCE_SECONDS: int = 300

    # New identity provider (Supabase Auth)
    SUPABASE_URL: Optional[str] = None  # e.g. https://abcd.supabase.co
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None  # admin API
    SUPABASE_ANON_KEY: Optional[str] = None  # password sign-in

    # Every outbound provider call is bounded by this timeout
    PROVIDER_TIMEOUT_SECONDS: float = 5.0

    # Migration behaviour
    PASSWORD_MIN_LENGTH: int = 8
    INVITATION_TTL_DAYS: int = 7
    SHELL_PASSWORD_BYTES: int = 32

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        """Parse CORS origins from environment variable."""
        if isinstance(v, str):
            if not v:
                return []
            if v.startswith("["):
                try:
                    data = json.loads(v)
                except json.JSONDecodeError as exc:  # pragma: no cover - guard rail
                    logger.warning(
                        "Failed to decode BACKEND_CORS_ORIGINS JSON: %s", exc
                    )
                    return []
                if isinstance(data, list):
                    return [str(i).strip() for i in data]
                return data
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return v
        raise ValueError(v)

    @field_validator("CLERK_API_URL", "SUPABASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if v:
            return v.rstrip("/")
        return v

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env")


settings = Settings()
