from dataclasses import dataclass
from typing import List, Optional, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # Application
    APP_NAME: str = "SocialGraphAPI"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DB_NAME: str = "socialgraph"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DATABASE_URL_OVERRIDE: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Redis
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_ENABLED: bool = True

    @property
    def REDIS_URL(self) -> str:
        return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/0"

    # CORS
    BACKEND_CORS_ORIGINS: Union[List[str], str] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, str) and v.startswith("["):
            return json.loads(v)
        return v

    # Contact sync
    SYNC_BATCH_SIZE: int = 50
    SYNC_MAX_CONCURRENCY: int = 5
    SYNC_BATCH_DELAY_MS: int = 50
    SYNC_MAX_CONTACTS: int = 5000
    SYNC_COOLDOWN_SECONDS: int = 60
    EXTERNAL_TIMEOUT_SECONDS: float = 15.0

    # Directory cache
    USER_CACHE_TTL_SECONDS: int = 300
    USER_CACHE_MAX_SIZE: int = 1000

    # Suggestions
    SUGGESTION_EXPIRY_DAYS: int = 30
    SUGGESTION_DEFAULT_LIMIT: int = 20
    SUGGESTION_MAX_LIMIT: int = 100

    # External platforms
    FACEBOOK_API_BASE: str = "https://graph.facebook.com/v18.0"
    LINE_API_BASE: str = "https://api.line.me/v2"

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@dataclass(frozen=True)
class SocialConfig:
    """Tunables handed to each social component at construction time."""

    batch_size: int = 50
    max_concurrency: int = 5
    batch_delay_ms: int = 50
    max_contacts: int = 5000
    cooldown_seconds: int = 60
    external_timeout_seconds: float = 15.0
    user_cache_ttl_seconds: int = 300
    user_cache_max_size: int = 1000
    suggestion_expiry_days: int = 30
    suggestion_default_limit: int = 20
    suggestion_max_limit: int = 100
    facebook_api_base: str = "https://graph.facebook.com/v18.0"
    line_api_base: str = "https://api.line.me/v2"
    production: bool = False

    @classmethod
    def from_settings(cls, s: Settings) -> "SocialConfig":
        return cls(
            batch_size=s.SYNC_BATCH_SIZE,
            max_concurrency=s.SYNC_MAX_CONCURRENCY,
            batch_delay_ms=s.SYNC_BATCH_DELAY_MS,
            max_contacts=s.SYNC_MAX_CONTACTS,
            cooldown_seconds=s.SYNC_COOLDOWN_SECONDS,
            external_timeout_seconds=s.EXTERNAL_TIMEOUT_SECONDS,
            user_cache_ttl_seconds=s.USER_CACHE_TTL_SECONDS,
            user_cache_max_size=s.USER_CACHE_MAX_SIZE,
            suggestion_expiry_days=s.SUGGESTION_EXPIRY_DAYS,
            suggestion_default_limit=s.SUGGESTION_DEFAULT_LIMIT,
            suggestion_max_limit=s.SUGGESTION_MAX_LIMIT,
            facebook_api_base=s.FACEBOOK_API_BASE,
            line_api_base=s.LINE_API_BASE,
            production=s.IS_PRODUCTION,
        )


settings = Settings()
