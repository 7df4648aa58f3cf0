# src/shared/config.py

from functools import lru_cache
from typing import List, Optional, Union

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """
    Central application settings (Pydantic v2).

    - Aliases match the .env keys (APP_NAME, ENV, REDIS_URL, ...).
    - REDIS_URL unset means the service runs without cache and pub/sub.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # ------------------------------------------------------------------------------------
    # App / API
    # ------------------------------------------------------------------------------------
    PROJECT_NAME: str = Field(default="school-erp-settings", alias="APP_NAME")
    ENVIRONMENT: str = Field(default="dev", alias="ENV")  # dev|staging|prod
    PROJECT_VERSION: str = Field(default="1.0.0")
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: Optional[str] = Field(default=None)  # json|console; derived from ENV when unset

    # ------------------------------------------------------------------------------------
    # Database / Redis
    # ------------------------------------------------------------------------------------
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./dev.db",
        description="Async SQLAlchemy URL (postgresql+asyncpg or sqlite+aiosqlite)",
    )
    DATABASE_TIMEOUT_SECONDS: float = Field(default=10.0)
    DATABASE_ECHO: bool = Field(default=False)

    REDIS_URL: Optional[str] = Field(default=None)
    REDIS_NAMESPACE: str = Field(default="school-erp")
    REDIS_TIMEOUT_SECONDS: float = Field(default=0.5)

    # ------------------------------------------------------------------------------------
    # Cache TTLs / rate limits
    # ------------------------------------------------------------------------------------
    CONFIG_CACHE_TTL_SECONDS: int = Field(default=300)
    LANGUAGE_CACHE_TTL_SECONDS: int = Field(default=3600)
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=3600)
    AUDIT_QUERY_LIMIT: int = Field(default=100)
    AUDIT_STATS_LIMIT: int = Field(default=50)

    # ------------------------------------------------------------------------------------
    # OTP / providers
    # ------------------------------------------------------------------------------------
    OTP_LENGTH: int = Field(default=6)
    OTP_TTL_SECONDS: int = Field(default=300)
    OTP_MAX_PER_WINDOW: int = Field(default=3)

    SMTP_USERNAME: Optional[str] = Field(default=None)
    SMTP_PASSWORD: Optional[str] = Field(default=None)
    SMTP_SENDER: str = Field(default="no-reply@school-erp.local")
    SMTP_USE_TLS: bool = Field(default=False)
    SMTP_TIMEOUT_SECONDS: float = Field(default=10.0)

    TWILIO_ACCOUNT_SID: Optional[str] = Field(default=None)
    TWILIO_AUTH_TOKEN: Optional[str] = Field(default=None)
    TWILIO_FROM_NUMBER: Optional[str] = Field(default=None)
    TWILIO_BASE_URL: str = Field(default="https://api.twilio.com/2010-04-01")

    GEOIP_URL: Optional[str] = Field(default=None)

    HTTP_TIMEOUT_SECONDS: float = Field(default=10.0)
    NTP_TIMEOUT_SECONDS: float = Field(default=5.0)
    NTP_SYNC_ENABLED: bool = Field(default=True)  # periodic sync per tenant sync_interval
    NTP_SYNC_TICK_SECONDS: int = Field(default=60, ge=1)

    # ------------------------------------------------------------------------------------
    # Auth (verification only)
    # ------------------------------------------------------------------------------------
    JWT_SECRET: str = Field(
        default="super-long-very-random-secret-change-me-now",
        description="HS256 secret or RS256 public key (never commit real secrets)",
    )
    JWT_ALGORITHM: str = Field(default="HS256", alias="JWT_ALG")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)

    # ------------------------------------------------------------------------------------
    # Startup / Web
    # ------------------------------------------------------------------------------------
    SEED_DEFAULT_ROLES: bool = Field(default=True)
    BACKEND_CORS_ORIGINS: Union[List[str], str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, v):
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    # ------------------------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------------------------
    @property
    def is_dev(self) -> bool:
        return self.ENVIRONMENT.lower() in {"dev", "local", "test"}

    @property
    def is_staging(self) -> bool:
        return self.ENVIRONMENT.lower() == "staging"

    @property
    def is_prod(self) -> bool:
        return self.ENVIRONMENT.lower() in {"prod", "production"}

    @property
    def log_level(self) -> str:
        return self.LOG_LEVEL

    @property
    def log_format(self) -> Optional[str]:
        return self.LOG_FORMAT


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
