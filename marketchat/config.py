"""Application settings loaded from environment variables.

MONGODB_URL / MONGODB_DB select the backing store.
JWT_SECRET is required in staging and prod; local and test fall back to a
development secret.
CONVERSATION_SCOPE_MODE picks how conversations are identified:
    listing - one conversation per user pair per ad (scopeRef required)
    global  - one conversation per user pair system-wide (no scopeRef)
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

MAX_MESSAGE_LENGTH = 2000

DEV_JWT_SECRET = "marketchat-dev-secret"


class Environment(str, Enum):

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class ScopeMode(str, Enum):

    LISTING = "listing"
    GLOBAL = "global"


class Settings(BaseSettings):

    env: Environment = Field(default=Environment.LOCAL, alias="MARKETCHAT_ENV")

    mongodb_url: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URL")
    mongodb_db: str = Field(default="marketchat", alias="MONGODB_DB")

    jwt_secret: str | None = Field(default=None, alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    conversation_scope_mode: ScopeMode = Field(
        default=ScopeMode.LISTING, alias="CONVERSATION_SCOPE_MODE"
    )
    # non-participants get 404 instead of 403
    mask_forbidden_as_not_found: bool = Field(default=False, alias="MASK_FORBIDDEN_AS_NOT_FOUND")

    log_json: bool = Field(default=True, alias="LOG_JSON")
    run_maintenance_on_startup: bool = Field(default=False, alias="RUN_MAINTENANCE_ON_STARTUP")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        if self.env in (Environment.STAGING, Environment.PROD) and not self.jwt_secret:
            raise ValueError(f"JWT_SECRET is required for MARKETCHAT_ENV={self.env.value}")
        return self

    @property
    def effective_jwt_secret(self) -> str:
        return self.jwt_secret or DEV_JWT_SECRET


@lru_cache
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
