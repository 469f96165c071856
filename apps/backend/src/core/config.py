"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_str_list(v: object, *, field_name: str) -> list[str]:
    """Accept a list, CSV string, or JSON array string."""
    if isinstance(v, list):
        return [str(i).strip() for i in v]
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return []
        if s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"{field_name} must be a CSV list or JSON array string"
                ) from e
            if not isinstance(parsed, list):
                raise ValueError(f"{field_name} JSON must be a list")
            return [str(i).strip() for i in parsed]
        # CSV fallback
        return [i.strip() for i in s.split(",") if i.strip()]
    raise ValueError(f"Invalid {field_name} type; expected str or list[str]")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "Family Admin"
    ENVIRONMENT: str = "development"  # development | production | test

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    OAUTH_STATE_EXPIRE_MINUTES: int = 10

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Generation service (Anthropic Messages API)
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_API_URL: str = "https://api.anthropic.com/v1/messages"
    ANTHROPIC_VERSION: str = "2023-06-01"
    ANTHROPIC_MODEL: str = "claude-sonnet-4-20250514"
    ANTHROPIC_MAX_TOKENS: int = 8192
    # Extended thinking is requested only when a budget is configured
    ANTHROPIC_THINKING_BUDGET: int | None = None

    # Repository hosting (GitHub contents API)
    GITHUB_TOKEN: str | None = None
    GITHUB_REPO_OWNER: str | None = None
    GITHUB_REPO_NAME: str | None = None
    GITHUB_BRANCH: str = "main"
    GITHUB_API_URL: str = "https://api.github.com"
    SITE_ROOT_DIR: str = "dashboard"
    SITE_BASE_URL: str = "https://family.example.com"

    # Google OAuth (calendar + mail, read-only)
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/api/v1/google/callback"
    GOOGLE_ACCOUNTS: list[str] | str = ["primary", "partner"]
    OAUTH_COMPLETE_REDIRECT_URL: str = "http://localhost:5173/admin"

    # Upstash Redis
    # Used for rate limiting and as the credential store; optional in
    # development/test where an in-process store is used instead.
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None

    # Rate limit settings (requests per window)
    RATE_LIMIT_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        return _parse_str_list(v, field_name="CORS_ORIGINS")

    @field_validator("GOOGLE_ACCOUNTS", mode="before")
    @classmethod
    def assemble_google_accounts(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for account ids."""
        accounts = _parse_str_list(v, field_name="GOOGLE_ACCOUNTS")
        # Preserve configured order while dropping duplicates
        return list(dict.fromkeys(a for a in accounts if a))

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        # Normalize in case the union allows a stray string at runtime
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if isinstance(self.GOOGLE_ACCOUNTS, str):
            self.GOOGLE_ACCOUNTS = self.assemble_google_accounts(self.GOOGLE_ACCOUNTS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self

    @property
    def google_account_ids(self) -> list[str]:
        accounts = self.GOOGLE_ACCOUNTS
        return list(accounts) if isinstance(accounts, list) else [accounts]

    @property
    def cors_origins(self) -> list[str]:
        origins = self.CORS_ORIGINS
        return list(origins) if isinstance(origins, list) else [origins]


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""
    if env_file and not os.path.exists(env_file):  # pragma: no cover - local runs
        # Only provide a dev fallback in non-production environments
        if env == "development":
            os.environ.setdefault("SECRET_KEY", "dev-test-secret")
    # If we're in production, ensure SECRET_KEY is set and not the dev default
    if env == "production":
        sec = os.getenv("SECRET_KEY")
        if not sec or sec == "dev-test-secret":
            raise RuntimeError("SECRET_KEY must be set to a secure value in production")

    # `_env_file` is a runtime-only kwarg of pydantic-settings.
    return Settings(_env_file=env_file)  # type: ignore[call-arg]
