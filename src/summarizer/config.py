"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.summarizer.core.rate_limit import RateLimitPolicy

# Placeholder values shipped in .env.example; treated as "not configured"
_PLACEHOLDER_LLM_KEY = "your_groq_api_key_here"
_PLACEHOLDER_EMAIL_HOST = "smtp.example.com"


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"

    # Monitoring
    SENTRY_DSN: str = ""
    METRICS_LATENCY_WINDOW: int = 100

    # LLM Provider (routed through LiteLLM)
    GROQ_API_KEY: str = ""
    LLM_MODEL: str = "groq/llama3-70b-8192"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 4000
    LLM_TIMEOUT: float = 30.0
    LLM_MAX_RETRIES: int = 2
    LLM_RETRY_BASE_DELAY: float = 0.5

    # SMTP relay
    EMAIL_HOST: str = ""
    EMAIL_PORT: int = 587
    EMAIL_USER: str = ""
    EMAIL_PASS: str = ""
    EMAIL_SECURE: bool | None = None  # None: implicit TLS only on port 465
    EMAIL_TIMEOUT: float = 30.0
    EMAIL_MAX_RETRIES: int = 2
    EMAIL_RETRY_BASE_DELAY: float = 1.0
    EMAIL_MAX_RECIPIENTS: int = 20

    # Backoff jitter in seconds (0 keeps the delay sequence deterministic)
    RETRY_JITTER: float = 0.0

    # Rate limiting (fixed window per client)
    RATE_LIMIT_GENERAL_WINDOW: int = 15 * 60
    RATE_LIMIT_GENERAL_MAX: int = 100
    RATE_LIMIT_SUMMARY_WINDOW: int = 2 * 60
    RATE_LIMIT_SUMMARY_MAX: int = 5
    RATE_LIMIT_EMAIL_WINDOW: int = 60 * 60
    RATE_LIMIT_EMAIL_MAX: int = 20
    TRUST_FORWARDED_FOR: bool = False

    # Response cache
    SUMMARY_CACHE_TTL: int = 60 * 60
    HEALTH_CACHE_TTL: int = 30
    CACHE_ERRORS: bool = False

    # Admin surface (disabled when empty)
    ADMIN_API_KEY: str = ""

    @property
    def llm_configured(self) -> bool:
        return bool(self.GROQ_API_KEY) and self.GROQ_API_KEY != _PLACEHOLDER_LLM_KEY

    @property
    def email_configured(self) -> bool:
        return bool(
            self.EMAIL_HOST
            and self.EMAIL_USER
            and self.EMAIL_PASS
            and self.EMAIL_HOST != _PLACEHOLDER_EMAIL_HOST
        )

    @property
    def email_use_tls(self) -> bool:
        """Implicit TLS on connect; otherwise STARTTLS is negotiated."""
        if self.EMAIL_SECURE is not None:
            return self.EMAIL_SECURE
        return self.EMAIL_PORT == 465

    def rate_limit_policies(self) -> dict[str, RateLimitPolicy]:
        """Route id -> fixed-window policy."""
        return {
            "general": RateLimitPolicy(
                window_seconds=self.RATE_LIMIT_GENERAL_WINDOW,
                ceiling=self.RATE_LIMIT_GENERAL_MAX,
            ),
            "summary": RateLimitPolicy(
                window_seconds=self.RATE_LIMIT_SUMMARY_WINDOW,
                ceiling=self.RATE_LIMIT_SUMMARY_MAX,
            ),
            "email": RateLimitPolicy(
                window_seconds=self.RATE_LIMIT_EMAIL_WINDOW,
                ceiling=self.RATE_LIMIT_EMAIL_MAX,
            ),
        }


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
