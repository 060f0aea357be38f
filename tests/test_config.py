"""Settings defaults and derived properties."""

from __future__ import annotations

from src.summarizer.config import Environment, Settings
from src.summarizer.core.rate_limit import RateLimitPolicy


def _make_settings(**overrides) -> Settings:
    defaults = {
        "GROQ_API_KEY": "",
        "EMAIL_HOST": "",
        "EMAIL_USER": "",
        "EMAIL_PASS": "",
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class TestDefaults:
    def test_llm_defaults(self):
        settings = _make_settings()

        assert settings.LLM_MODEL == "groq/llama3-70b-8192"
        assert settings.LLM_TEMPERATURE == 0.7
        assert settings.LLM_MAX_TOKENS == 4000
        assert settings.LLM_TIMEOUT == 30.0
        assert settings.LLM_MAX_RETRIES == 2
        assert settings.LLM_RETRY_BASE_DELAY == 0.5

    def test_email_defaults(self):
        settings = _make_settings()

        assert settings.EMAIL_PORT == 587
        assert settings.EMAIL_MAX_RETRIES == 2
        assert settings.EMAIL_RETRY_BASE_DELAY == 1.0
        assert settings.EMAIL_MAX_RECIPIENTS == 20

    def test_rate_limit_policies(self):
        policies = _make_settings().rate_limit_policies()

        assert policies == {
            "general": RateLimitPolicy(window_seconds=900, ceiling=100),
            "summary": RateLimitPolicy(window_seconds=120, ceiling=5),
            "email": RateLimitPolicy(window_seconds=3600, ceiling=20),
        }

    def test_environment_parsed_from_string(self):
        assert _make_settings(ENVIRONMENT="production").ENVIRONMENT is Environment.production


class TestConfiguredFlags:
    def test_llm_key_required(self):
        assert _make_settings().llm_configured is False
        assert _make_settings(GROQ_API_KEY="gsk-live").llm_configured is True

    def test_placeholder_llm_key_is_not_configured(self):
        assert _make_settings(GROQ_API_KEY="your_groq_api_key_here").llm_configured is False

    def test_email_needs_host_user_and_password(self):
        assert _make_settings(EMAIL_HOST="smtp.mailgun.org", EMAIL_USER="a@example.com").email_configured is False
        assert (
            _make_settings(
                EMAIL_HOST="smtp.mailgun.org", EMAIL_USER="a@example.com", EMAIL_PASS="pw"
            ).email_configured
            is True
        )

    def test_placeholder_email_host_is_not_configured(self):
        settings = _make_settings(
            EMAIL_HOST="smtp.example.com", EMAIL_USER="a@example.com", EMAIL_PASS="pw"
        )

        assert settings.email_configured is False

    def test_tls_mode(self):
        assert _make_settings(EMAIL_PORT=465).email_use_tls is True
        assert _make_settings(EMAIL_PORT=587).email_use_tls is False
        assert _make_settings(EMAIL_PORT=587, EMAIL_SECURE=True).email_use_tls is True
        assert _make_settings(EMAIL_PORT=465, EMAIL_SECURE=False).email_use_tls is False
