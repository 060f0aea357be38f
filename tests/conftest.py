"""Shared fixtures for the summarizer test suite.

Provides:
- make_settings(): Settings isolated from any local .env file
- FakeClock / RecordedSleep: deterministic time for windows, TTLs and backoff
- Fake LLM completions and a recording SMTP transport
- FastAPI test app wired with those fakes, plus an async HTTP client
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.summarizer.config import Settings
from src.summarizer.main import create_app
from src.summarizer.observability.metrics import MetricsAggregator
from src.summarizer.services.mail import EmailService
from src.summarizer.services.llm import SummaryService

TEST_SENDER = "summaries@example.com"


def make_settings(**overrides) -> Settings:
    """Create a Settings instance with test-friendly defaults."""
    defaults = {
        "GROQ_API_KEY": "gsk-test-key",
        "EMAIL_HOST": "smtp.test.local",
        "EMAIL_PORT": 587,
        "EMAIL_USER": TEST_SENDER,
        "EMAIL_PASS": "secret",
        "SENTRY_DSN": "",
        "ADMIN_API_KEY": "",
        "RETRY_JITTER": 0.0,
        "TRUST_FORWARDED_FOR": False,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordedSleep:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ProviderError(Exception):
    """Mimics an SDK error carrying an HTTP status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def completion_response(content: str | None, total_tokens: int = 42) -> MagicMock:
    """Build a LiteLLM-shaped completion response."""
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.usage = MagicMock()
    response.usage.total_tokens = total_tokens
    return response


def recording_transport() -> MagicMock:
    transport = MagicMock()
    transport.send = AsyncMock(return_value=None)
    transport.verify = AsyncMock(return_value=None)
    return transport


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordedSleep:
    return RecordedSleep()


@pytest.fixture
def metrics() -> MetricsAggregator:
    return MetricsAggregator()


@pytest.fixture
def completion() -> AsyncMock:
    return AsyncMock(return_value=completion_response("# Meeting Summary\n\n- Shipped"))


@pytest.fixture
def transport() -> MagicMock:
    return recording_transport()


@pytest.fixture
def summary_service(settings, metrics, completion, sleep) -> SummaryService:
    return SummaryService(settings, metrics=metrics, completion=completion, sleep=sleep)


@pytest.fixture
def email_service(settings, metrics, transport, sleep) -> EmailService:
    return EmailService(settings, metrics=metrics, transport=transport, sleep=sleep)


@pytest.fixture
def app(settings, metrics, summary_service, email_service, clock):
    """FastAPI app wired with fake collaborators and a fake clock."""
    return create_app(
        settings,
        metrics=metrics,
        summary_service=summary_service,
        email_service=email_service,
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing the API."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def response_factory():
    return completion_response


@pytest.fixture
def provider_error():
    return ProviderError
