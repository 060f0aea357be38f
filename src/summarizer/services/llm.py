"""LLM provider adapter for meeting summaries via LiteLLM.

Provides SummaryService with:
- a single-message completion request (model, temperature, max_tokens)
- a per-attempt deadline (Timeout Guard) inside bounded retries (Retry Engine)
- validation that the provider returned non-empty content
- token and latency accounting through the MetricsAggregator
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from collections.abc import Awaitable, Callable
from typing import Any

import litellm
import structlog

from src.summarizer.config import Settings, get_settings
from src.summarizer.core.errors import ClassifiedError, ServiceUnavailableError
from src.summarizer.core.retry import RetryEngine, RetryPolicy
from src.summarizer.core.timeout import with_timeout
from src.summarizer.observability.metrics import MetricsAggregator
from src.summarizer.schemas.summary import SummaryOptions
from src.summarizer.services.prompts import build_summary_prompt, sanitize_custom_prompt

logger = structlog.get_logger(__name__)

COMPONENT = "llm"


def summary_cache_key(transcript: str, custom_prompt: str, params: dict[str, Any]) -> str:
    """Request identity for the response cache: everything that shapes the prompt."""
    payload = json.dumps(
        {
            "transcript": transcript,
            "custom_prompt": sanitize_custom_prompt(custom_prompt),
            **params,
        },
        sort_keys=True,
    )
    return "summary:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _extract_content(response: Any) -> str | None:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)


def _extract_total_tokens(response: Any) -> int:
    usage = getattr(response, "usage", None)
    tokens = getattr(usage, "total_tokens", None) if usage else None
    return tokens if isinstance(tokens, int) else 0


class SummaryService:
    """Generates meeting summaries through a LiteLLM completion call.

    Args:
        settings: Application settings. Uses get_settings() if None.
        metrics: Aggregator receiving call, attempt and retry events.
        completion: Provider call; defaults to litellm.acompletion.
        sleep: Retry delay coroutine; injectable for tests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        metrics: MetricsAggregator | None = None,
        completion: Callable[..., Awaitable[Any]] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if settings is None:
            settings = get_settings()
        self._settings = settings
        self._metrics = metrics or MetricsAggregator(settings.METRICS_LATENCY_WINDOW)
        self._completion = completion or litellm.acompletion
        self.policy = RetryPolicy(
            max_attempts=settings.LLM_MAX_RETRIES,
            base_delay_seconds=settings.LLM_RETRY_BASE_DELAY,
            jitter_seconds=settings.RETRY_JITTER,
        )
        self._engine = RetryEngine(self.policy, COMPONENT, metrics=self._metrics, sleep=sleep)
        self.timeout_seconds = settings.LLM_TIMEOUT

    @property
    def configured(self) -> bool:
        return self._settings.llm_configured

    def resolve_options(self, options: SummaryOptions | None = None) -> dict[str, Any]:
        """Merge per-call overrides with configured defaults."""
        options = options or SummaryOptions()
        return {
            "model": options.model or self._settings.LLM_MODEL,
            "temperature": (
                options.temperature
                if options.temperature is not None
                else self._settings.LLM_TEMPERATURE
            ),
            "max_tokens": options.max_tokens or self._settings.LLM_MAX_TOKENS,
        }

    async def generate_summary(
        self,
        transcript: str,
        custom_prompt: str = "",
        options: SummaryOptions | None = None,
    ) -> str:
        """Summarize a transcript.

        Returns:
            The provider's completion text, unmodified.

        Raises:
            ServiceUnavailableError: If no provider key is configured.
            ClassifiedError: Terminal failure after classification/retries;
                an empty completion is a non-retryable VALIDATION_FAULT.
        """
        if not self.configured:
            raise ServiceUnavailableError("LLM provider is not configured (set GROQ_API_KEY)")

        params = self.resolve_options(options)
        messages = [{"role": "user", "content": build_summary_prompt(transcript, custom_prompt)}]

        async def _call() -> Any:
            return await self._completion(
                model=params["model"],
                messages=messages,
                max_tokens=params["max_tokens"],
                temperature=params["temperature"],
                api_key=self._settings.GROQ_API_KEY,
            )

        async def _attempt() -> tuple[str, int]:
            response = await with_timeout(_call, self.timeout_seconds, label="LLM request")
            content = _extract_content(response)
            if not content:
                raise ClassifiedError.validation("Empty response received from AI provider")
            return content, _extract_total_tokens(response)

        self._metrics.begin_call(COMPONENT)
        start = time.perf_counter()
        try:
            summary, tokens = await self._engine.execute(_attempt)
        except ClassifiedError as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            self._metrics.record_failure(COMPONENT, latency_ms)
            logger.error(
                "summary_generation_failed",
                model=params["model"],
                kind=exc.kind.value,
                error=exc.original_message,
                latency_ms=round(latency_ms, 2),
            )
            raise

        latency_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_success(COMPONENT, latency_ms, units=tokens)
        logger.info(
            "summary_generated",
            model=params["model"],
            tokens=tokens,
            latency_ms=round(latency_ms, 2),
            transcript_length=len(transcript),
        )
        return summary
