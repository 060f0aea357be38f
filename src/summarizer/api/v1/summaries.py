"""Summary generation endpoint.

Admission runs first (general + summary policies), then the response cache,
and only on a miss the LLM adapter with its retry/timeout handling.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response

from src.summarizer.api.deps import (
    get_app_settings,
    get_cache,
    get_summary_service,
    rate_limit,
)
from src.summarizer.config import Settings
from src.summarizer.core.cache import ResponseCache
from src.summarizer.schemas.summary import SummaryMetadata, SummaryRequest, SummaryResponse
from src.summarizer.services.llm import SummaryService, summary_cache_key

router = APIRouter(tags=["summaries"])


@router.post(
    "/generate-summary",
    response_model=SummaryResponse,
    dependencies=[Depends(rate_limit("summary"))],
)
async def generate_summary(
    body: SummaryRequest,
    response: Response,
    service: SummaryService = Depends(get_summary_service),
    cache: ResponseCache = Depends(get_cache),
    settings: Settings = Depends(get_app_settings),
):
    """Summarize a meeting transcript.

    Identical requests within SUMMARY_CACHE_TTL are served from the cache
    unless skip_cache is set. The X-Cache header reports HIT or MISS.
    """
    options = body.options()
    params = service.resolve_options(options)
    computed = False

    async def _compute() -> str:
        nonlocal computed
        computed = True
        return await service.generate_summary(body.transcript, body.custom_prompt, options)

    if body.skip_cache or settings.SUMMARY_CACHE_TTL <= 0:
        summary = await _compute()
    else:
        summary = await cache.get_or_compute(
            summary_cache_key(body.transcript, body.custom_prompt, params),
            _compute,
            ttl_seconds=settings.SUMMARY_CACHE_TTL,
            cache_failures=settings.CACHE_ERRORS,
        )

    response.headers["X-Cache"] = "MISS" if computed else "HIT"
    return SummaryResponse(
        summary=summary,
        metadata=SummaryMetadata(
            model=params["model"],
            timestamp=datetime.now(timezone.utc),
            transcript_length=len(body.transcript),
            summary_length=len(summary),
            cached=not computed,
        ),
    )
