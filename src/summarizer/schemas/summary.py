"""Pydantic schemas for summary generation."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

MIN_TRANSCRIPT_CHARS = 10
MAX_TRANSCRIPT_CHARS = 100_000


class SummaryOptions(BaseModel):
    """Per-call overrides for the provider request. None keeps the configured default."""

    model: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1, le=32_768)


class SummaryRequest(BaseModel):
    """Request schema for summary generation."""

    transcript: str = Field(
        ...,
        min_length=MIN_TRANSCRIPT_CHARS,
        max_length=MAX_TRANSCRIPT_CHARS,
        description="Meeting transcript text",
    )
    custom_prompt: str = Field(default="", description="Optional summarization instructions")
    model: str | None = Field(default=None, description="Provider model id override")
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1, le=32_768)
    skip_cache: bool = Field(default=False, description="Bypass the response cache")

    def options(self) -> SummaryOptions:
        return SummaryOptions(
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )


class SummaryMetadata(BaseModel):
    model: str
    timestamp: datetime
    transcript_length: int
    summary_length: int
    cached: bool = False


class SummaryResponse(BaseModel):
    """Response schema for summary generation."""

    summary: str
    metadata: SummaryMetadata
