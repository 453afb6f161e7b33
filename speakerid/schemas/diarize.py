"""
Schemas for the batch diarization API (POST /api/diarize).

DiarizationSettings are per-call options; service-wide tuning lives in Settings.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator


class DiarizationSettings(BaseModel):
    """Per-job diarization options."""

    language: str | None = Field(None, description="Language code (e.g. 'en'); None = auto-detect")
    speakers_expected: int | None = Field(None, ge=1, description="Exact speaker count when known")
    min_speakers: int = Field(1, ge=1, description="Lower bound on speakers")
    max_speakers: int = Field(10, ge=1, description="Upper bound on speakers")
    enable_refinement: bool = Field(True, description="Run AI refinement when targets are not met")
    context: str | None = Field(None, description="Optional conversation context for AI refinement")

    @model_validator(mode="after")
    def check_bounds(self) -> "DiarizationSettings":
        if self.min_speakers > self.max_speakers:
            raise ValueError("min_speakers must be <= max_speakers")
        return self


class DiarizeRequest(BaseModel):
    """Request body for POST /api/diarize."""

    audio_url: str = Field(..., min_length=1, description="Publicly fetchable URL of the recording")
    settings: DiarizationSettings = Field(default_factory=DiarizationSettings)


class UtteranceOut(BaseModel):
    speaker: str
    text: str
    start_ms: float
    end_ms: float
    confidence: float


class ValidationOut(BaseModel):
    overall_score: float
    subscores: dict[str, float]
    issue_count: int


class DiarizeResponse(BaseModel):
    """Final diarization: utterances, speakers, confidence and how it was produced."""

    method: str
    confidence: float
    speakers: list[str]
    utterances: list[UtteranceOut]
    duration_ms: float = 0.0
    transcript: str = ""
    validation: ValidationOut | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
