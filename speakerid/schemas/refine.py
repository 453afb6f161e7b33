"""
Schemas for AI speaker refinement.

Input: the diarized utterances (index, speaker label, text, times) plus optional
conversation context. Output: a list of speaker reassignments; utterances not
listed keep their label. The pre-refinement result is never overwritten; the
orchestrator builds a new result from the reassignments.
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class RefineUtteranceInput(BaseModel):
    """One utterance as shown to the model."""

    index: int = Field(..., ge=0, description="Position in the result's utterance list")
    speaker: str = Field(..., description="Current speaker label (e.g. 'A')")
    text: str = Field(..., description="Transcript text")
    start_sec: float = Field(0.0, description="Start time in seconds")
    end_sec: float = Field(0.0, description="End time in seconds")


class SpeakerReassignment(BaseModel):
    """Model's decision to move one utterance to another (existing) speaker."""

    index: int = Field(..., ge=0, description="Utterance index being reassigned")
    speaker_label: str = Field(..., description="New speaker label; must already occur in the result")
    confidence: float = Field(0.5, ge=0.0, le=1.0, description="Model confidence 0-1")
    reason: str = Field("", description="Brief justification")
