"""
Error kinds for the speaker identification pipeline.

Only BackendUnavailable and DiarizationCancelled are meant to reach callers;
the rest are raised and absorbed inside the live loop or the escalation chain.
"""
from __future__ import annotations

from typing import Any


class SpeakerIdError(Exception):
    """Base class for all pipeline errors."""


class InvalidFrame(SpeakerIdError):
    """Audio frame is empty or malformed. The live loop skips it."""


class BackendError(SpeakerIdError):
    """One diarization backend failed (submit rejected, job errored, bad payload)."""

    def __init__(self, backend: str, message: str) -> None:
        super().__init__(f"{backend}: {message}")
        self.backend = backend


class BackendTimeout(BackendError):
    """One diarization backend did not finish within its ceiling."""


class BackendUnavailable(SpeakerIdError):
    """Every configured backend failed; the batch job should be retried by the caller."""

    def __init__(self, message: str, fallbacks: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.fallbacks = list(fallbacks or [])


class RefinementFailed(SpeakerIdError):
    """AI refinement step failed; the pre-refinement result is kept."""


class DiarizationCancelled(SpeakerIdError):
    """Caller cancelled a batch job. Submitted remote jobs are abandoned, not retracted."""
