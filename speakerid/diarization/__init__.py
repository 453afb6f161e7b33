"""
Speaker diarization: live per-frame detection and batch validation/correction.

- Live: LiveSpeakerDetector assigns session-local labels ("Speaker 1", ...) per frame.
- Batch: the orchestrator (speakerid.diarization.orchestrator) escalates over remote
  backends; SpeakerValidator scores the result and CorrectionEngine fixes obvious
  turn-taking mistakes. Entry point: speakerid.diarization.pipeline.diarize_and_validate.

Limitations:
- Overlapping speech is attributed to one speaker per utterance.
- Speaker labels are approximate; no real identity inference.
- Accuracy depends on mic quality and distance.
"""
from __future__ import annotations

from speakerid.diarization.models import (
    BackendPoll,
    DiarizationResult,
    JobStatus,
    SpeakerEvent,
    Utterance,
    ValidationIssue,
    ValidationReport,
)
from speakerid.diarization.heuristics import is_likely_response
from speakerid.diarization.live_detector import DetectorState, LiveSpeakerDetector, live_detect
from speakerid.diarization.validator import SpeakerValidator
from speakerid.diarization.correction import CorrectionEngine

__all__ = [
    "BackendPoll",
    "DiarizationResult",
    "JobStatus",
    "SpeakerEvent",
    "Utterance",
    "ValidationIssue",
    "ValidationReport",
    "is_likely_response",
    "DetectorState",
    "LiveSpeakerDetector",
    "live_detect",
    "SpeakerValidator",
    "CorrectionEngine",
]
