"""
Speaker-attributed results for the batch diarization path and the live detector.

Batch results:
- Utterance: one speaker-labelled span of transcript (times in ms, file-relative).
- DiarizationResult: ordered utterances plus overall confidence and the method
  that produced them. `speakers` is always derived from the utterances.
- ValidationReport: plausibility score for a result and the issues found.

Live results:
- SpeakerEvent: one per processed frame.

Limitations:
- Speaker labels are approximate and backend-local ("A", "B", ...); no real
  identity inference.
- Overlapping speech is attributed to a single speaker per utterance.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def _ordered_labels(utterances: tuple[Utterance, ...]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for u in utterances:
        seen.setdefault(u.speaker_label, None)
    return tuple(seen)


def _hhmmss(ms: float) -> str:
    total = int(ms // 1000)
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}:{total % 60:02d}"


@dataclass(frozen=True)
class Utterance:
    """
    One speaker-tagged transcript span.

    start_ms, end_ms: milliseconds from the start of the audio; end_ms >= start_ms.
    confidence: backend confidence, clamped to [0, 1].
    """

    speaker_label: str
    text: str
    start_ms: float
    end_ms: float
    confidence: float = 0.8

    def __post_init__(self) -> None:
        if self.start_ms < 0 or self.end_ms < 0:
            raise ValueError(f"utterance times must be >= 0, got {self.start_ms}..{self.end_ms}")
        if self.end_ms < self.start_ms:
            raise ValueError(f"utterance ends before it starts: {self.start_ms}..{self.end_ms}")
        object.__setattr__(self, "confidence", _clamp(self.confidence))

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms

    @property
    def duration_sec(self) -> float:
        return self.duration_ms / 1000.0


@dataclass(frozen=True)
class DiarizationResult:
    """
    Output of diarization: utterances in time order, overall confidence, method.

    method: backend name, "ensemble", or "ai_refined_<method>".
    metadata: fallbacks, correction count, validation score, refinement reassignments.
    """

    utterances: tuple[Utterance, ...]
    confidence: float
    method: str
    duration_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)
    speakers: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        utterances = tuple(self.utterances)
        object.__setattr__(self, "utterances", utterances)
        object.__setattr__(self, "confidence", _clamp(self.confidence))
        object.__setattr__(self, "speakers", _ordered_labels(utterances))
        if not self.duration_ms and utterances:
            object.__setattr__(self, "duration_ms", max(u.end_ms for u in utterances))

    def transcript_text(self) -> str:
        """
        Plain-text transcript: one line per utterance,
        "Speaker N    HH:MM:SS    text" (N = 0-based order of first appearance), then [END].
        """
        index = {label: i for i, label in enumerate(self.speakers)}
        lines = [
            f"Speaker {index[u.speaker_label]}    {_hhmmss(u.start_ms)}    {u.text}"
            for u in self.utterances
        ]
        return "\n".join(lines) + "\n\n[END]"

    def speaker_summaries(self) -> list[dict[str, Any]]:
        """Per speaker: segment count, total speaking seconds, mean confidence."""
        out = []
        for label in self.speakers:
            own = [u for u in self.utterances if u.speaker_label == label]
            out.append(
                {
                    "speaker": label,
                    "segment_count": len(own),
                    "total_seconds": round(sum(u.duration_sec for u in own), 3),
                    "average_confidence": sum(u.confidence for u in own) / len(own),
                }
            )
        return out


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found by the validator. index refers to result.utterances."""

    kind: str  # consistency | rapid_switch | missed_switch | questionable_switch
    index: int
    speaker_label: str
    detail: str = ""


@dataclass
class ValidationReport:
    overall_score: float
    consistency: float = 1.0
    transitions: float = 1.0
    content: float = 1.0
    timing: float = 1.0
    voice: float = 1.0
    issue_count: int = 0
    issues: list[ValidationIssue] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def subscores(self) -> dict[str, float]:
        return {
            "consistency": self.consistency,
            "transitions": self.transitions,
            "content": self.content,
            "timing": self.timing,
            "voice": self.voice,
        }

    def needs_correction(self, threshold: float = 0.9) -> bool:
        return self.overall_score < threshold


@dataclass(frozen=True)
class SpeakerEvent:
    """Live detector output for one frame."""

    speaker: str
    is_new_speaker: bool
    confidence: float
    timestamp_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "speaker",
            "speaker": self.speaker,
            "is_new_speaker": self.is_new_speaker,
            "confidence": self.confidence,
            "timestamp": self.timestamp_ms,
        }


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class BackendPoll:
    """Snapshot of one remote diarization job. utterances/confidence are set once completed."""

    status: JobStatus
    utterances: list[Utterance] = field(default_factory=list)
    confidence: float = 0.0
    duration_ms: float = 0.0
    error: str | None = None

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.ERROR)
