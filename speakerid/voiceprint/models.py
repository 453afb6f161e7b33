"""
Live-path data: one analyser frame, its voiceprint, and a per-session speaker profile.

AudioFrame mirrors what a browser AnalyserNode hands out: byte magnitudes (0-255)
per frequency bin covering 0..sample_rate/2. Frames are consumed and discarded;
the pipeline never keeps more than the current and the previous one.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Sequence

TIMBRE_COEFFICIENTS = 8


@dataclass(frozen=True)
class AudioFrame:
    """
    One frame of frequency-domain energy.

    bins: unsigned magnitudes per frequency bin (0..255).
    sample_rate: rate (Hz) of the PCM the spectrum was computed from.
    timestamp_ms: capture time, session-relative; copied into the voiceprint.
    """

    bins: Sequence[int]
    sample_rate: int
    timestamp_ms: float = 0.0


@dataclass(frozen=True)
class Voiceprint:
    """Compact fingerprint of one frame. Immutable once computed."""

    energy: float  # dB relative to full scale, -100 (silence) .. 0
    pitch: float  # Hz, dominant bin in the voice band
    spectral_centroid: float  # Hz
    spectral_rolloff: float  # Hz, 85% of cumulative magnitude below
    timbre: tuple[float, ...]  # TIMBRE_COEFFICIENTS band means
    timestamp_ms: float = 0.0


@dataclass
class SpeakerProfile:
    """
    Known speaker within one registry. Owned by SpeakerRegistry and only
    mutated through its running-average update.
    """

    label: str
    average_voiceprint: Voiceprint
    history: deque[Voiceprint] = field(default_factory=lambda: deque(maxlen=20))
    first_seen_ms: float = 0.0
    last_seen_ms: float = 0.0
    utterance_count: int = 1
