"""
VoiceprintExtractor: single-pass spectral statistics for one analyser frame.

Runs inside the real-time loop, so everything is an O(n) numpy reduction:
energy (dB), dominant pitch in the voice band, spectral centroid, 85% rolloff
and 8 coarse band means standing in for MFCCs.
"""
from __future__ import annotations

import math

import numpy as np

from speakerid.errors import InvalidFrame
from speakerid.voiceprint.models import TIMBRE_COEFFICIENTS, AudioFrame, Voiceprint

MAX_MAGNITUDE = 255.0
SILENCE_DB = -100.0
ROLLOFF_FRACTION = 0.85
# Lowest bin searched for pitch; skips DC and rumble.
PITCH_MIN_BIN = 10


def _as_bins(frame: AudioFrame) -> np.ndarray:
    if frame.sample_rate is None or frame.sample_rate <= 0:
        raise InvalidFrame(f"sample_rate must be > 0, got {frame.sample_rate!r}")
    try:
        bins = np.asarray(frame.bins, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidFrame(f"frame bins are not numeric: {e}") from e
    if bins.ndim != 1:
        raise InvalidFrame(f"frame bins must be 1-D, got shape {bins.shape}")
    if bins.size == 0:
        raise InvalidFrame("frame has no bins")
    if not np.all(np.isfinite(bins)):
        raise InvalidFrame("frame contains non-finite magnitudes")
    if bins.min() < 0 or bins.max() > MAX_MAGNITUDE:
        raise InvalidFrame("frame magnitudes must be within 0..255")
    return bins


def _pitch_band(n: int) -> tuple[int, int]:
    """Bin range [lo, hi) searched for the dominant frequency."""
    hi = n // 4
    if hi <= PITCH_MIN_BIN:
        return 0, n
    return PITCH_MIN_BIN, hi


class VoiceprintExtractor:
    """Pure and deterministic: the same frame always yields the same Voiceprint."""

    def extract(self, frame: AudioFrame) -> Voiceprint:
        bins = _as_bins(frame)
        n = bins.size
        bin_hz = (frame.sample_rate / 2.0) / n

        mean = float(bins.mean())
        if mean > 0:
            energy = 20.0 * math.log10(mean / MAX_MAGNITUDE)
        else:
            energy = SILENCE_DB
        energy = min(0.0, max(SILENCE_DB, energy))

        lo, hi = _pitch_band(n)
        band = bins[lo:hi]
        peak = int(np.argmax(band))
        pitch = (lo + peak) * bin_hz if band[peak] > 0 else 0.0

        total = float(bins.sum())
        if total > 0:
            freqs = np.arange(n, dtype=np.float64) * bin_hz
            centroid = float(np.dot(freqs, bins) / total)
            cumulative = np.cumsum(bins)
            rolloff_bin = int(np.searchsorted(cumulative, total * ROLLOFF_FRACTION))
            rolloff = min(rolloff_bin, n - 1) * bin_hz
        else:
            centroid = 0.0
            rolloff = 0.0

        timbre = []
        for i in range(TIMBRE_COEFFICIENTS):
            start = (i * n) // TIMBRE_COEFFICIENTS
            end = ((i + 1) * n) // TIMBRE_COEFFICIENTS
            timbre.append(float(bins[start:end].mean()) if end > start else 0.0)

        return Voiceprint(
            energy=energy,
            pitch=float(pitch),
            spectral_centroid=centroid,
            spectral_rolloff=float(rolloff),
            timbre=tuple(timbre),
            timestamp_ms=float(frame.timestamp_ms),
        )


def extract_voiceprint(frame: AudioFrame) -> Voiceprint:
    """Module-level convenience around VoiceprintExtractor().extract."""
    return VoiceprintExtractor().extract(frame)
