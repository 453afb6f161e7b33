"""
SpeakerRegistry: in-memory speaker profiles for one live session.

- Matches a voiceprint against known profiles by weighted similarity
  (pitch, spectral centroid, timbre).
- Enrolls unmatched voiceprints as "Speaker N" (N = profile count + 1).
- Keeps each profile's average fresh with an exponential running average.

Profiles live only as long as the registry; nothing is persisted. One registry
belongs to one detector, and callers only ever see deep copies of profiles.
"""
from __future__ import annotations

import copy
import logging
import math
from collections import deque

from speakerid.config import Settings, get_settings
from speakerid.voiceprint.models import SpeakerProfile, Voiceprint

logger = logging.getLogger(__name__)

SPEAKER_PREFIX = "Speaker "


def _closeness(a: float, b: float, scale: float) -> float:
    """exp(-|a - b| / scale): 1.0 when equal, tending to 0 as they diverge."""
    return math.exp(-abs(a - b) / scale)


def _blend(old: float, new: float, alpha: float) -> float:
    return old * (1.0 - alpha) + new * alpha


class SpeakerRegistry:
    """Per-session profile store. Not shared between sessions or threads."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._threshold = settings.LIVE_SPEAKER_CHANGE_THRESHOLD
        self._alpha = settings.LIVE_LEARNING_RATE
        self._history_size = settings.LIVE_HISTORY_SIZE
        self._pitch_weight = settings.SIMILARITY_PITCH_WEIGHT
        self._centroid_weight = settings.SIMILARITY_CENTROID_WEIGHT
        self._timbre_weight = settings.SIMILARITY_TIMBRE_WEIGHT
        self._pitch_scale = settings.SIMILARITY_PITCH_SCALE_HZ
        self._centroid_scale = settings.SIMILARITY_CENTROID_SCALE_HZ
        self._timbre_scale = settings.SIMILARITY_TIMBRE_SCALE
        self._profiles: dict[str, SpeakerProfile] = {}

    def similarity(self, a: Voiceprint, b: Voiceprint) -> float:
        """Weighted similarity in [0, 1]; 1.0 for identical voiceprints."""
        pitch = _closeness(a.pitch, b.pitch, self._pitch_scale)
        centroid = _closeness(a.spectral_centroid, b.spectral_centroid, self._centroid_scale)
        pairs = list(zip(a.timbre, b.timbre))
        if pairs:
            timbre = sum(_closeness(x, y, self._timbre_scale) for x, y in pairs) / len(pairs)
        else:
            timbre = 1.0
        total_weight = self._pitch_weight + self._centroid_weight + self._timbre_weight
        score = (
            self._pitch_weight * pitch
            + self._centroid_weight * centroid
            + self._timbre_weight * timbre
        ) / total_weight
        return min(1.0, max(0.0, score))

    def match(self, voiceprint: Voiceprint) -> tuple[str, float] | None:
        """
        Best matching profile as (label, confidence), or None when no profile
        is strictly above the speaker-change threshold. Ties keep the older profile.
        """
        best: tuple[str, float] | None = None
        for label, profile in self._profiles.items():
            score = self.similarity(voiceprint, profile.average_voiceprint)
            if best is None or score > best[1]:
                best = (label, score)
        if best is None or best[1] <= self._threshold:
            return None
        return best

    def enroll(self, voiceprint: Voiceprint) -> str:
        """Create a new profile from this voiceprint and return its label."""
        label = f"{SPEAKER_PREFIX}{len(self._profiles) + 1}"
        history: deque[Voiceprint] = deque(maxlen=self._history_size)
        history.append(voiceprint)
        self._profiles[label] = SpeakerProfile(
            label=label,
            average_voiceprint=voiceprint,
            history=history,
            first_seen_ms=voiceprint.timestamp_ms,
            last_seen_ms=voiceprint.timestamp_ms,
            utterance_count=1,
        )
        logger.info("Enrolled %s (pitch=%.1fHz, energy=%.1fdB)", label, voiceprint.pitch, voiceprint.energy)
        return label

    def update(self, label: str, voiceprint: Voiceprint) -> None:
        """
        Fold a matched voiceprint into the profile's running average.
        Energy is not averaged; it tracks loudness, not identity.
        Raises KeyError for an unknown label.
        """
        profile = self._profiles[label]
        avg = profile.average_voiceprint
        a = self._alpha
        timbre = tuple(_blend(old, new, a) for old, new in zip(avg.timbre, voiceprint.timbre))
        profile.average_voiceprint = Voiceprint(
            energy=avg.energy,
            pitch=_blend(avg.pitch, voiceprint.pitch, a),
            spectral_centroid=_blend(avg.spectral_centroid, voiceprint.spectral_centroid, a),
            spectral_rolloff=_blend(avg.spectral_rolloff, voiceprint.spectral_rolloff, a),
            timbre=timbre,
            timestamp_ms=voiceprint.timestamp_ms,
        )
        profile.history.append(voiceprint)
        profile.last_seen_ms = voiceprint.timestamp_ms
        profile.utterance_count += 1

    def labels(self) -> list[str]:
        """Labels in enrollment order."""
        return list(self._profiles)

    def profile(self, label: str) -> SpeakerProfile:
        """Deep copy of one profile; mutating it does not touch the registry."""
        return copy.deepcopy(self._profiles[label])

    def clear(self) -> None:
        self._profiles.clear()

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, label: object) -> bool:
        return label in self._profiles
