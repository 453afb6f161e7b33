"""
Live speaker detection: one analyser frame in, one SpeakerEvent out.

- Labels are session-local ("Speaker 1", "Speaker 2", ...); no real identity inference.
- Silence (energy below LIVE_SILENCE_THRESHOLD_DB) holds the current speaker and
  does not touch the registry.
- Before anyone speaks, the implicit speaker is LIVE_DEFAULT_SPEAKER.

Limitations (MUST be kept in sync with product behavior):
- Overlapping speech is attributed to whichever voice dominates the frame.
- Frame-level decisions flicker on short noises; consumers should debounce.
- Accuracy depends on mic quality and distance.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator

from speakerid.config import Settings, get_settings
from speakerid.diarization.models import SpeakerEvent
from speakerid.errors import InvalidFrame
from speakerid.voiceprint.extractor import VoiceprintExtractor
from speakerid.voiceprint.models import AudioFrame
from speakerid.voiceprint.registry import SpeakerRegistry

logger = logging.getLogger(__name__)


class DetectorState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    STOPPED = "stopped"


class LiveSpeakerDetector:
    """
    Per-frame state machine over one SpeakerRegistry.
    process_frame() is synchronous; one detector serves one stream.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        extractor: VoiceprintExtractor | None = None,
        registry: SpeakerRegistry | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._silence_db = settings.LIVE_SILENCE_THRESHOLD_DB
        self._enroll_confidence = settings.LIVE_ENROLLMENT_CONFIDENCE
        self._default_speaker = settings.LIVE_DEFAULT_SPEAKER
        self._extractor = extractor or VoiceprintExtractor()
        self._registry = registry or SpeakerRegistry(settings)
        self._state = DetectorState.IDLE
        self._current: str | None = None
        self._last_confidence = 0.0

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def registry(self) -> SpeakerRegistry:
        return self._registry

    @property
    def current_speaker(self) -> str | None:
        return self._current

    def process_frame(self, frame: AudioFrame) -> SpeakerEvent:
        """
        Classify one frame. Raises InvalidFrame for malformed frames and
        RuntimeError once the detector is stopped.
        """
        if self._state == DetectorState.STOPPED:
            raise RuntimeError("detector is stopped; call reset() to reuse it")
        if self._state == DetectorState.IDLE:
            self._state = DetectorState.LISTENING

        voiceprint = self._extractor.extract(frame)

        if voiceprint.energy < self._silence_db:
            self._last_confidence = 0.0
            return SpeakerEvent(
                speaker=self._current or self._default_speaker,
                is_new_speaker=False,
                confidence=0.0,
                timestamp_ms=voiceprint.timestamp_ms,
            )

        matched = self._registry.match(voiceprint)
        if matched is not None:
            label, confidence = matched
            self._registry.update(label, voiceprint)
            if label != self._current:
                logger.debug("Speaker change: %s -> %s (%.2f)", self._current, label, confidence)
            self._current = label
            self._last_confidence = confidence
            return SpeakerEvent(label, False, confidence, voiceprint.timestamp_ms)

        label = self._registry.enroll(voiceprint)
        self._current = label
        self._last_confidence = self._enroll_confidence
        return SpeakerEvent(label, True, self._enroll_confidence, voiceprint.timestamp_ms)

    def stop(self) -> None:
        self._state = DetectorState.STOPPED

    def reset(self) -> None:
        """Forget all speakers and return to IDLE. The extractor is kept."""
        self._registry.clear()
        self._current = None
        self._last_confidence = 0.0
        self._state = DetectorState.IDLE

    def current_speaker_info(self) -> dict[str, Any]:
        return {
            "current_speaker": self._current or self._default_speaker,
            "total_speakers": len(self._registry),
            "speakers": self._registry.labels(),
            "confidence": self._last_confidence,
        }


async def live_detect(
    frames: AsyncIterable[AudioFrame],
    detector: LiveSpeakerDetector | None = None,
) -> AsyncIterator[SpeakerEvent]:
    """
    Yield one SpeakerEvent per valid frame. Malformed frames are logged and
    skipped; iteration ends when the stream ends or the detector is stopped.
    """
    detector = detector or LiveSpeakerDetector()
    async for frame in frames:
        if detector.state == DetectorState.STOPPED:
            break
        try:
            event = detector.process_frame(frame)
        except InvalidFrame as e:
            logger.warning("Skipping malformed frame: %s", e)
            continue
        yield event
