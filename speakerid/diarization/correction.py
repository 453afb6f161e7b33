"""
CorrectionEngine: bounded heuristic rewrites of a diarization result.

One left-to-right pass. Each rule compares an utterance with the already
corrected previous one, so running the engine again on its own output finds
nothing left to change.

1. A very short switch right after the previous utterance is merged back into
   the previous speaker. Such utterances are never reassigned by rule 2.
2. A response that kept the previous speaker is moved to another known speaker.
"""
from __future__ import annotations

import dataclasses
import logging

from speakerid.config import Settings, get_settings
from speakerid.diarization.heuristics import is_likely_response
from speakerid.diarization.models import DiarizationResult, Utterance, ValidationReport

logger = logging.getLogger(__name__)


def _other_label(own: str, known: tuple[str, ...]) -> str:
    for label in known:
        if label != own:
            return label
    return "A" if own == "B" else "B"


class CorrectionEngine:
    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._rapid_gap = settings.RAPID_SWITCH_GAP_SECONDS
        self._merge_max_chars = settings.MERGE_MAX_CHARS
        self._bonus = settings.CORRECTION_CONFIDENCE_BONUS

    def correct(self, result: DiarizationResult, report: ValidationReport | None = None) -> DiarizationResult:
        """
        Return a corrected copy of result. report is accepted for logging context;
        the rules are re-derived from the utterances themselves.
        """
        known = result.speakers
        out: list[Utterance] = list(result.utterances)
        corrections = 0

        for i in range(1, len(out)):
            prev, cur = out[i - 1], out[i]
            gap = (cur.start_ms - prev.end_ms) / 1000.0
            short_rapid = gap < self._rapid_gap and len(cur.text.strip()) < self._merge_max_chars

            if short_rapid:
                if cur.speaker_label != prev.speaker_label:
                    logger.info(
                        "Correction #%d: merged short switch %d (%r) into %s",
                        corrections + 1, i, cur.text, prev.speaker_label,
                    )
                    out[i] = dataclasses.replace(cur, speaker_label=prev.speaker_label)
                    corrections += 1
                continue

            if cur.speaker_label == prev.speaker_label and is_likely_response(cur.text, prev.text):
                new_label = _other_label(cur.speaker_label, known)
                logger.info(
                    "Correction #%d: utterance %d is a response, %s -> %s",
                    corrections + 1, i, cur.speaker_label, new_label,
                )
                out[i] = dataclasses.replace(cur, speaker_label=new_label)
                corrections += 1

        metadata = dict(result.metadata)
        metadata["correction_count"] = corrections
        if corrections == 0:
            if report is not None:
                logger.debug("No corrections applied (score %.3f)", report.overall_score)
            return dataclasses.replace(result, metadata=metadata)

        metadata["enhanced"] = True
        logger.info("Applied %d speaker corrections to %s result", corrections, result.method)
        return DiarizationResult(
            utterances=tuple(out),
            confidence=min(1.0, result.confidence + self._bonus),
            method=result.method,
            duration_ms=result.duration_ms,
            metadata=metadata,
        )
