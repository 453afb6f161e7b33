"""
diarize_and_validate: batch entry point.

diarize -> validate -> correct when the score is below VALIDATION_THRESHOLD.
The final result carries validation_score / validation_issues in metadata.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging

from speakerid.config import Settings, get_settings
from speakerid.diarization.correction import CorrectionEngine
from speakerid.diarization.models import DiarizationResult
from speakerid.diarization.orchestrator import DiarizationOrchestrator, create_orchestrator
from speakerid.diarization.validator import SpeakerValidator
from speakerid.schemas.diarize import DiarizationSettings

logger = logging.getLogger(__name__)


async def diarize_and_validate(
    audio_ref: str,
    settings: DiarizationSettings | None = None,
    *,
    orchestrator: DiarizationOrchestrator | None = None,
    validator: SpeakerValidator | None = None,
    engine: CorrectionEngine | None = None,
    cancel_event: asyncio.Event | None = None,
    app_settings: Settings | None = None,
) -> DiarizationResult:
    """
    Run the full batch pipeline. Raises BackendUnavailable when no backend
    produced a result and DiarizationCancelled when cancel_event is set.
    """
    app_settings = app_settings or get_settings()
    orchestrator = orchestrator or create_orchestrator(app_settings)
    validator = validator or SpeakerValidator(app_settings)
    engine = engine or CorrectionEngine(app_settings)
    threshold = app_settings.VALIDATION_THRESHOLD

    result = await orchestrator.diarize(audio_ref, settings, cancel_event=cancel_event)
    report = validator.validate(result)
    logger.info(
        "Validation of %s: score=%.3f issues=%d subscores=%s",
        result.method, report.overall_score, report.issue_count, report.subscores,
    )

    if report.needs_correction(threshold):
        logger.info("Score %.3f below %.2f, running corrections", report.overall_score, threshold)
        result = engine.correct(result, report)

    metadata = dict(result.metadata)
    metadata["validation_score"] = report.overall_score
    metadata["validation_issues"] = report.issue_count
    metadata["validation_subscores"] = report.subscores
    return dataclasses.replace(result, metadata=metadata)
