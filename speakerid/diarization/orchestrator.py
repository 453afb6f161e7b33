"""
DiarizationOrchestrator: stop-early escalation over remote diarization backends.

Chain (each step only runs when the best result so far misses its target):
1. primary backend            -> return if confidence >= PRIMARY_CONFIDENCE_TARGET
2. secondary backend          -> return if best >= SECONDARY_CONFIDENCE_TARGET
3. ensemble backends (parallel, weighted vote) -> return if best >= ENSEMBLE_CONFIDENCE_TARGET
4. AI refinement of the best result
A later step replaces the best result only with strictly higher confidence.

Per-backend failures are logged and recorded in metadata["fallbacks"]; only
BackendUnavailable (nothing succeeded) and DiarizationCancelled reach the caller.
Remote jobs are abandoned on cancel/timeout, never retracted.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, TypeVar

import httpx

from speakerid.backends import create_backend
from speakerid.backends.base import BackendConfig, DiarizationBackend
from speakerid.config import Settings, get_settings
from speakerid.diarization.ensemble import EnsembleMember, combine
from speakerid.diarization.models import DiarizationResult, JobStatus
from speakerid.errors import (
    BackendError,
    BackendTimeout,
    BackendUnavailable,
    DiarizationCancelled,
    RefinementFailed,
)
from speakerid.schemas.diarize import DiarizationSettings
from speakerid.services.speaker_refinement import SpeakerRefiner, apply_reassignments

logger = logging.getLogger(__name__)

PRIMARY_SWITCH_SENSITIVITY = 0.95

T = TypeVar("T")


def _check_cancel(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise DiarizationCancelled("diarization cancelled by caller")


async def _sleep_or_cancel(seconds: float, cancel_event: asyncio.Event | None) -> None:
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    _check_cancel(cancel_event)


# Provider payloads that do not parse (bad types, end < start, non-JSON bodies).
_PAYLOAD_ERRORS = (ValueError, TypeError, KeyError, AttributeError)


async def _checked(backend: DiarizationBackend, call: Awaitable[T]) -> T:
    try:
        return await call
    except _PAYLOAD_ERRORS as e:
        raise BackendError(backend.name, f"malformed payload: {e}") from e


def _better(best: DiarizationResult | None, candidate: DiarizationResult | None) -> DiarizationResult | None:
    if candidate is None:
        return best
    if best is None or candidate.confidence > best.confidence:
        return candidate
    return best


def backend_config(options: DiarizationSettings) -> BackendConfig:
    return BackendConfig(
        min_speakers=options.min_speakers,
        max_speakers=options.max_speakers,
        speakers_expected=options.speakers_expected,
        switch_sensitivity=PRIMARY_SWITCH_SENSITIVITY,
        language=options.language,
    )


class DiarizationOrchestrator:
    """
    Holds its backends and refiner; keeps no state between diarize() calls,
    so one instance may serve concurrent jobs.
    """

    def __init__(
        self,
        primary: DiarizationBackend,
        secondary: DiarizationBackend | None = None,
        ensemble: list[tuple[DiarizationBackend, float]] | None = None,
        refiner: SpeakerRefiner | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._primary = primary
        self._secondary = secondary
        self._ensemble = list(ensemble or [])
        self._refiner = refiner
        self._primary_target = settings.PRIMARY_CONFIDENCE_TARGET
        self._secondary_target = settings.SECONDARY_CONFIDENCE_TARGET
        self._ensemble_target = settings.ENSEMBLE_CONFIDENCE_TARGET
        self._poll_interval = settings.BACKEND_POLL_INTERVAL_SECONDS
        self._max_wait = settings.BACKEND_MAX_WAIT_SECONDS
        self._max_retries = settings.BACKEND_MAX_RETRIES
        self._refinement_enabled = settings.REFINEMENT_ENABLED
        self._refinement_bonus = settings.REFINEMENT_CONFIDENCE_BONUS

    async def diarize(
        self,
        audio_ref: str,
        settings: DiarizationSettings | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DiarizationResult:
        options = settings or DiarizationSettings()
        config = backend_config(options)
        fallbacks: list[dict[str, Any]] = []
        best: DiarizationResult | None = None

        _check_cancel(cancel_event)
        logger.info("Step 1: primary backend %s for %s", self._primary.name, audio_ref)
        best = _better(best, await self._try_backend(self._primary, audio_ref, config, fallbacks, cancel_event))
        if best is not None and best.confidence >= self._primary_target:
            logger.info("Primary %s met target (%.3f)", best.method, best.confidence)
            return self._finish(best, fallbacks)

        _check_cancel(cancel_event)
        if self._secondary is not None:
            logger.info("Step 2: secondary backend %s", self._secondary.name)
            candidate = await self._try_backend(self._secondary, audio_ref, config, fallbacks, cancel_event)
            best = _better(best, candidate)
            if best is not None and best.confidence >= self._secondary_target:
                logger.info("Secondary step met target with %s (%.3f)", best.method, best.confidence)
                return self._finish(best, fallbacks)

        _check_cancel(cancel_event)
        if self._ensemble:
            logger.info("Step 3: ensemble of %s", [b.name for b, _ in self._ensemble])
            best = _better(best, await self._run_ensemble(audio_ref, config, fallbacks, cancel_event))
            if best is not None and best.confidence >= self._ensemble_target:
                logger.info("Ensemble step met target with %s (%.3f)", best.method, best.confidence)
                return self._finish(best, fallbacks)

        _check_cancel(cancel_event)
        refiner = self._refiner
        if best is not None and refiner is not None and self._refinement_enabled and options.enable_refinement:
            logger.info("Step 4: AI refinement of %s (%.3f)", best.method, best.confidence)
            best = _better(best, await self._try_refine(refiner, best, options.context, fallbacks))

        if best is None:
            logger.error("All diarization backends failed: %s", fallbacks)
            raise BackendUnavailable("All diarization backends failed", fallbacks)
        logger.info("Returning best result %s (%.3f) below targets", best.method, best.confidence)
        return self._finish(best, fallbacks)

    def _finish(self, best: DiarizationResult, fallbacks: list[dict[str, Any]]) -> DiarizationResult:
        metadata = dict(best.metadata)
        metadata["fallbacks"] = list(fallbacks)
        return dataclasses.replace(best, metadata=metadata)

    async def _try_backend(
        self,
        backend: DiarizationBackend,
        audio_ref: str,
        config: BackendConfig,
        fallbacks: list[dict[str, Any]],
        cancel_event: asyncio.Event | None,
    ) -> DiarizationResult | None:
        try:
            result = await self.run_backend(backend, audio_ref, config, cancel_event)
        except (BackendError, httpx.HTTPError) as e:
            logger.warning("Backend %s failed: %s", backend.name, e)
            fallbacks.append({"method": backend.name, "error": str(e)})
            return None
        logger.info("Backend %s finished: %d utterances, confidence %.3f",
                    backend.name, len(result.utterances), result.confidence)
        return result

    async def run_backend(
        self,
        backend: DiarizationBackend,
        audio_ref: str,
        config: BackendConfig,
        cancel_event: asyncio.Event | None = None,
    ) -> DiarizationResult:
        """Submit then poll one backend, bounded by BACKEND_MAX_WAIT_SECONDS."""
        try:
            return await asyncio.wait_for(
                self._submit_and_poll(backend, audio_ref, config, cancel_event),
                timeout=self._max_wait,
            )
        except asyncio.TimeoutError as e:
            raise BackendTimeout(backend.name, f"no result after {self._max_wait:.0f}s") from e

    async def _submit_and_poll(
        self,
        backend: DiarizationBackend,
        audio_ref: str,
        config: BackendConfig,
        cancel_event: asyncio.Event | None,
    ) -> DiarizationResult:
        job_id = await self._submit(backend, audio_ref, config, cancel_event)

        while True:
            _check_cancel(cancel_event)
            try:
                poll = await _checked(backend, backend.poll(job_id))
            except httpx.HTTPError as e:
                logger.warning("Poll of %s job %s failed, retrying: %s", backend.name, job_id, e)
                await _sleep_or_cancel(self._poll_interval, cancel_event)
                continue
            if poll.status == JobStatus.COMPLETED:
                return DiarizationResult(
                    utterances=tuple(poll.utterances),
                    confidence=poll.confidence,
                    method=backend.name,
                    duration_ms=poll.duration_ms,
                    metadata={"job_id": job_id},
                )
            if poll.status == JobStatus.ERROR:
                raise BackendError(backend.name, f"job {job_id} failed: {poll.error}")
            logger.debug("%s job %s is %s", backend.name, job_id, poll.status.value)
            await _sleep_or_cancel(self._poll_interval, cancel_event)

    async def _submit(
        self,
        backend: DiarizationBackend,
        audio_ref: str,
        config: BackendConfig,
        cancel_event: asyncio.Event | None,
    ) -> str:
        attempts = self._max_retries + 1
        attempt = 1
        while True:
            _check_cancel(cancel_event)
            try:
                return await _checked(backend, backend.submit(audio_ref, config))
            except (BackendError, httpx.HTTPError) as e:
                if attempt >= attempts:
                    raise
                logger.warning("Submit to %s failed (attempt %d/%d): %s", backend.name, attempt, attempts, e)
                attempt += 1

    async def _run_ensemble(
        self,
        audio_ref: str,
        config: BackendConfig,
        fallbacks: list[dict[str, Any]],
        cancel_event: asyncio.Event | None,
    ) -> DiarizationResult | None:
        tasks = [
            asyncio.ensure_future(self._try_backend(backend, audio_ref, config, fallbacks, cancel_event))
            for backend, _ in self._ensemble
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        members = [
            EnsembleMember(name=backend.name, weight=weight, result=result)
            for (backend, weight), result in zip(self._ensemble, results)
            if result is not None
        ]
        if not members:
            logger.warning("Ensemble produced no results")
            return None
        return combine(members)

    async def _try_refine(
        self,
        refiner: SpeakerRefiner,
        best: DiarizationResult,
        context: str | None,
        fallbacks: list[dict[str, Any]],
    ) -> DiarizationResult | None:
        try:
            reassignments = await refiner.refine(best.utterances, context)
        except RefinementFailed as e:
            logger.warning("AI refinement failed, keeping %s result: %s", best.method, e)
            fallbacks.append({"method": "ai_refinement", "error": str(e)})
            return None
        return apply_reassignments(best, reassignments, self._refinement_bonus)


def create_orchestrator(settings: Settings | None = None) -> DiarizationOrchestrator:
    """Build the orchestrator from configured backend names and ensemble weights."""
    settings = settings or get_settings()
    primary = create_backend(settings.DIARIZATION_PRIMARY_BACKEND, settings)
    secondary = None
    if settings.DIARIZATION_SECONDARY_BACKEND.strip():
        secondary = create_backend(settings.DIARIZATION_SECONDARY_BACKEND, settings)
    weights = settings.ensemble_weights()
    ensemble = [
        (create_backend(name, settings), weights.get(name, 1.0))
        for name in settings.ensemble_backend_names()
    ]
    refiner = SpeakerRefiner(settings) if settings.REFINEMENT_ENABLED else None
    return DiarizationOrchestrator(primary, secondary, ensemble, refiner, settings)
