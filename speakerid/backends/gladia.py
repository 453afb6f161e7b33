"""
GladiaBackend: pre-recorded transcription with diarization.

POST /v2/pre-recorded {audio_url, diarization, diarization_config} -> {id, result_url}
GET  /v2/pre-recorded/{id} -> {status: queued|processing|done|error,
    result: {metadata: {audio_duration}, transcription: {utterances[{speaker, text, start, end, confidence}]}}}
Times are seconds; speakers are integers.
"""
from __future__ import annotations

import logging
from typing import Any

from speakerid.backends.base import (
    BackendConfig,
    DiarizationBackend,
    LabelNormalizer,
    estimate_confidence,
    response_json,
)
from speakerid.diarization.models import BackendPoll, JobStatus, Utterance
from speakerid.errors import BackendError

logger = logging.getLogger(__name__)

_STATUS = {
    "queued": JobStatus.QUEUED,
    "processing": JobStatus.PROCESSING,
    "done": JobStatus.COMPLETED,
    "error": JobStatus.ERROR,
}


def parse_job(data: dict[str, Any]) -> BackendPoll:
    """Convert one GET /v2/pre-recorded/{id} payload to a BackendPoll."""
    status = _STATUS.get(str(data.get("status", "")).lower(), JobStatus.PROCESSING)
    if status == JobStatus.ERROR:
        return BackendPoll(status=status, error=str(data.get("error_code") or data.get("error") or "unknown error"))
    if status != JobStatus.COMPLETED:
        return BackendPoll(status=status)

    result = data.get("result") or {}
    transcription = result.get("transcription") or {}
    label = LabelNormalizer()
    utterances = [
        Utterance(
            speaker_label=label(u.get("speaker", 0)),
            text=(u.get("text") or "").strip(),
            start_ms=float(u.get("start", 0)) * 1000.0,
            end_ms=float(u.get("end", 0)) * 1000.0,
            confidence=float(u.get("confidence", 0.8)),
        )
        for u in transcription.get("utterances") or []
    ]
    duration_ms = float((result.get("metadata") or {}).get("audio_duration") or 0) * 1000.0
    return BackendPoll(
        status=JobStatus.COMPLETED,
        utterances=utterances,
        confidence=estimate_confidence(utterances),
        duration_ms=duration_ms,
    )


class GladiaBackend(DiarizationBackend):
    name = "gladia"

    def _headers(self) -> dict[str, str]:
        key = (self._settings.GLADIA_API_KEY or "").strip()
        if not key:
            raise BackendError(self.name, "GLADIA_API_KEY is not set")
        return {"x-gladia-key": key, "Content-Type": "application/json"}

    def _url(self, path: str) -> str:
        return self._settings.GLADIA_BASE_URL.rstrip("/") + path

    async def submit(self, audio_ref: str, config: BackendConfig) -> str:
        diarization_config: dict[str, Any] = {
            "min_speakers": config.min_speakers,
            "max_speakers": config.max_speakers,
        }
        if config.speakers_expected:
            diarization_config["number_of_speakers"] = config.speakers_expected
        body: dict[str, Any] = {
            "audio_url": audio_ref,
            "diarization": True,
            "diarization_config": diarization_config,
        }
        if config.language:
            body["language_config"] = {"languages": [config.language]}

        async with self._client() as client:
            resp = await client.post(self._url("/v2/pre-recorded"), json=body, headers=self._headers())
        data = response_json(resp)
        if resp.status_code >= 400:
            raise BackendError(self.name, f"submit failed ({resp.status_code}): {data.get('message', resp.text)}")
        job_id = data.get("id")
        if not job_id:
            raise BackendError(self.name, "submit response has no job id")
        logger.info("Gladia job submitted: %s", job_id)
        return str(job_id)

    async def poll(self, job_id: str) -> BackendPoll:
        async with self._client() as client:
            resp = await client.get(self._url(f"/v2/pre-recorded/{job_id}"), headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        return parse_job(data)
