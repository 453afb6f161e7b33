"""
AssemblyAIBackend: async transcription with speaker labels.

POST /v2/transcript {audio_url, speaker_labels, ...} -> {id}
GET  /v2/transcript/{id} -> {status, utterances[{speaker, text, start, end, confidence}], audio_duration}
Utterance times are milliseconds; audio_duration is seconds.
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
    "completed": JobStatus.COMPLETED,
    "error": JobStatus.ERROR,
}


def parse_transcript(data: dict[str, Any]) -> BackendPoll:
    """Convert one GET /v2/transcript/{id} payload to a BackendPoll."""
    status = _STATUS.get(str(data.get("status", "")).lower(), JobStatus.PROCESSING)
    if status == JobStatus.ERROR:
        return BackendPoll(status=status, error=str(data.get("error") or "unknown error"))
    if status != JobStatus.COMPLETED:
        return BackendPoll(status=status)

    label = LabelNormalizer()
    utterances = [
        Utterance(
            speaker_label=label(u.get("speaker", "A")),
            text=(u.get("text") or "").strip(),
            start_ms=float(u.get("start", 0)),
            end_ms=float(u.get("end", 0)),
            confidence=float(u.get("confidence", 0.8)),
        )
        for u in data.get("utterances") or []
    ]
    duration_ms = float(data.get("audio_duration") or 0) * 1000.0
    return BackendPoll(
        status=JobStatus.COMPLETED,
        utterances=utterances,
        confidence=estimate_confidence(utterances),
        duration_ms=duration_ms,
    )


class AssemblyAIBackend(DiarizationBackend):
    name = "assemblyai"

    def _headers(self) -> dict[str, str]:
        key = (self._settings.ASSEMBLYAI_API_KEY or "").strip()
        if not key:
            raise BackendError(self.name, "ASSEMBLYAI_API_KEY is not set")
        return {"Authorization": key, "Content-Type": "application/json"}

    def _url(self, path: str) -> str:
        return self._settings.ASSEMBLYAI_BASE_URL.rstrip("/") + path

    async def submit(self, audio_ref: str, config: BackendConfig) -> str:
        body: dict[str, Any] = {
            "audio_url": audio_ref,
            "speaker_labels": True,
            "speaker_options": {
                "min_speakers_expected": config.min_speakers,
                "max_speakers_expected": config.max_speakers,
            },
            "punctuate": True,
            "format_text": True,
        }
        if config.speakers_expected:
            body["speakers_expected"] = config.speakers_expected
        if config.language:
            body["language_code"] = config.language
        else:
            body["language_detection"] = True

        async with self._client() as client:
            resp = await client.post(self._url("/v2/transcript"), json=body, headers=self._headers())
        data = response_json(resp)
        if resp.status_code >= 400:
            raise BackendError(self.name, f"submit failed ({resp.status_code}): {data.get('error', resp.text)}")
        job_id = data.get("id")
        if not job_id:
            raise BackendError(self.name, "submit response has no transcript id")
        logger.info("AssemblyAI job submitted: %s", job_id)
        return str(job_id)

    async def poll(self, job_id: str) -> BackendPoll:
        async with self._client() as client:
            resp = await client.get(self._url(f"/v2/transcript/{job_id}"), headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        return parse_transcript(data)
