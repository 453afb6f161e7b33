"""
DeepgramBackend: synchronous pre-recorded transcription behind the submit/poll contract.

POST /v1/listen?diarize=true&utterances=true {url} -> full result in one response:
{metadata: {request_id, duration}, results: {utterances[{speaker, transcript, start, end, confidence}]}}

submit() performs the request and parks the parsed result under the request id;
the first poll() for that id hands it out and forgets it.
"""
from __future__ import annotations

import logging
import uuid
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


def parse_listen(data: dict[str, Any]) -> BackendPoll:
    """Convert a /v1/listen response to a completed BackendPoll."""
    results = data.get("results") or {}
    label = LabelNormalizer()
    utterances = [
        Utterance(
            speaker_label=label(u.get("speaker", 0)),
            text=(u.get("transcript") or "").strip(),
            start_ms=float(u.get("start", 0)) * 1000.0,
            end_ms=float(u.get("end", 0)) * 1000.0,
            confidence=float(u.get("confidence", 0.8)),
        )
        for u in results.get("utterances") or []
    ]
    duration_ms = float((data.get("metadata") or {}).get("duration") or 0) * 1000.0
    return BackendPoll(
        status=JobStatus.COMPLETED,
        utterances=utterances,
        confidence=estimate_confidence(utterances),
        duration_ms=duration_ms,
    )


class DeepgramBackend(DiarizationBackend):
    name = "deepgram"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._parked: dict[str, BackendPoll] = {}

    def _headers(self) -> dict[str, str]:
        key = (self._settings.DEEPGRAM_API_KEY or "").strip()
        if not key:
            raise BackendError(self.name, "DEEPGRAM_API_KEY is not set")
        return {"Authorization": f"Token {key}", "Content-Type": "application/json"}

    async def submit(self, audio_ref: str, config: BackendConfig) -> str:
        params: dict[str, Any] = {"diarize": "true", "utterances": "true", "punctuate": "true"}
        if config.language:
            params["language"] = config.language
        else:
            params["detect_language"] = "true"

        url = self._settings.DEEPGRAM_BASE_URL.rstrip("/") + "/v1/listen"
        async with self._client() as client:
            resp = await client.post(url, params=params, json={"url": audio_ref}, headers=self._headers())
        data = response_json(resp)
        if resp.status_code >= 400:
            raise BackendError(
                self.name, f"listen failed ({resp.status_code}): {data.get('err_msg', resp.text)}"
            )
        job_id = str((data.get("metadata") or {}).get("request_id") or uuid.uuid4().hex)
        self._parked[job_id] = parse_listen(data)
        logger.info("Deepgram request completed: %s", job_id)
        return job_id

    async def poll(self, job_id: str) -> BackendPoll:
        parked = self._parked.pop(job_id, None)
        if parked is None:
            return BackendPoll(status=JobStatus.ERROR, error=f"unknown or already collected request {job_id}")
        return parked
