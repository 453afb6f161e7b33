"""
Shared fixtures: fast settings, synthetic analyser frames, stub diarization backends.
"""
from __future__ import annotations

import pytest

from speakerid.backends.base import BackendConfig, DiarizationBackend
from speakerid.config import Settings
from speakerid.diarization.models import BackendPoll, DiarizationResult, JobStatus, Utterance
from speakerid.errors import BackendError
from speakerid.voiceprint.models import AudioFrame

N_BINS = 1024
SAMPLE_RATE = 16000  # 7.8125 Hz per bin at 1024 bins


def make_settings(**overrides) -> Settings:
    values = dict(
        BACKEND_POLL_INTERVAL_SECONDS=0.01,
        BACKEND_MAX_WAIT_SECONDS=2.0,
        BACKEND_MAX_RETRIES=1,
        ASSEMBLYAI_API_KEY="aai-test",
        GLADIA_API_KEY="gladia-test",
        DEEPGRAM_API_KEY="dg-test",
        CLOUDFLARE_ACCOUNT_ID="acct",
        CLOUDFLARE_API_TOKEN="cf-token",
        REFINEMENT_ENABLED=True,
        LOG_FILE="",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


def speaker_a_frame(timestamp_ms: float = 0.0, level: int = 120) -> AudioFrame:
    """Low voice: peak at bin 15 (~117 Hz), energy in the lower quarter of the spectrum."""
    bins = [level] * 256 + [0] * (N_BINS - 256)
    bins[15] = 250
    return AudioFrame(bins=bins, sample_rate=SAMPLE_RATE, timestamp_ms=timestamp_ms)


def speaker_b_frame(timestamp_ms: float = 0.0, level: int = 120) -> AudioFrame:
    """Higher voice: peak at bin 28 (~219 Hz), energy in the upper three quarters."""
    bins = [0] * 256 + [level] * (N_BINS - 256)
    bins[28] = 250
    return AudioFrame(bins=bins, sample_rate=SAMPLE_RATE, timestamp_ms=timestamp_ms)


def silent_frame(timestamp_ms: float = 0.0) -> AudioFrame:
    return AudioFrame(bins=[0] * N_BINS, sample_rate=SAMPLE_RATE, timestamp_ms=timestamp_ms)


def utterance(label: str, text: str, start_ms: float, end_ms: float, confidence: float = 0.9) -> Utterance:
    return Utterance(speaker_label=label, text=text, start_ms=start_ms, end_ms=end_ms, confidence=confidence)


def two_speaker_utterances(confidence: float = 0.9) -> list[Utterance]:
    return [
        utterance("A", "Hello there, welcome to the show.", 0, 2000, confidence),
        utterance("B", "Thanks for having me, it is great to be here.", 4500, 7000, confidence),
    ]


class StubBackend(DiarizationBackend):
    """
    In-memory backend. Counts submit/poll calls; can fail submits, report job
    errors, or never finish.
    """

    def __init__(
        self,
        name: str,
        confidence: float = 0.9,
        utterances: list[Utterance] | None = None,
        settings: Settings | None = None,
        submit_failures: int = 0,
        job_error: str | None = None,
        never_finishes: bool = False,
        polls_before_done: int = 0,
    ) -> None:
        super().__init__(settings or make_settings())
        self.name = name
        self.confidence = confidence
        self.utterances = utterances if utterances is not None else two_speaker_utterances()
        self.submit_failures = submit_failures
        self.job_error = job_error
        self.never_finishes = never_finishes
        self.polls_before_done = polls_before_done
        self.submit_calls = 0
        self.poll_calls = 0
        self.last_config: BackendConfig | None = None

    async def submit(self, audio_ref: str, config: BackendConfig) -> str:
        self.submit_calls += 1
        self.last_config = config
        if self.submit_calls <= self.submit_failures:
            raise BackendError(self.name, "submit rejected")
        return f"{self.name}-job"

    async def poll(self, job_id: str) -> BackendPoll:
        self.poll_calls += 1
        if self.never_finishes or self.poll_calls <= self.polls_before_done:
            return BackendPoll(status=JobStatus.PROCESSING)
        if self.job_error:
            return BackendPoll(status=JobStatus.ERROR, error=self.job_error)
        return BackendPoll(
            status=JobStatus.COMPLETED,
            utterances=list(self.utterances),
            confidence=self.confidence,
            duration_ms=max((u.end_ms for u in self.utterances), default=0.0),
        )


def result_of(utterances: list[Utterance], confidence: float = 0.9, method: str = "stub") -> DiarizationResult:
    return DiarizationResult(utterances=tuple(utterances), confidence=confidence, method=method)
