"""
DiarizationBackend: abstract interface for remote speaker-diarization providers.

Implementations: AssemblyAIBackend, GladiaBackend, DeepgramBackend.
Every provider is driven the same way: submit() once, then poll() until the
job is completed or errored. Synchronous providers park their answer at submit
time and hand it out on the first poll.

All implementations use httpx.AsyncClient with an explicit timeout and
normalize provider speaker ids to letters ("A", "B", ...) in order of first
appearance.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable

import httpx

from speakerid.config import Settings, get_settings
from speakerid.diarization.models import BackendPoll, Utterance


@dataclass
class BackendConfig:
    """Per-job diarization options, translated by each backend into its own request fields."""

    min_speakers: int = 1
    max_speakers: int = 10
    speakers_expected: int | None = None
    switch_sensitivity: float = 0.95  # 0..1, higher = switch speakers more readily
    language: str | None = None


def speaker_letter(index: int) -> str:
    """Stable label for speaker index: A, B, ..., Z, AA, AB, ..."""
    label = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        label = chr(65 + rem) + label
    return label


class LabelNormalizer:
    """Maps provider speaker ids (ints, "SPEAKER_00", "A", ...) to letters by first appearance."""

    def __init__(self) -> None:
        self._seen: dict[str, str] = {}

    def __call__(self, raw: Any) -> str:
        key = str(raw)
        if key not in self._seen:
            self._seen[key] = speaker_letter(len(self._seen))
        return self._seen[key]


def estimate_confidence(utterances: Iterable[Utterance]) -> float:
    """
    Mean utterance confidence plus a small bonus for speaker switching
    (0.1 x switches per utterance), capped at 1.0. Empty input gives 0.5.
    """
    items = list(utterances)
    if not items:
        return 0.5
    total = sum(u.confidence for u in items)
    switches = sum(1 for prev, cur in zip(items, items[1:]) if cur.speaker_label != prev.speaker_label)
    return min(1.0, total / len(items) + 0.1 * switches / len(items))


class DiarizationBackend(ABC):
    """
    Abstract diarization provider. Instances may hold an httpx client factory
    but no per-job state, except where a synchronous provider parks a result.
    """

    name: str = "backend"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._timeout = self._settings.BACKEND_HTTP_TIMEOUT_SECONDS
        # Injected in tests (httpx.MockTransport); None uses the real network.
        self._transport = transport

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, **kwargs)

    @abstractmethod
    async def submit(self, audio_ref: str, config: BackendConfig) -> str:
        """
        Start a diarization job for the audio at audio_ref (URL). Returns the job id.
        Raises BackendError when the provider rejects the request.
        """
        ...

    @abstractmethod
    async def poll(self, job_id: str) -> BackendPoll:
        """Current state of a job. Utterances are set once status is COMPLETED."""
        ...


def response_json(resp: httpx.Response) -> dict[str, Any]:
    """Parsed JSON body, or {} when the body is empty or not JSON (e.g. a proxy error page)."""
    if not resp.content:
        return {}
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"result": data}
