"""
Tests for the remote diarization backends (httpx.MockTransport, no network).
"""

import json

import httpx
import pytest

from speakerid.backends import AssemblyAIBackend, DeepgramBackend, GladiaBackend, create_backend, estimate_confidence
from speakerid.backends.base import BackendConfig, speaker_letter
from speakerid.diarization.models import JobStatus
from speakerid.errors import BackendError

from conftest import make_settings, utterance

AUDIO = "https://example.com/call.mp3"


def test_speaker_letters():
    assert [speaker_letter(i) for i in (0, 1, 25, 26, 27)] == ["A", "B", "Z", "AA", "AB"]


def test_estimate_confidence():
    assert estimate_confidence([]) == 0.5
    items = [utterance("A", "x", 0, 1, 0.8), utterance("B", "y", 1, 2, 0.8)]
    assert estimate_confidence(items) == pytest.approx(0.8 + 0.1 * 1 / 2)
    high = [utterance("A", "x", 0, 1, 1.0), utterance("B", "y", 1, 2, 1.0)]
    assert estimate_confidence(high) == 1.0


def test_create_backend_by_name(settings):
    assert isinstance(create_backend("AssemblyAI", settings), AssemblyAIBackend)
    assert isinstance(create_backend("gladia", settings), GladiaBackend)
    with pytest.raises(ValueError):
        create_backend("nope", settings)


@pytest.mark.asyncio
async def test_assemblyai_submit_and_poll(settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            body = json.loads(request.content)
            assert body["audio_url"] == AUDIO
            assert body["speaker_labels"] is True
            assert body["speakers_expected"] == 2
            return httpx.Response(200, json={"id": "t1", "status": "queued"})
        if len([r for r in seen if r.method == "GET"]) == 1:
            return httpx.Response(200, json={"id": "t1", "status": "processing"})
        return httpx.Response(
            200,
            json={
                "id": "t1",
                "status": "completed",
                "audio_duration": 3.5,
                "utterances": [
                    {"speaker": "B", "text": " Hi there. ", "start": 0, "end": 1200, "confidence": 0.9},
                    {"speaker": "A", "text": "Hello!", "start": 1300, "end": 3400, "confidence": 0.7},
                ],
            },
        )

    backend = AssemblyAIBackend(settings, transport=httpx.MockTransport(handler))
    job_id = await backend.submit(AUDIO, BackendConfig(speakers_expected=2))
    assert job_id == "t1"
    assert (await backend.poll(job_id)).status == JobStatus.PROCESSING
    poll = await backend.poll(job_id)

    assert poll.status == JobStatus.COMPLETED
    assert [u.speaker_label for u in poll.utterances] == ["A", "B"]
    assert poll.utterances[0].text == "Hi there."
    assert (poll.utterances[1].start_ms, poll.utterances[1].end_ms) == (1300, 3400)
    assert poll.duration_ms == 3500
    assert poll.confidence == pytest.approx(estimate_confidence(poll.utterances))
    assert seen[0].headers["authorization"] == "aai-test"
    assert str(seen[1].url) == "https://api.assemblyai.com/v2/transcript/t1"


@pytest.mark.asyncio
async def test_assemblyai_job_error(settings):
    def handler(request):
        return httpx.Response(200, json={"id": "t1", "status": "error", "error": "file does not appear to contain audio"})

    backend = AssemblyAIBackend(settings, transport=httpx.MockTransport(handler))
    poll = await backend.poll("t1")
    assert poll.status == JobStatus.ERROR
    assert "contain audio" in poll.error


@pytest.mark.asyncio
async def test_assemblyai_submit_rejected(settings):
    def handler(request):
        return httpx.Response(401, json={"error": "Invalid API key"})

    backend = AssemblyAIBackend(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(BackendError, match="Invalid API key"):
        await backend.submit(AUDIO, BackendConfig())


@pytest.mark.asyncio
async def test_missing_api_key_is_backend_error():
    backend = GladiaBackend(make_settings(GLADIA_API_KEY=""))
    with pytest.raises(BackendError):
        await backend.submit(AUDIO, BackendConfig())


@pytest.mark.asyncio
async def test_gladia_submit_and_poll(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-gladia-key"] == "gladia-test"
        if request.method == "POST":
            body = json.loads(request.content)
            assert body["diarization"] is True
            assert body["diarization_config"] == {"min_speakers": 1, "max_speakers": 10}
            return httpx.Response(201, json={"id": "g1", "result_url": "https://api.gladia.io/v2/pre-recorded/g1"})
        assert request.url.path == "/v2/pre-recorded/g1"
        return httpx.Response(
            200,
            json={
                "id": "g1",
                "status": "done",
                "result": {
                    "metadata": {"audio_duration": 4.0},
                    "transcription": {
                        "utterances": [
                            {"speaker": 1, "text": "Good morning.", "start": 0.5, "end": 1.75, "confidence": 0.93},
                            {"speaker": 0, "text": "Morning!", "start": 2.0, "end": 2.5, "confidence": 0.88},
                            {"speaker": 1, "text": "Shall we?", "start": 3.0, "end": 4.0, "confidence": 0.9},
                        ]
                    },
                },
            },
        )

    backend = GladiaBackend(settings, transport=httpx.MockTransport(handler))
    job_id = await backend.submit(AUDIO, BackendConfig())
    poll = await backend.poll(job_id)

    assert poll.status == JobStatus.COMPLETED
    assert [u.speaker_label for u in poll.utterances] == ["A", "B", "A"]
    assert (poll.utterances[0].start_ms, poll.utterances[0].end_ms) == (500, 1750)
    assert poll.duration_ms == 4000


@pytest.mark.asyncio
async def test_gladia_queued(settings):
    backend = GladiaBackend(
        settings, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"status": "queued"}))
    )
    poll = await backend.poll("g1")
    assert poll.status == JobStatus.QUEUED
    assert poll.utterances == []


@pytest.mark.asyncio
async def test_deepgram_parks_result_for_single_poll(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/listen"
        assert request.url.params["diarize"] == "true"
        assert request.url.params["utterances"] == "true"
        assert request.headers["authorization"] == "Token dg-test"
        assert json.loads(request.content) == {"url": AUDIO}
        return httpx.Response(
            200,
            json={
                "metadata": {"request_id": "req-1", "duration": 2.0},
                "results": {
                    "utterances": [
                        {"speaker": 0, "transcript": "So, shall we?", "start": 0.0, "end": 1.0, "confidence": 0.95},
                        {"speaker": 1, "transcript": "Yes.", "start": 1.2, "end": 2.0, "confidence": 0.9},
                    ]
                },
            },
        )

    backend = DeepgramBackend(settings, transport=httpx.MockTransport(handler))
    job_id = await backend.submit(AUDIO, BackendConfig(language="en"))
    assert job_id == "req-1"

    poll = await backend.poll(job_id)
    assert poll.status == JobStatus.COMPLETED
    assert [u.text for u in poll.utterances] == ["So, shall we?", "Yes."]
    assert [u.speaker_label for u in poll.utterances] == ["A", "B"]

    again = await backend.poll(job_id)
    assert again.status == JobStatus.ERROR


@pytest.mark.asyncio
async def test_deepgram_error_response(settings):
    backend = DeepgramBackend(
        settings,
        transport=httpx.MockTransport(lambda r: httpx.Response(400, json={"err_msg": "Bad Request: failed to fetch"})),
    )
    with pytest.raises(BackendError, match="failed to fetch"):
        await backend.submit(AUDIO, BackendConfig())
