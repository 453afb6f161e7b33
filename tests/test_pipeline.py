"""
Tests for diarize_and_validate.
"""

import pytest

from speakerid.diarization.orchestrator import DiarizationOrchestrator
from speakerid.diarization.pipeline import diarize_and_validate
from speakerid.errors import BackendUnavailable

from conftest import StubBackend, two_speaker_utterances, utterance


@pytest.mark.asyncio
async def test_low_score_triggers_correction(settings):
    utterances = [
        utterance("A", "Is this correct?", 0, 1000),
        utterance("A", "Yes, absolutely.", 1050, 2000),
    ]
    primary = StubBackend("primary", confidence=0.96, utterances=utterances, settings=settings)
    orchestrator = DiarizationOrchestrator(primary, settings=settings)

    result = await diarize_and_validate("https://example.com/a.wav", orchestrator=orchestrator, app_settings=settings)

    assert [u.speaker_label for u in result.utterances] == ["A", "B"]
    assert result.metadata["correction_count"] == 1
    assert result.metadata["enhanced"] is True
    assert result.metadata["validation_score"] < 0.9
    assert result.metadata["validation_issues"] >= 1
    assert result.confidence == 1.0


@pytest.mark.asyncio
async def test_high_score_skips_correction(settings):
    primary = StubBackend("primary", confidence=0.96, utterances=two_speaker_utterances(), settings=settings)
    orchestrator = DiarizationOrchestrator(primary, settings=settings)

    result = await diarize_and_validate("https://example.com/a.wav", orchestrator=orchestrator, app_settings=settings)

    assert "correction_count" not in result.metadata
    assert result.metadata["validation_score"] >= 0.9
    assert result.metadata["validation_issues"] == 0
    assert result.confidence == pytest.approx(0.96)
    assert result.metadata["fallbacks"] == []


@pytest.mark.asyncio
async def test_unavailable_propagates(settings):
    primary = StubBackend("primary", settings=settings, submit_failures=10)
    orchestrator = DiarizationOrchestrator(primary, settings=settings)
    with pytest.raises(BackendUnavailable):
        await diarize_and_validate("https://example.com/a.wav", orchestrator=orchestrator, app_settings=settings)
