"""
Tests for LiveSpeakerDetector and live_detect.
"""

import pytest

from speakerid.diarization.live_detector import DetectorState, LiveSpeakerDetector, live_detect
from speakerid.errors import InvalidFrame
from speakerid.voiceprint.models import AudioFrame

from conftest import silent_frame, speaker_a_frame, speaker_b_frame


@pytest.fixture
def detector(settings):
    return LiveSpeakerDetector(settings)


def test_two_speakers_enroll_exactly_two_profiles(detector):
    first_a = detector.process_frame(speaker_a_frame(0))
    assert first_a.speaker == "Speaker 1" and first_a.is_new_speaker
    assert first_a.confidence == pytest.approx(0.8)

    first_b = detector.process_frame(speaker_b_frame(128))
    assert first_b.speaker == "Speaker 2" and first_b.is_new_speaker
    assert len(detector.registry) == 2

    for i, level in enumerate((118, 122, 119, 121)):
        a = detector.process_frame(speaker_a_frame(256 + i * 256, level=level))
        b = detector.process_frame(speaker_b_frame(384 + i * 256, level=level))
        assert (a.speaker, a.is_new_speaker) == ("Speaker 1", False)
        assert (b.speaker, b.is_new_speaker) == ("Speaker 2", False)
        assert 0.3 < a.confidence <= 1.0
    assert len(detector.registry) == 2
    assert detector.registry.profile("Speaker 1").utterance_count == 5


def test_silent_frame_holds_speaker_and_leaves_registry(detector):
    event = detector.process_frame(silent_frame(0))
    assert event.speaker == "Speaker 1"
    assert event.is_new_speaker is False
    assert event.confidence == 0.0
    assert len(detector.registry) == 0

    detector.process_frame(speaker_b_frame(10))
    before = detector.registry.profile("Speaker 1")
    event = detector.process_frame(silent_frame(20))
    assert (event.speaker, event.is_new_speaker) == ("Speaker 1", False)
    after = detector.registry.profile("Speaker 1")
    assert after.utterance_count == before.utterance_count
    assert len(after.history) == len(before.history)


def test_state_transitions(detector):
    assert detector.state == DetectorState.IDLE
    detector.process_frame(speaker_a_frame())
    assert detector.state == DetectorState.LISTENING
    detector.stop()
    assert detector.state == DetectorState.STOPPED
    with pytest.raises(RuntimeError):
        detector.process_frame(speaker_a_frame())


def test_reset_clears_speakers(detector):
    detector.process_frame(speaker_a_frame())
    detector.process_frame(speaker_b_frame())
    detector.stop()
    detector.reset()
    assert detector.state == DetectorState.IDLE
    assert len(detector.registry) == 0
    assert detector.current_speaker is None
    assert detector.process_frame(speaker_b_frame()).speaker == "Speaker 1"


def test_malformed_frame_raises(detector):
    with pytest.raises(InvalidFrame):
        detector.process_frame(AudioFrame(bins=[], sample_rate=16000))


def test_current_speaker_info(detector):
    info = detector.current_speaker_info()
    assert info == {"current_speaker": "Speaker 1", "total_speakers": 0, "speakers": [], "confidence": 0.0}
    detector.process_frame(speaker_a_frame())
    detector.process_frame(speaker_b_frame())
    info = detector.current_speaker_info()
    assert info["current_speaker"] == "Speaker 2"
    assert info["total_speakers"] == 2
    assert info["speakers"] == ["Speaker 1", "Speaker 2"]
    assert info["confidence"] == pytest.approx(0.8)


async def _stream(frames):
    for frame in frames:
        yield frame


@pytest.mark.asyncio
async def test_live_detect_skips_malformed_frames(detector):
    frames = [
        speaker_a_frame(0),
        AudioFrame(bins=[], sample_rate=16000),
        AudioFrame(bins=[300] * 4, sample_rate=16000),
        speaker_b_frame(128),
    ]
    events = [e async for e in live_detect(_stream(frames), detector)]
    assert [e.speaker for e in events] == ["Speaker 1", "Speaker 2"]
    assert [e.timestamp_ms for e in events] == [0, 128]


@pytest.mark.asyncio
async def test_live_detect_stops_with_detector(detector):
    events = []
    async for event in live_detect(_stream([speaker_a_frame(i) for i in range(5)]), detector):
        events.append(event)
        detector.stop()
    assert len(events) == 1
