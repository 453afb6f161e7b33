"""
Tests for VoiceprintExtractor and SpeakerRegistry.
"""

import math

import pytest

from speakerid.errors import InvalidFrame
from speakerid.voiceprint import AudioFrame, SpeakerRegistry, VoiceprintExtractor, Voiceprint

from conftest import SAMPLE_RATE, make_settings, silent_frame, speaker_a_frame, speaker_b_frame


@pytest.fixture
def extractor():
    return VoiceprintExtractor()


@pytest.fixture
def registry(settings):
    return SpeakerRegistry(settings)


def vp(pitch=120.0, centroid=1000.0, timbre=(100.0,) * 8, ts=0.0) -> Voiceprint:
    return Voiceprint(
        energy=-20.0,
        pitch=pitch,
        spectral_centroid=centroid,
        spectral_rolloff=2000.0,
        timbre=tuple(timbre),
        timestamp_ms=ts,
    )


# --- extractor ---


def test_extract_is_deterministic(extractor):
    frame = speaker_a_frame(timestamp_ms=40.0)
    assert extractor.extract(frame) == extractor.extract(frame)


def test_extract_speaker_a_features(extractor):
    v = extractor.extract(speaker_a_frame(timestamp_ms=40.0))
    bin_hz = (SAMPLE_RATE / 2) / 1024
    assert v.pitch == pytest.approx(15 * bin_hz)
    assert -50.0 < v.energy < 0.0
    assert len(v.timbre) == 8
    assert v.timbre[0] > 100 and v.timbre[7] == 0.0
    assert 0 < v.spectral_centroid < 256 * bin_hz
    assert v.spectral_rolloff <= 256 * bin_hz
    assert v.timestamp_ms == 40.0


def test_extract_speaker_b_pitch(extractor):
    v = extractor.extract(speaker_b_frame())
    assert v.pitch == pytest.approx(28 * (SAMPLE_RATE / 2) / 1024)


def test_silent_frame_is_minimum_energy(extractor):
    v = extractor.extract(silent_frame())
    assert v.energy == -100.0
    assert v.pitch == 0.0
    assert v.spectral_centroid == 0.0
    assert v.spectral_rolloff == 0.0
    assert v.timbre == (0.0,) * 8


def test_full_scale_frame_energy_is_zero(extractor):
    v = extractor.extract(AudioFrame(bins=[255] * 64, sample_rate=SAMPLE_RATE))
    assert v.energy == pytest.approx(0.0)


def test_small_frame_searches_all_bins_for_pitch(extractor):
    bins = [0] * 16
    bins[3] = 200
    v = extractor.extract(AudioFrame(bins=bins, sample_rate=1600))
    assert v.pitch == pytest.approx(3 * 800 / 16)


@pytest.mark.parametrize(
    "frame",
    [
        AudioFrame(bins=[], sample_rate=SAMPLE_RATE),
        AudioFrame(bins=[[1, 2], [3, 4]], sample_rate=SAMPLE_RATE),
        AudioFrame(bins=[1, 256, 3], sample_rate=SAMPLE_RATE),
        AudioFrame(bins=[1, -1, 3], sample_rate=SAMPLE_RATE),
        AudioFrame(bins=[1, float("nan"), 3], sample_rate=SAMPLE_RATE),
        AudioFrame(bins=[1, 2, 3], sample_rate=0),
        AudioFrame(bins=["a", "b"], sample_rate=SAMPLE_RATE),
    ],
)
def test_malformed_frames_raise_invalid_frame(extractor, frame):
    with pytest.raises(InvalidFrame):
        extractor.extract(frame)


def test_energy_bounds_over_levels(extractor):
    for level in (0, 1, 10, 100, 255):
        v = extractor.extract(AudioFrame(bins=[level] * 128, sample_rate=SAMPLE_RATE))
        assert -100.0 <= v.energy <= 0.0


# --- registry ---


def test_similarity_identical_is_one(registry):
    assert registry.similarity(vp(), vp()) == pytest.approx(1.0)


def test_similarity_is_bounded_and_symmetric(registry):
    a = vp(pitch=80, centroid=500, timbre=(10,) * 8)
    b = vp(pitch=400, centroid=6000, timbre=(250,) * 8)
    s = registry.similarity(a, b)
    assert 0.0 <= s <= 1.0
    assert s == pytest.approx(registry.similarity(b, a))


def test_similarity_weights(registry):
    # Only pitch differs by one scale (100 Hz): 0.4 * e^-1 + 0.3 + 0.3
    s = registry.similarity(vp(pitch=100), vp(pitch=200))
    assert s == pytest.approx(0.4 * math.exp(-1) + 0.6)


def test_match_empty_registry(registry):
    assert registry.match(vp()) is None


def test_enroll_labels_and_match(registry):
    assert registry.enroll(vp(ts=10.0)) == "Speaker 1"
    assert registry.enroll(vp(pitch=400, centroid=6000, timbre=(250,) * 8)) == "Speaker 2"
    label, confidence = registry.match(vp(pitch=125))
    assert label == "Speaker 1"
    assert 0.3 < confidence <= 1.0
    profile = registry.profile("Speaker 1")
    assert profile.first_seen_ms == 10.0 and profile.last_seen_ms == 10.0
    assert registry.labels() == ["Speaker 1", "Speaker 2"]
    assert len(registry) == 2


def test_match_requires_strictly_above_threshold():
    registry = SpeakerRegistry(make_settings(LIVE_SPEAKER_CHANGE_THRESHOLD=1.0))
    registry.enroll(vp())
    # Identical voiceprint gives similarity 1.0, which is not > 1.0
    assert registry.match(vp()) is None


def test_update_running_average(registry):
    label = registry.enroll(vp(pitch=100.0, ts=0.0))
    registry.update(label, vp(pitch=200.0, ts=50.0))
    profile = registry.profile(label)
    assert profile.average_voiceprint.pitch == pytest.approx(110.0)
    assert profile.utterance_count == 2
    assert profile.last_seen_ms == 50.0
    assert len(profile.history) == 2


def test_update_unknown_label_raises(registry):
    with pytest.raises(KeyError):
        registry.update("Speaker 9", vp())


def test_history_is_bounded(registry):
    label = registry.enroll(vp())
    for i in range(100):
        registry.update(label, vp(ts=float(i)))
    profile = registry.profile(label)
    assert len(profile.history) <= 20
    assert profile.history[-1].timestamp_ms == 99.0
    assert profile.utterance_count == 101


def test_profile_is_a_copy(registry):
    label = registry.enroll(vp())
    copy = registry.profile(label)
    copy.utterance_count = 999
    copy.history.clear()
    assert registry.profile(label).utterance_count == 1
    assert len(registry.profile(label).history) == 1


def test_clear(registry):
    registry.enroll(vp())
    registry.clear()
    assert len(registry) == 0
    assert registry.enroll(vp()) == "Speaker 1"
