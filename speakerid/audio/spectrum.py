"""
SpectrumAnalyzer: PCM sample frames -> byte frequency magnitudes (AudioFrame).

Follows the browser AnalyserNode recipe so server-side frames look like the ones
a web client would compute:
- Blackman window over FFT_SIZE samples
- magnitude spectrum scaled by 1/FFT_SIZE, first FFT_SIZE/2 bins
- temporal smoothing with the previous spectrum (SPECTRUM_SMOOTHING)
- dB mapped linearly from [SPECTRUM_MIN_DB, SPECTRUM_MAX_DB] to 0..255

Only the previous smoothed spectrum is kept between frames.
"""
from __future__ import annotations

import numpy as np

from speakerid.config import Settings, get_settings
from speakerid.voiceprint.models import AudioFrame


def pcm_bytes_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """Convert PCM 16-bit mono bytes to float32 [-1.0, 1.0]."""
    samples = np.frombuffer(pcm_bytes, dtype=np.int16)
    return samples.astype(np.float32) / 32768.0


class SpectrumAnalyzer:
    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._fft_size = settings.FFT_SIZE
        self._sample_rate = settings.SAMPLE_RATE
        self._smoothing = settings.SPECTRUM_SMOOTHING
        self._min_db = settings.SPECTRUM_MIN_DB
        self._max_db = settings.SPECTRUM_MAX_DB
        self._window = np.blackman(self._fft_size)
        self._previous: np.ndarray | None = None

    @property
    def bin_count(self) -> int:
        return self._fft_size // 2

    def analyze(self, pcm_bytes: bytes, timestamp_ms: float = 0.0) -> AudioFrame:
        """
        One frame of PCM (FFT_SIZE samples; shorter input is zero-padded) to an AudioFrame.
        """
        samples = pcm_bytes_to_float32(pcm_bytes)[: self._fft_size]
        if samples.size < self._fft_size:
            samples = np.pad(samples, (0, self._fft_size - samples.size))
        spectrum = np.abs(np.fft.rfft(samples * self._window))[: self.bin_count] / self._fft_size

        if self._previous is not None and self._smoothing > 0:
            spectrum = self._smoothing * self._previous + (1.0 - self._smoothing) * spectrum
        self._previous = spectrum

        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(spectrum)
        scaled = (db - self._min_db) * (255.0 / (self._max_db - self._min_db))
        bins = np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)
        return AudioFrame(bins=bins.tolist(), sample_rate=self._sample_rate, timestamp_ms=timestamp_ms)

    def reset(self) -> None:
        self._previous = None
