"""Audio capture: receive PCM frames and turn them into analyser spectra."""
from .receiver import AudioReceiver
from .spectrum import SpectrumAnalyzer, pcm_bytes_to_float32

__all__ = [
    "AudioReceiver",
    "SpectrumAnalyzer",
    "pcm_bytes_to_float32",
]
