"""Voiceprints: per-frame spectral fingerprints and the per-session speaker registry."""
from .models import AudioFrame, SpeakerProfile, Voiceprint
from .extractor import VoiceprintExtractor, extract_voiceprint
from .registry import SpeakerRegistry

__all__ = [
    "AudioFrame",
    "SpeakerProfile",
    "Voiceprint",
    "VoiceprintExtractor",
    "extract_voiceprint",
    "SpeakerRegistry",
]
