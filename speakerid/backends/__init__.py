"""Diarization backends: swappable remote providers behind submit/poll."""
from __future__ import annotations

from speakerid.config import Settings, get_settings

from .base import BackendConfig, DiarizationBackend, estimate_confidence
from .assemblyai import AssemblyAIBackend
from .gladia import GladiaBackend
from .deepgram import DeepgramBackend

BACKENDS: dict[str, type[DiarizationBackend]] = {
    AssemblyAIBackend.name: AssemblyAIBackend,
    GladiaBackend.name: GladiaBackend,
    DeepgramBackend.name: DeepgramBackend,
}


def create_backend(name: str, settings: Settings | None = None) -> DiarizationBackend:
    """Return a backend by config name ("assemblyai", "gladia", "deepgram")."""
    key = (name or "").strip().lower()
    try:
        cls = BACKENDS[key]
    except KeyError:
        raise ValueError(f"Unknown diarization backend {name!r}; expected one of {sorted(BACKENDS)}") from None
    return cls(settings or get_settings())


__all__ = [
    "BACKENDS",
    "BackendConfig",
    "DiarizationBackend",
    "estimate_confidence",
    "AssemblyAIBackend",
    "GladiaBackend",
    "DeepgramBackend",
    "create_backend",
]
