"""Speaker identification: live per-frame speaker detection and batch diarization."""

__version__ = "0.1.0"
