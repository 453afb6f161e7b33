from .diarize import DiarizationSettings, DiarizeRequest, DiarizeResponse, UtteranceOut, ValidationOut
from .refine import RefineUtteranceInput, SpeakerReassignment

__all__ = [
    "DiarizationSettings",
    "DiarizeRequest",
    "DiarizeResponse",
    "UtteranceOut",
    "ValidationOut",
    "RefineUtteranceInput",
    "SpeakerReassignment",
]
