"""
FastAPI app: WebSocket endpoint for live speaker detection;
HTTP API: batch diarization with validation and correction.

WebSocket /ws/speakers: client sends binary PCM 16-bit mono 16kHz. Server responds with JSON:
{ "type": "speaker", "speaker": "Speaker 1", "is_new_speaker": bool, "confidence": 0.0-1.0, "timestamp": ms }

POST /api/diarize: { "audio_url": "...", "settings": {...} } -> utterances, speakers, confidence, method.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect

from speakerid.config import get_settings
from speakerid.diarization.orchestrator import DiarizationOrchestrator, create_orchestrator
from speakerid.diarization.pipeline import diarize_and_validate
from speakerid.errors import BackendUnavailable, DiarizationCancelled
from speakerid.logging_setup import configure_logging
from speakerid.schemas.diarize import DiarizeRequest, DiarizeResponse, UtteranceOut, ValidationOut
from speakerid.websocket_manager import LiveSessionManager

logger = logging.getLogger(__name__)

# Non-standard "client closed request" status, as used by nginx.
HTTP_CLIENT_CLOSED_REQUEST = 499


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)
    app.state.orchestrator = create_orchestrator(settings)
    # Set on shutdown so in-flight batch jobs stop polling.
    app.state.shutdown_event = asyncio.Event()
    logger.info(
        "Speaker identification service started (primary=%s, secondary=%s, ensemble=%s)",
        settings.DIARIZATION_PRIMARY_BACKEND,
        settings.DIARIZATION_SECONDARY_BACKEND,
        settings.ensemble_backend_names(),
    )
    yield
    app.state.shutdown_event.set()
    app.state.orchestrator = None


app = FastAPI(
    title="Speaker Identification",
    description="Live speaker detection over WebSocket and batch diarization with validation",
    lifespan=lifespan,
)


def get_orchestrator(request: Request) -> DiarizationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise RuntimeError("App not initialized (lifespan not run?)")
    return orchestrator


def get_cancel_event(request: Request) -> asyncio.Event | None:
    return getattr(request.app.state, "shutdown_event", None)


@app.websocket("/ws/speakers")
async def websocket_speakers(websocket: WebSocket) -> None:
    """
    WebSocket: client sends raw PCM 16-bit mono 16kHz (binary) and optional JSON control text.
    Server sends one JSON speaker event per analyser frame.
    """
    await websocket.accept()
    manager = LiveSessionManager(websocket)
    try:
        await manager.run()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Live session failed")
        try:
            await websocket.close()
        except Exception:
            pass


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.post("/api/diarize", response_model=DiarizeResponse)
async def diarize(
    request: DiarizeRequest,
    orchestrator: DiarizationOrchestrator = Depends(get_orchestrator),
    cancel_event: asyncio.Event | None = Depends(get_cancel_event),
) -> DiarizeResponse:
    """
    Batch diarization: escalate over backends, validate, correct when needed.
    503 (retryable) when every backend failed; 499 when the job was cancelled.
    """
    try:
        result = await diarize_and_validate(
            request.audio_url,
            request.settings,
            orchestrator=orchestrator,
            cancel_event=cancel_event,
        )
    except BackendUnavailable as e:
        raise HTTPException(
            status_code=503,
            detail={"message": str(e), "retryable": True, "fallbacks": e.fallbacks},
        )
    except DiarizationCancelled as e:
        raise HTTPException(status_code=HTTP_CLIENT_CLOSED_REQUEST, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    subscores = result.metadata.get("validation_subscores") or {}
    return DiarizeResponse(
        method=result.method,
        confidence=result.confidence,
        speakers=list(result.speakers),
        utterances=[
            UtteranceOut(
                speaker=u.speaker_label,
                text=u.text,
                start_ms=u.start_ms,
                end_ms=u.end_ms,
                confidence=u.confidence,
            )
            for u in result.utterances
        ],
        duration_ms=result.duration_ms,
        transcript=result.transcript_text(),
        validation=ValidationOut(
            overall_score=result.metadata.get("validation_score", 0.0),
            subscores=subscores,
            issue_count=result.metadata.get("validation_issues", 0),
        ),
        metadata={k: v for k, v in result.metadata.items() if k != "validation_subscores"},
    )
