"""
LiveSessionManager: one WebSocket = one live speaker-detection session.

Client sends binary PCM 16-bit mono (SAMPLE_RATE). Every FFT_SIZE samples
become one analyser frame, and each frame yields a JSON speaker event:
{ "type": "speaker", "speaker": "Speaker 1", "is_new_speaker": bool, "confidence": 0.0-1.0, "timestamp": ms }

Text control messages (JSON): {"type": "info"} | {"type": "reset"} | {"type": "stop"}.
Malformed frames are skipped; the socket is never closed because of one.
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from fastapi import WebSocket

from speakerid.audio import AudioReceiver, SpectrumAnalyzer
from speakerid.config import Settings, get_settings
from speakerid.diarization.live_detector import DetectorState, LiveSpeakerDetector
from speakerid.errors import InvalidFrame

logger = logging.getLogger(__name__)


class LiveSessionManager:
    """Owns the receiver, analyser and detector of one connection; nothing is shared."""

    def __init__(self, websocket: WebSocket, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._ws = websocket
        self._receiver = AudioReceiver(settings=settings)
        self._analyzer = SpectrumAnalyzer(settings)
        self._detector = LiveSpeakerDetector(settings)
        self._session_id = uuid.uuid4().hex[:12]
        self._last_speaker: str | None = None
        self._closed = False

    @property
    def detector(self) -> LiveSpeakerDetector:
        return self._detector

    async def _send(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        try:
            await self._ws.send_text(json.dumps(payload))
        except Exception:
            self._closed = True

    async def _handle_audio(self, data: bytes) -> None:
        self._receiver.feed(data)
        for pcm, start_ms in self._receiver.drain_frames():
            frame = self._analyzer.analyze(pcm, timestamp_ms=start_ms)
            try:
                event = self._detector.process_frame(frame)
            except InvalidFrame as e:
                logger.warning("Session %s: skipping malformed frame: %s", self._session_id, e)
                continue
            if event.is_new_speaker or event.speaker != self._last_speaker:
                logger.info("Session %s: %s at %.0fms (new=%s)",
                            self._session_id, event.speaker, event.timestamp_ms, event.is_new_speaker)
            self._last_speaker = event.speaker
            await self._send(event.to_dict())

    async def _handle_control(self, text: str) -> None:
        try:
            msg = json.loads(text)
        except json.JSONDecodeError:
            await self._send({"type": "error", "detail": "control messages must be JSON"})
            return
        kind = msg.get("type") if isinstance(msg, dict) else None
        if kind == "info":
            await self._send({"type": "info", **self._detector.current_speaker_info()})
        elif kind == "reset":
            self._detector.reset()
            self._analyzer.reset()
            self._last_speaker = None
            await self._send({"type": "reset"})
        elif kind == "stop":
            self._detector.stop()
            await self._send({"type": "stopped", **self._detector.current_speaker_info()})
        else:
            await self._send({"type": "error", "detail": f"unknown control message {kind!r}"})

    async def run(self) -> None:
        """Main loop: receive binary audio or JSON control until disconnect or stop."""
        await self._send({"type": "session", "session_id": self._session_id})
        try:
            while not self._closed and self._detector.state != DetectorState.STOPPED:
                msg = await self._ws.receive()
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if data is not None:
                    await self._handle_audio(data)
                    continue
                text = msg.get("text")
                if text is not None:
                    await self._handle_control(text)
        finally:
            self._closed = True
            logger.info("Session %s closed: %s", self._session_id, self._detector.current_speaker_info())
