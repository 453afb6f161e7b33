"""
AudioReceiver: accepts raw PCM audio from WebSocket and yields frames.

- Expects PCM 16-bit mono (SAMPLE_RATE, default 16kHz).
- Emits fixed-size frames of FFT_SIZE samples for the spectrum analyser.
- Tracks session time so each frame gets a capture timestamp.
"""
from __future__ import annotations

from speakerid.config import Settings, get_settings


class AudioReceiver:
    """
    Buffers incoming binary WebSocket messages into fixed-size PCM frames.
    Any remainder is kept for the next message.
    """

    def __init__(self, frame_bytes: int | None = None, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._frame_bytes = frame_bytes or settings.FRAME_BYTES
        self._bytes_per_ms = settings.SAMPLE_RATE * settings.SAMPLE_WIDTH / 1000.0
        self._buffer = bytearray()
        self._consumed = 0  # bytes already emitted as frames

    def feed(self, data: bytes) -> None:
        """Append raw PCM bytes. Call from WebSocket handler."""
        self._buffer.extend(data)

    def drain_frames(self) -> list[tuple[bytes, float]]:
        """
        Drain all complete frames from the buffer as (pcm, start_ms) pairs.
        Remainder stays in buffer.
        """
        out: list[tuple[bytes, float]] = []
        while len(self._buffer) >= self._frame_bytes:
            start_ms = self._consumed / self._bytes_per_ms
            out.append((bytes(self._buffer[: self._frame_bytes]), start_ms))
            del self._buffer[: self._frame_bytes]
            self._consumed += self._frame_bytes
        return out

    def remaining_bytes(self) -> int:
        """Bytes left in buffer (incomplete frame)."""
        return len(self._buffer)
