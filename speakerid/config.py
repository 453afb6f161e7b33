"""Application configuration. Loads from env vars."""
from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz
    SAMPLE_RATE: int = 16000
    SAMPLE_WIDTH: int = 2  # 16-bit

    # Spectrum analyser (browser AnalyserNode equivalent): FFT_SIZE samples per frame -> FFT_SIZE/2 bins
    FFT_SIZE: int = 2048
    SPECTRUM_SMOOTHING: float = 0.3  # weight of the previous frame's spectrum (0 = none)
    SPECTRUM_MIN_DB: float = -100.0  # maps to byte 0
    SPECTRUM_MAX_DB: float = -30.0  # maps to byte 255

    # Live speaker detection
    LIVE_SPEAKER_CHANGE_THRESHOLD: float = 0.3  # min similarity to match a known speaker
    LIVE_SILENCE_THRESHOLD_DB: float = -50.0  # frames quieter than this hold the last speaker
    LIVE_LEARNING_RATE: float = 0.1  # running-average alpha for profile updates
    LIVE_HISTORY_SIZE: int = 20  # voiceprints kept per profile
    LIVE_ENROLLMENT_CONFIDENCE: float = 0.8
    LIVE_DEFAULT_SPEAKER: str = "Speaker 1"  # implicit speaker before anyone is enrolled

    # Voiceprint similarity: weights and exp(-|diff|/scale) scales
    SIMILARITY_PITCH_WEIGHT: float = 0.4
    SIMILARITY_CENTROID_WEIGHT: float = 0.3
    SIMILARITY_TIMBRE_WEIGHT: float = 0.3
    SIMILARITY_PITCH_SCALE_HZ: float = 100.0
    SIMILARITY_CENTROID_SCALE_HZ: float = 1000.0
    SIMILARITY_TIMBRE_SCALE: float = 50.0

    # Batch diarization backends: "assemblyai" | "gladia" | "deepgram"
    DIARIZATION_PRIMARY_BACKEND: str = "assemblyai"
    DIARIZATION_SECONDARY_BACKEND: str = "gladia"
    # Comma-separated; queried in parallel for the ensemble step. Empty = skip ensemble.
    DIARIZATION_ENSEMBLE_BACKENDS: str = "deepgram"
    # Comma-separated name:weight pairs, e.g. "deepgram:0.25". Missing names weigh 1.0.
    DIARIZATION_ENSEMBLE_WEIGHTS: str = ""

    # Confidence targets for the stop-early escalation chain
    PRIMARY_CONFIDENCE_TARGET: float = 0.95
    SECONDARY_CONFIDENCE_TARGET: float = 0.98
    ENSEMBLE_CONFIDENCE_TARGET: float = 0.99

    # Backend job handling: poll every N seconds up to a hard ceiling (30 min)
    BACKEND_POLL_INTERVAL_SECONDS: float = 5.0
    BACKEND_MAX_WAIT_SECONDS: float = 1800.0
    BACKEND_HTTP_TIMEOUT_SECONDS: float = 30.0
    BACKEND_MAX_RETRIES: int = 1  # extra submit attempts per backend

    ASSEMBLYAI_API_KEY: str = ""
    ASSEMBLYAI_BASE_URL: str = "https://api.assemblyai.com"
    GLADIA_API_KEY: str = ""
    GLADIA_BASE_URL: str = "https://api.gladia.io"
    DEEPGRAM_API_KEY: str = ""
    DEEPGRAM_BASE_URL: str = "https://api.deepgram.com"

    # AI speaker refinement: Cloudflare Workers AI (same account as the rest of the stack)
    REFINEMENT_ENABLED: bool = True
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    REFINE_CF_MODEL: str = "@cf/meta/llama-3.1-8b-instruct"  # Workers AI text generation
    REFINE_MAX_TOKENS: int = 2048
    REFINE_TIMEOUT_SECONDS: float = 60.0
    REFINEMENT_CONFIDENCE_BONUS: float = 0.1

    # Validation and correction
    VALIDATION_THRESHOLD: float = 0.9  # below this the correction engine runs
    RAPID_SWITCH_GAP_SECONDS: float = 0.1
    QUESTIONABLE_SWITCH_GAP_SECONDS: float = 2.0
    MERGE_MAX_CHARS: int = 10  # rapid switches shorter than this are merged back
    CORRECTION_CONFIDENCE_BONUS: float = 0.1

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path empty = console only.
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # e.g. "logs/speakerid.log"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @model_validator(mode="after")
    def check_ranges(self) -> "Settings":
        for name in (
            "LIVE_SPEAKER_CHANGE_THRESHOLD",
            "LIVE_LEARNING_RATE",
            "LIVE_ENROLLMENT_CONFIDENCE",
            "SPECTRUM_SMOOTHING",
            "PRIMARY_CONFIDENCE_TARGET",
            "SECONDARY_CONFIDENCE_TARGET",
            "ENSEMBLE_CONFIDENCE_TARGET",
            "REFINEMENT_CONFIDENCE_BONUS",
            "VALIDATION_THRESHOLD",
            "CORRECTION_CONFIDENCE_BONUS",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

        weights = (
            self.SIMILARITY_PITCH_WEIGHT,
            self.SIMILARITY_CENTROID_WEIGHT,
            self.SIMILARITY_TIMBRE_WEIGHT,
        )
        if any(w < 0 for w in weights) or sum(weights) <= 0:
            raise ValueError("similarity weights must be >= 0 with a positive sum")

        for name in (
            "SIMILARITY_PITCH_SCALE_HZ",
            "SIMILARITY_CENTROID_SCALE_HZ",
            "SIMILARITY_TIMBRE_SCALE",
            "BACKEND_POLL_INTERVAL_SECONDS",
            "BACKEND_MAX_WAIT_SECONDS",
            "BACKEND_HTTP_TIMEOUT_SECONDS",
            "REFINE_TIMEOUT_SECONDS",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.LIVE_HISTORY_SIZE < 1:
            raise ValueError("LIVE_HISTORY_SIZE must be >= 1")
        if self.BACKEND_MAX_RETRIES < 0:
            raise ValueError("BACKEND_MAX_RETRIES must be >= 0")
        if self.FFT_SIZE < 32 or self.FFT_SIZE & (self.FFT_SIZE - 1):
            raise ValueError("FFT_SIZE must be a power of two >= 32")
        if self.SPECTRUM_MIN_DB >= self.SPECTRUM_MAX_DB:
            raise ValueError("SPECTRUM_MIN_DB must be below SPECTRUM_MAX_DB")
        # Parse once so a malformed weight string fails at startup, not mid-job.
        self.ensemble_weights()
        return self

    @property
    def FRAME_BYTES(self) -> int:
        """PCM bytes per analyser frame (FFT_SIZE samples)."""
        return self.FFT_SIZE * self.SAMPLE_WIDTH

    def ensemble_backend_names(self) -> list[str]:
        return [n.strip().lower() for n in self.DIARIZATION_ENSEMBLE_BACKENDS.split(",") if n.strip()]

    def ensemble_weights(self) -> dict[str, float]:
        """Parse DIARIZATION_ENSEMBLE_WEIGHTS ("name:weight,...") into a dict."""
        weights: dict[str, float] = {}
        for item in self.DIARIZATION_ENSEMBLE_WEIGHTS.split(","):
            item = item.strip()
            if not item:
                continue
            name, sep, raw = item.partition(":")
            if not sep:
                raise ValueError(f"ensemble weight {item!r} must look like name:weight")
            weight = float(raw)
            if weight < 0:
                raise ValueError(f"ensemble weight for {name!r} must be >= 0")
            weights[name.strip().lower()] = weight
        return weights


def get_settings() -> Settings:
    return Settings()
