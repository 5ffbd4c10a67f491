"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object shared by server and device

Non-responsibilities:
- No protocol constants (see spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from spec import (
    AUDIO_SAMPLE_RATE_HZ,
    AUDIO_SAMPLE_WIDTH_BYTES,
    DELIVERY_BURST_FRACTION,
    DELIVERY_CHUNK_BYTES,
    DELIVERY_WAIT_FOR_READY,
    DEVICE_SERVER_URL_DEFAULT,
    LLM_MODEL_DEFAULT,
    PLAYBACK_GAIN,
    PLAYBACK_START_FILL_FRACTION,
    READY_HANDSHAKE_TIMEOUT_S,
    RING_BUFFER_CAPACITY_BYTES,
    TRANSCRIPTION_MODEL_DEFAULT,
    TTS_MODEL_DEFAULT,
    TTS_PCM_SAMPLE_RATE_HZ,
    TTS_RESPONSE_FORMAT_DEFAULT,
    TTS_VOICE_DEFAULT,
    VAD_AMPLITUDE_THRESHOLD,
    VAD_MAX_RECORD_MS,
    VAD_SILENCE_MS,
    VAD_TIMEOUT_MS,
    WAV_HEADER_BYTES,
    bytes_to_ms,
    ms_to_bytes,
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional(name: str) -> str | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    return raw


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the gateway, the delivery scheduler and the device client.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool = True

    # ------------------------------------------------------------------
    # Collaborators (OpenAI)
    # ------------------------------------------------------------------

    openai_api_key: str | None = None
    transcription_model: str = TRANSCRIPTION_MODEL_DEFAULT
    llm_model: str = LLM_MODEL_DEFAULT
    tts_model: str = TTS_MODEL_DEFAULT
    tts_voice: str = TTS_VOICE_DEFAULT
    tts_response_format: str = TTS_RESPONSE_FORMAT_DEFAULT

    # ------------------------------------------------------------------
    # Audio / delivery (server side)
    # ------------------------------------------------------------------

    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ
    chunk_bytes: int = DELIVERY_CHUNK_BYTES
    burst_fraction: float = DELIVERY_BURST_FRACTION
    wait_for_ready: bool = DELIVERY_WAIT_FOR_READY
    handshake_timeout_s: float = READY_HANDSHAKE_TIMEOUT_S
    archive_dir: str | None = None

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------

    ring_capacity_bytes: int = RING_BUFFER_CAPACITY_BYTES
    start_fill_fraction: float = PLAYBACK_START_FILL_FRACTION
    playback_gain: float = PLAYBACK_GAIN
    vad_amplitude_threshold: float = VAD_AMPLITUDE_THRESHOLD
    vad_silence_ms: int = VAD_SILENCE_MS
    vad_timeout_ms: int = VAD_TIMEOUT_MS
    vad_max_record_ms: int = VAD_MAX_RECORD_MS
    device_server_url: str = DEVICE_SERVER_URL_DEFAULT
    device_recording_dir: str | None = None

    def __post_init__(self) -> None:
        if self.sample_rate_hz <= 0:
            raise ValueError("sample_rate_hz must be > 0")
        if self.chunk_bytes <= 0 or self.chunk_bytes % AUDIO_SAMPLE_WIDTH_BYTES:
            raise ValueError("chunk_bytes must be a positive whole number of samples")
        if not 0.0 < self.burst_fraction <= 1.0:
            raise ValueError("burst_fraction must be in (0, 1]")
        if self.handshake_timeout_s < 0:
            raise ValueError("handshake_timeout_s must be >= 0")
        if self.ring_capacity_bytes < self.chunk_bytes:
            raise ValueError("ring_capacity_bytes must hold at least one chunk")
        if not 0.0 < self.start_fill_fraction <= 1.0:
            raise ValueError("start_fill_fraction must be in (0, 1]")
        if self.playback_gain < 0:
            raise ValueError("playback_gain must be >= 0")
        if self.vad_silence_ms <= 0 or self.vad_timeout_ms <= 0:
            raise ValueError("VAD durations must be > 0")
        if self.tts_response_format not in ("pcm", "wav"):
            raise ValueError("tts_response_format must be 'pcm' or 'wav'")
        if self.tts_response_format == "pcm" and self.sample_rate_hz != TTS_PCM_SAMPLE_RATE_HZ:
            raise ValueError(
                f"tts_response_format 'pcm' is always {TTS_PCM_SAMPLE_RATE_HZ} Hz; "
                f"got sample_rate_hz={self.sample_rate_hz} (use 'wav' or {TTS_PCM_SAMPLE_RATE_HZ})"
            )

    @property
    def start_threshold_bytes(self) -> int:
        """Ring fill level (bytes) at which playback starts."""
        return int(self.ring_capacity_bytes * self.start_fill_fraction)

    @property
    def lossless_reply_ms(self) -> float:
        """
        Longest reply (WAV, header included) whose burst phase still fits
        the device ring.

        The burst is floor(total_chunks * burst_fraction) whole chunks, so
        it never exceeds burst_fraction * (reply_bytes + chunk_bytes).
        """
        reply_bytes = int(self.ring_capacity_bytes / self.burst_fraction) - self.chunk_bytes
        return bytes_to_ms(reply_bytes - WAV_HEADER_BYTES, sample_rate_hz=self.sample_rate_hz)

    @property
    def burst_fits_ring(self) -> bool:
        """True when a reply as long as `vad_max_record_ms` plays without truncation."""
        reply_bytes = WAV_HEADER_BYTES + ms_to_bytes(
            self.vad_max_record_ms, sample_rate_hz=self.sample_rate_hz
        )
        return self.burst_fraction * (reply_bytes + self.chunk_bytes) <= self.ring_capacity_bytes

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a value is malformed or inconsistent.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            enable_json_logs=_env_bool("ENABLE_JSON_LOGS", True),

            openai_api_key=_env_optional("OPENAI_API_KEY"),
            transcription_model=os.environ.get("TRANSCRIPTION_MODEL", TRANSCRIPTION_MODEL_DEFAULT),
            llm_model=os.environ.get("LLM_MODEL", LLM_MODEL_DEFAULT),
            tts_model=os.environ.get("TTS_MODEL", TTS_MODEL_DEFAULT),
            tts_voice=os.environ.get("TTS_VOICE", TTS_VOICE_DEFAULT),
            tts_response_format=os.environ.get("TTS_RESPONSE_FORMAT", TTS_RESPONSE_FORMAT_DEFAULT),

            sample_rate_hz=int(os.environ.get("AUDIO_SAMPLE_RATE_HZ", AUDIO_SAMPLE_RATE_HZ)),
            chunk_bytes=int(os.environ.get("DELIVERY_CHUNK_BYTES", DELIVERY_CHUNK_BYTES)),
            burst_fraction=float(os.environ.get("DELIVERY_BURST_FRACTION", DELIVERY_BURST_FRACTION)),
            wait_for_ready=_env_bool("DELIVERY_WAIT_FOR_READY", DELIVERY_WAIT_FOR_READY),
            handshake_timeout_s=float(
                os.environ.get("READY_HANDSHAKE_TIMEOUT_S", READY_HANDSHAKE_TIMEOUT_S)
            ),
            archive_dir=_env_optional("ARCHIVE_DIR"),

            ring_capacity_bytes=int(
                os.environ.get("RING_BUFFER_CAPACITY_BYTES", RING_BUFFER_CAPACITY_BYTES)
            ),
            start_fill_fraction=float(
                os.environ.get("PLAYBACK_START_FILL_FRACTION", PLAYBACK_START_FILL_FRACTION)
            ),
            playback_gain=float(os.environ.get("PLAYBACK_GAIN", PLAYBACK_GAIN)),
            vad_amplitude_threshold=float(
                os.environ.get("VAD_AMPLITUDE_THRESHOLD", VAD_AMPLITUDE_THRESHOLD)
            ),
            vad_silence_ms=int(os.environ.get("VAD_SILENCE_MS", VAD_SILENCE_MS)),
            vad_timeout_ms=int(os.environ.get("VAD_TIMEOUT_MS", VAD_TIMEOUT_MS)),
            vad_max_record_ms=int(os.environ.get("VAD_MAX_RECORD_MS", VAD_MAX_RECORD_MS)),
            device_server_url=os.environ.get("DEVICE_SERVER_URL", DEVICE_SERVER_URL_DEFAULT),
            device_recording_dir=_env_optional("DEVICE_RECORDING_DIR"),
        )
