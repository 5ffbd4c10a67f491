"""
BEHAVIOR CONSTANTS
------------------
Single source of truth for the behavioral defaults of the voice relay.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- config.AppConfig reads these as defaults; env vars may override them.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Audio Format (PCM16 mono @ 24kHz)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 24_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
AUDIO_BITS_PER_SAMPLE: Final[int] = AUDIO_SAMPLE_WIDTH_BYTES * 8

PCM16_MIN: Final[int] = -32_768
PCM16_MAX: Final[int] = 32_767

# =============================================================================
# WAV container
# =============================================================================

WAV_HEADER_BYTES: Final[int] = 44
WAV_FMT_CHUNK_BYTES: Final[int] = 16
WAV_FORMAT_PCM: Final[int] = 1

# =============================================================================
# Transport control messages
# =============================================================================
# Device -> server (bare text)
CTRL_DONE: Final[str] = "done"
CTRL_READY: Final[str] = "ready"

# Server -> device (JSON "type" field)
MSG_DONE: Final[str] = "done"
MSG_NO_AUDIO: Final[str] = "no_audio"
MSG_ERROR: Final[str] = "error"
MSG_TRANSCRIPT: Final[str] = "transcript"
MSG_REPLY: Final[str] = "reply"

ECHO_PREFIX: Final[str] = "Echo: "

# =============================================================================
# Paced delivery (server -> device)
# =============================================================================

# MUST equal the device's receive chunk size.
DELIVERY_CHUNK_BYTES: Final[int] = 2048
DELIVERY_BURST_FRACTION: Final[float] = 0.8
DELIVERY_MIN_BURST_CHUNKS: Final[int] = 1
DELIVERY_WAIT_FOR_READY: Final[bool] = True
READY_HANDSHAKE_TIMEOUT_S: Final[float] = 2.0

# =============================================================================
# Device ring buffer & playback
# =============================================================================

# Must hold a whole burst phase: ~13s replies at the default burst fraction.
RING_BUFFER_CAPACITY_BYTES: Final[int] = 512 * 1024
PLAYBACK_START_FILL_FRACTION: Final[float] = 7 / 8
PLAYBACK_CHUNK_BYTES: Final[int] = DELIVERY_CHUNK_BYTES
PLAYBACK_POLL_INTERVAL_MS: Final[int] = 10
PLAYBACK_GAIN: Final[float] = 1.0

# =============================================================================
# Voice activity gated recording
# =============================================================================

VAD_FRAME_SAMPLES: Final[int] = 480  # 20ms @ 24kHz
VAD_AMPLITUDE_THRESHOLD: Final[float] = 500.0  # mean |sample|, int16 units
VAD_SILENCE_MS: Final[int] = 1_500
VAD_TIMEOUT_MS: Final[int] = 5_000
VAD_MAX_RECORD_MS: Final[int] = 10_000

# =============================================================================
# Collaborators (OpenAI)
# =============================================================================

TRANSCRIPTION_MODEL_DEFAULT: Final[str] = "whisper-1"
LLM_MODEL_DEFAULT: Final[str] = "gpt-4o-mini"
TTS_MODEL_DEFAULT: Final[str] = "tts-1"
TTS_VOICE_DEFAULT: Final[str] = "alloy"
TTS_RESPONSE_FORMAT_DEFAULT: Final[str] = "pcm"  # raw 24kHz s16le mono
TTS_PCM_SAMPLE_RATE_HZ: Final[int] = 24_000  # fixed by the speech API for "pcm"

SYSTEM_PROMPT_VERSION: Final[str] = "v1"
PROMPT_HASH_HEX_LEN: Final[int] = 8

# =============================================================================
# Device transport
# =============================================================================

DEVICE_SERVER_URL_DEFAULT: Final[str] = "ws://localhost:8000/ws"
DEVICE_CONNECT_TIMEOUT_S: Final[float] = 5.0

# =============================================================================
# Helper Functions
# =============================================================================

def bytes_to_ms(
    num_bytes: int,
    *,
    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
    sample_width_bytes: int = AUDIO_SAMPLE_WIDTH_BYTES,
    channels: int = AUDIO_CHANNELS,
) -> float:
    """
    Real-time playback duration of `num_bytes` of PCM.

    Non-positive input returns 0.0.
    """
    if num_bytes <= 0:
        return 0.0
    bytes_per_second = sample_rate_hz * sample_width_bytes * channels
    return 1000.0 * num_bytes / bytes_per_second


def ms_to_bytes(
    duration_ms: float,
    *,
    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ,
    sample_width_bytes: int = AUDIO_SAMPLE_WIDTH_BYTES,
    channels: int = AUDIO_CHANNELS,
) -> int:
    """
    Whole-sample byte count for a duration (floor).

    Non-positive input returns 0.
    """
    if duration_ms <= 0:
        return 0
    frame_bytes = sample_width_bytes * channels
    samples = int(sample_rate_hz * duration_ms / 1000.0)
    return samples * frame_bytes

