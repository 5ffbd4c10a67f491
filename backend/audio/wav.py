"""
Canonical 44-byte WAV header codec and in-memory WAV writer.

Layout (little-endian):

    0   "RIFF"
    4   u32  chunk_size = 36 + data_len
    8   "WAVE"
    12  "fmt "
    16  u32  16
    20  u16  audio_format = 1 (PCM)
    22  u16  channels
    24  u32  sample_rate
    28  u32  byte_rate = sample_rate * channels * bits / 8
    32  u16  block_align = channels * bits / 8
    34  u16  bits_per_sample
    36  "data"
    40  u32  data_len

The header is only computed once the payload length is known, so writers
buffer the whole payload in memory and emit the header last.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path

from spec import (
    AUDIO_BITS_PER_SAMPLE,
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    WAV_FMT_CHUNK_BYTES,
    WAV_FORMAT_PCM,
    WAV_HEADER_BYTES,
)


_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


class WavHeaderError(ValueError):
    """
    Raised when a byte sequence is not a canonical PCM WAV header.

    Covers short input (< 44 bytes), wrong magic, and zero/invalid fields.
    Parsing never reads past the supplied bytes.
    """


@dataclass(frozen=True)
class WavFormat:
    """PCM format fields carried by a WAV header."""
    sample_rate_hz: int = AUDIO_SAMPLE_RATE_HZ
    channels: int = AUDIO_CHANNELS
    bits_per_sample: int = AUDIO_BITS_PER_SAMPLE

    @property
    def bytes_per_sample(self) -> int:
        """Bytes in one sample of one channel."""
        return self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        """Bytes in one sample across all channels."""
        return self.channels * self.bytes_per_sample

    @property
    def byte_rate(self) -> int:
        """PCM bytes per second of real-time audio."""
        return self.sample_rate_hz * self.block_align


DEFAULT_WAV_FORMAT = WavFormat()


def build_wav_header(data_len: int, fmt: WavFormat = DEFAULT_WAV_FORMAT) -> bytes:
    """Return the 44-byte header for `data_len` bytes of PCM in `fmt`."""
    if data_len < 0:
        raise ValueError("data_len must be >= 0")

    return _HEADER_STRUCT.pack(
        b"RIFF",
        36 + data_len,
        b"WAVE",
        b"fmt ",
        WAV_FMT_CHUNK_BYTES,
        WAV_FORMAT_PCM,
        fmt.channels,
        fmt.sample_rate_hz,
        fmt.byte_rate,
        fmt.block_align,
        fmt.bits_per_sample,
        b"data",
        data_len,
    )


def wrap_pcm_as_wav(pcm_bytes: bytes, fmt: WavFormat = DEFAULT_WAV_FORMAT) -> bytes:
    """Prepend a canonical header to raw PCM."""
    return build_wav_header(len(pcm_bytes), fmt) + pcm_bytes


def has_wav_header(payload: bytes) -> bool:
    """Cheap magic check: does `payload` start with RIFF....WAVE?"""
    return (
        len(payload) >= 12
        and payload[0:4] == b"RIFF"
        and payload[8:12] == b"WAVE"
    )


def parse_wav_header(payload: bytes) -> WavFormat:
    """
    Parse the canonical 44-byte header at the start of `payload`.

    Raises:
        WavHeaderError if the payload is shorter than 44 bytes or the
        header is not canonical PCM.
    """
    if len(payload) < WAV_HEADER_BYTES:
        raise WavHeaderError(
            f"WAV header needs {WAV_HEADER_BYTES} bytes, got {len(payload)}"
        )

    (
        riff, _chunk_size, wave, fmt_id, fmt_size, audio_format,
        channels, sample_rate, _byte_rate, _block_align, bits, data_id, _data_len,
    ) = _HEADER_STRUCT.unpack_from(payload, 0)

    if riff != b"RIFF" or wave != b"WAVE":
        raise WavHeaderError("missing RIFF/WAVE magic")
    if fmt_id != b"fmt " or fmt_size != WAV_FMT_CHUNK_BYTES:
        raise WavHeaderError("non-canonical fmt chunk")
    if data_id != b"data":
        raise WavHeaderError("data chunk does not follow fmt chunk")
    if audio_format != WAV_FORMAT_PCM:
        raise WavHeaderError(f"unsupported audio_format {audio_format}")
    if channels <= 0 or sample_rate <= 0 or bits <= 0 or bits % 8:
        raise WavHeaderError(
            f"invalid format fields: channels={channels} rate={sample_rate} bits={bits}"
        )

    return WavFormat(
        sample_rate_hz=sample_rate,
        channels=channels,
        bits_per_sample=bits,
    )


def parse_wav_header_or_default(
    payload: bytes,
    default: WavFormat = DEFAULT_WAV_FORMAT,
) -> tuple[WavFormat, bool]:
    """
    Fail-closed variant of parse_wav_header.

    Returns:
        (format, parsed) where parsed is False when `default` was used.
    """
    try:
        return parse_wav_header(payload), True
    except WavHeaderError:
        return default, False


def strip_wav_header(payload: bytes) -> bytes:
    """Return the PCM after a canonical header, or `payload` if it has none."""
    if has_wav_header(payload) and len(payload) >= WAV_HEADER_BYTES:
        return payload[WAV_HEADER_BYTES:]
    return payload


def write_wav_file(path: str | Path, wav_bytes: bytes) -> Path:
    """Write a complete WAV byte sequence to disk, creating parent dirs."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(wav_bytes)
    return target


class WavWriter:
    """
    In-memory WAV accumulator.

    PCM is appended as it is captured; finalize() emits header + payload
    once the length is known. An empty writer finalizes to None rather
    than an empty/invalid WAV.
    """

    def __init__(self, fmt: WavFormat = DEFAULT_WAV_FORMAT) -> None:
        self._fmt = fmt
        self._pcm = bytearray()

    @property
    def fmt(self) -> WavFormat:
        return self._fmt

    @property
    def data_len(self) -> int:
        return len(self._pcm)

    def append(self, pcm_bytes: bytes) -> None:
        self._pcm.extend(pcm_bytes)

    def finalize(self) -> bytes | None:
        """Return the complete WAV bytes, or None when nothing was captured."""
        if not self._pcm:
            return None
        return wrap_pcm_as_wav(bytes(self._pcm), self._fmt)
