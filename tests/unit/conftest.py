# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any, Iterator

import pytest

from adapters.asr.base import TranscriptionAdapter
from adapters.llm.base import ReplyAdapter
from adapters.tts.base import SynthesisAdapter, SynthesizedAudio
from observability import logger
from protocol.control import TransportClosedError
from session.pipeline import ReplyPipeline


class FakeClock:
    """Monotonic clock advanced only by sleep() and explicit ticks."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeTransport:
    """
    In-memory Transport recording every frame with the clock time it
    was sent at. `close_after` closes the connection after that many
    binary frames; `fail_on` makes that binary frame raise.
    """

    def __init__(
        self,
        clock: FakeClock | None = None,
        *,
        send_cost_s: float = 0.0,
        close_after: int | None = None,
        fail_on: int | None = None,
    ) -> None:
        self.clock = clock or FakeClock()
        self.send_cost_s = send_cost_s
        self.close_after = close_after
        self.fail_on = fail_on
        self.sent: list[tuple[str, Any, float]] = []
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def mark_closed(self) -> None:
        self._open = False

    @property
    def binary(self) -> list[bytes]:
        return [payload for kind, payload, _ in self.sent if kind == "bytes"]

    @property
    def texts(self) -> list[str]:
        return [payload for kind, payload, _ in self.sent if kind == "text"]

    @property
    def binary_times(self) -> list[float]:
        return [ts for kind, _, ts in self.sent if kind == "bytes"]

    async def send_bytes(self, data: bytes) -> None:
        if not self._open:
            raise TransportClosedError("closed")
        if self.fail_on is not None and len(self.binary) + 1 == self.fail_on:
            self._open = False
            raise TransportClosedError("peer reset")
        self.sent.append(("bytes", data, self.clock.now))
        self.clock.now += self.send_cost_s
        if self.close_after is not None and len(self.binary) >= self.close_after:
            self._open = False

    async def send_text(self, text: str) -> None:
        if not self._open:
            raise TransportClosedError("closed")
        self.sent.append(("text", text, self.clock.now))


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def captured_logs(monkeypatch: pytest.MonkeyPatch) -> Iterator[list[dict[str, Any]]]:
    """Every event emitted through observability.logger, decoded."""
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: events.append(json.loads(line)))
    logger.configure_logging(level="DEBUG", json_lines=True)
    yield events
    logger.configure_logging()


# ------------------------------------------------------------------
# Stub collaborators
# ------------------------------------------------------------------

class StubTranscriber(TranscriptionAdapter):
    def __init__(self, text: str = "hello", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[bytes] = []

    async def transcribe(self, wav_bytes: bytes) -> str:
        self.calls.append(wav_bytes)
        if self.error is not None:
            raise self.error
        return self.text


class StubReplier(ReplyAdapter):
    def __init__(self, text: str = "hi there", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[str] = []

    async def generate_reply(self, *, transcript: str) -> str:
        self.calls.append(transcript)
        if self.error is not None:
            raise self.error
        return self.text


class StubSynthesizer(SynthesisAdapter):
    """Returns raw PCM sized so that header + PCM is exactly `wav_len` bytes."""

    def __init__(self, wav_len: int = 10_000, error: Exception | None = None) -> None:
        self.wav_len = wav_len
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def synthesize(self, *, text: str, voice: str) -> SynthesizedAudio:
        self.calls.append((text, voice))
        if self.error is not None:
            raise self.error
        pcm_len = max(0, self.wav_len - 44)
        return SynthesizedAudio(audio_bytes=b"\x07\x00" * (pcm_len // 2), has_header=False)


@pytest.fixture
def stubs() -> tuple[StubTranscriber, StubReplier, StubSynthesizer]:
    return StubTranscriber(), StubReplier(), StubSynthesizer()


@pytest.fixture
def pipeline(stubs) -> ReplyPipeline:
    return ReplyPipeline(*stubs)
